"""Shared domain models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum
from typing import Any


@dataclass(slots=True, frozen=True)
class StreamFragment:
    """One decoded piece of model text, ordered by `sequence`."""

    sequence: int
    text: str
    is_final: bool = False


@dataclass(slots=True, frozen=True)
class AccumulatedBuffer:
    """Immutable snapshot of a session's growing text buffer."""

    text: str
    fragment_count: int
    complete: bool


class ExtractionStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class EntryOrigin(str, Enum):
    """Where a result entry came from."""

    MODEL = "model"
    FALLBACK = "fallback"


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.DONE, SessionState.FAILED, SessionState.CANCELLED)


@dataclass(slots=True, frozen=True)
class RankedRecommendation:
    """A catalog record placed at `rank` in a recommendation list."""

    record_id: str
    rank: int
    origin: EntryOrigin = EntryOrigin.MODEL


@dataclass(slots=True, frozen=True)
class Flashcard:
    question: str
    answer: str


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    """Typed fields recovered from model text.

    `status` is COMPLETE only when `missing_fields` is empty; `strategy` names
    the parser that produced the fields (`structured`, `heuristic` or `none`).
    """

    status: ExtractionStatus
    fields: dict[str, Any]
    missing_fields: frozenset[str]
    strategy: str = "none"

    def as_dict(self) -> dict[str, Any]:
        """Canonical JSON-ready form; equal results give equal dicts."""
        return {
            "status": self.status.value,
            "strategy": self.strategy,
            "fields": {key: to_jsonable(self.fields[key]) for key in sorted(self.fields)},
            "missing_fields": sorted(self.missing_fields),
        }


@dataclass(slots=True, frozen=True)
class University:
    """Domain record consulted by validation and fallback scoring."""

    record_id: str
    name: str
    selectivity_tier: int
    annual_cost: float
    tags: frozenset[str] = frozenset()
    ranking: int | None = None
    country: str = ""
    min_gpa: float | None = None
    min_sat: int | None = None
    min_toefl: int | None = None


@dataclass(slots=True, frozen=True)
class StudentProfile:
    """Profile attributes the fallback scorer reads."""

    strength_tier: int
    budget_min: float = 0.0
    budget_max: float = float("inf")
    preferred_categories: frozenset[str] = frozenset()
    gpa: float | None = None
    sat: int | None = None
    toefl: int | None = None


@dataclass(slots=True, frozen=True)
class ScoredRecord:
    record: University
    score: float
    rationale: str


@dataclass(slots=True, frozen=True)
class QuotaDecision:
    allowed: bool
    message: str = ""


@dataclass(slots=True)
class AdvisoryOutcome:
    """Final, UI-facing payload of one advisory session."""

    session_id: str
    slot: str
    state: SessionState
    result: ExtractionResult | None = None
    entries: list[RankedRecommendation] = field(default_factory=list)
    used_fallback: bool = False
    error: str | None = None
    error_code: str | None = None
    quota: QuotaDecision | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "slot": self.slot,
            "state": self.state.value,
            "result": self.result.as_dict() if self.result is not None else None,
            "entries": [to_jsonable(entry) for entry in self.entries],
            "used_fallback": self.used_fallback,
            "error": self.error,
            "error_code": self.error_code,
            "quota": asdict(self.quota) if self.quota is not None else None,
        }


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {key: to_jsonable(item) for key, item in asdict(value).items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(item) for item in value)
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in sorted(value.items())}
    return value
