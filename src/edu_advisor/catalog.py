"""Read-only university catalog shared by extraction and fallback scoring."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from edu_advisor.types import University


class UniversityPayload(BaseModel):
    """Validates one catalog entry as stored by the university directory."""

    model_config = ConfigDict(extra="ignore")

    record_id: str = Field(min_length=1, validation_alias=AliasChoices("record_id", "id"))
    name: str = Field(min_length=1)
    selectivity_tier: int | None = Field(default=None, ge=1, le=5)
    annual_cost: float = Field(
        ge=0.0,
        validation_alias=AliasChoices("annual_cost", "tuition_fee", "tuition_fee_graduate"),
    )
    tags: list[str] = Field(default_factory=list, validation_alias=AliasChoices("tags", "programs"))
    ranking: int | None = Field(default=None, ge=1)
    country: str = ""
    min_gpa: float | None = Field(
        default=None, validation_alias=AliasChoices("min_gpa", "min_gpa_required")
    )
    min_sat: int | None = Field(
        default=None, validation_alias=AliasChoices("min_sat", "sat_score_required")
    )
    min_toefl: int | None = Field(
        default=None, validation_alias=AliasChoices("min_toefl", "toefl_score_required")
    )

    def to_record(self) -> University:
        tier = self.selectivity_tier or tier_from_ranking(self.ranking)
        return University(
            record_id=self.record_id.strip(),
            name=self.name.strip(),
            selectivity_tier=tier,
            annual_cost=self.annual_cost,
            tags=frozenset(tag.strip().lower() for tag in self.tags if tag.strip()),
            ranking=self.ranking,
            country=self.country,
            min_gpa=self.min_gpa,
            min_sat=self.min_sat,
            min_toefl=self.min_toefl,
        )


def tier_from_ranking(ranking: int | None) -> int:
    """Derive a 1..5 selectivity tier from a world ranking when none is stored."""
    if ranking is None:
        return 1
    for limit, tier in ((10, 5), (50, 4), (100, 3), (300, 2)):
        if ranking <= limit:
            return tier
    return 1


class UniversityCatalog:
    """Immutable, insertion-ordered collection of `University` records."""

    def __init__(self, records: Iterable[University] = ()) -> None:
        self._records: tuple[University, ...] = tuple(records)
        self._by_key: dict[str, University] = {}
        self._order: dict[str, int] = {}
        for index, record in enumerate(self._records):
            key = record.record_id.casefold()
            if key in self._by_key:
                raise ValueError(f"Duplicate catalog record: {record.record_id}")
            self._by_key[key] = record
            self._order[record.record_id] = index

    @classmethod
    def from_payloads(cls, payloads: Iterable[dict[str, Any]]) -> "UniversityCatalog":
        return cls(UniversityPayload.model_validate(item).to_record() for item in payloads)

    @property
    def records(self) -> tuple[University, ...]:
        return self._records

    def resolve(self, record_id: str) -> University | None:
        """Case-insensitive identifier lookup; `None` when unknown."""
        return self._by_key.get(record_id.strip().casefold())

    def position(self, record: University) -> int:
        return self._order[record.record_id]

    def __contains__(self, record_id: object) -> bool:
        return isinstance(record_id, str) and self.resolve(record_id) is not None

    def __iter__(self) -> Iterator[University]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)


def load_catalog(path: str | Path) -> UniversityCatalog:
    """Load a JSON list (or `{"universities": [...]}`) of catalog entries."""
    payload: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("universities", [])
    if not isinstance(payload, list):
        raise ValueError(f"Catalog file must contain a list of universities: {path}")
    return UniversityCatalog.from_payloads(payload)
