"""Session tracing and aggregate metrics."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class SessionTrace:
    session_id: str
    slot: str
    timestamp_utc: str
    state: str
    fragment_count: int
    characters: int
    output_tokens: int
    extraction_status: str | None
    strategy: str | None
    fallback_entries: int
    latency_ms: float
    error_code: str | None


class SessionTraceStore:
    """In-memory trace storage for finished advisory sessions."""

    def __init__(self) -> None:
        self._records: dict[str, SessionTrace] = {}

    def create_record(
        self,
        *,
        session_id: str,
        slot: str,
        state: str,
        text: str,
        fragment_count: int,
        extraction_status: str | None,
        strategy: str | None,
        fallback_entries: int,
        latency_ms: float,
        error_code: str | None,
    ) -> SessionTrace:
        record = SessionTrace(
            session_id=session_id,
            slot=slot,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            state=state,
            fragment_count=fragment_count,
            characters=len(text),
            output_tokens=estimate_token_count(text),
            extraction_status=extraction_status,
            strategy=strategy,
            fallback_entries=fallback_entries,
            latency_ms=latency_ms,
            error_code=error_code,
        )
        self._records[session_id] = record
        return record

    def get(self, session_id: str) -> SessionTrace:
        record = self._records.get(session_id)
        if record is None:
            raise KeyError(f"Trace not found: {session_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[SessionTrace]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate session metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_sessions": 0,
                "done": 0,
                "failed": 0,
                "cancelled": 0,
                "fallback_rate": 0.0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "total_output_tokens": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        with_fallback = sum(1 for record in records if record.fallback_entries > 0)

        return {
            "total_sessions": total,
            "done": sum(1 for record in records if record.state == "done"),
            "failed": sum(1 for record in records if record.state == "failed"),
            "cancelled": sum(1 for record in records if record.state == "cancelled"),
            "fallback_rate": with_fallback / total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "total_output_tokens": sum(record.output_tokens for record in records),
        }


class Timer:
    """Simple context timer used by advisory sessions."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
