"""One end-to-end advisory request: stream, accumulate, extract, fall back."""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from edu_advisor.advisory.quota import QuotaGate, UnlimitedQuotaGate
from edu_advisor.catalog import UniversityCatalog
from edu_advisor.config import StreamConfig
from edu_advisor.errors import AdvisoryError, ExtractionFailure, TransportError
from edu_advisor.extraction.extractor import SchemaExtractor
from edu_advisor.extraction.schemas import ExtractionSchema, RecommendationSetSchema
from edu_advisor.obs.tracing import SessionTraceStore, Timer
from edu_advisor.scoring.fallback import DeterministicFallbackScorer
from edu_advisor.stream.accumulator import ContentAccumulator
from edu_advisor.stream.decoder import ChunkDecoder
from edu_advisor.stream.transport import StreamTransport
from edu_advisor.types import (
    AccumulatedBuffer,
    AdvisoryOutcome,
    EntryOrigin,
    ExtractionResult,
    ExtractionStatus,
    SessionState,
    StudentProfile,
)

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[AccumulatedBuffer], Awaitable[None] | None]
StateObserver = Callable[[SessionState], Awaitable[None] | None]

_EMPTY_BUFFER = AccumulatedBuffer(text="", fragment_count=0, complete=False)


class AdvisorySession:
    """State machine for one user-initiated advisory request.

    IDLE -> STREAMING -> EXTRACTING -> DONE, or FAILED on a transport error or
    an extraction failure the schema cannot recover from. `cancel()` moves a
    running session to CANCELLED; after that no observer hears from it again.

    Outcome policy per schema:
    - profile analysis never fails on extraction; defaults are surfaced with
      `missing_fields` populated;
    - recommendation sets are padded (or fully replaced) by the fallback
      scorer and fail only when that yields nothing;
    - cost breakdowns and flashcard sets have no fallback.

    The quota gate is consulted once, and only for DONE sessions.
    """

    def __init__(
        self,
        slot: str,
        schema: ExtractionSchema,
        transport: StreamTransport,
        request: dict[str, Any],
        *,
        catalog: UniversityCatalog | None = None,
        profile: StudentProfile | None = None,
        extractor: SchemaExtractor | None = None,
        scorer: DeterministicFallbackScorer | None = None,
        quota_gate: QuotaGate | None = None,
        stream_config: StreamConfig | None = None,
        trace_store: SessionTraceStore | None = None,
    ) -> None:
        if isinstance(schema, RecommendationSetSchema) and (catalog is None or profile is None):
            raise ValueError("Recommendation sessions need both a catalog and a profile")

        self.id = str(uuid.uuid4())
        self.slot = slot
        self.schema = schema
        self.state = SessionState.IDLE
        self.result: ExtractionResult | None = None
        self.outcome: AdvisoryOutcome | None = None

        self._transport = transport
        self._request = request
        self._catalog = catalog
        self._profile = profile
        self._extractor = extractor or SchemaExtractor()
        self._scorer = scorer or DeterministicFallbackScorer()
        self._quota_gate = quota_gate or UnlimitedQuotaGate()
        self._stream_config = stream_config or StreamConfig()
        self._trace_store = trace_store

        self._accumulator: ContentAccumulator | None = None
        self._progress_observers: list[ProgressObserver] = []
        self._state_observers: list[StateObserver] = []
        self._cancelled = False
        self._task: asyncio.Task[Any] | None = None
        self._timer = Timer()
        self._callbacks: set[asyncio.Future[Any]] = set()

    @property
    def buffer(self) -> AccumulatedBuffer:
        """Live, read-only view of the accumulated text."""
        if self._accumulator is None:
            return _EMPTY_BUFFER
        return self._accumulator.snapshot()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def subscribe_progress(self, observer: ProgressObserver) -> None:
        self._progress_observers.append(observer)

    def subscribe_state(self, observer: StateObserver) -> None:
        self._state_observers.append(observer)

    async def run(self) -> AdvisoryOutcome:
        if self._cancelled and self.outcome is not None:
            return self.outcome
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Session {self.id} already started")
        self._task = asyncio.current_task()

        try:
            with self._timer:
                outcome = await self._run()
        except asyncio.CancelledError:
            if not self._cancelled:
                raise
            outcome = self._cancelled_outcome()
        finally:
            await self._transport.aclose()

        if outcome.state is SessionState.CANCELLED:
            self._finish_cancelled(outcome)
        else:
            self._finish(outcome)
        return outcome

    async def cancel(self) -> None:
        """Abort the session: stop fragment processing and drop the buffer.

        Returns once the session task has stopped, also for callers that
        arrive while an earlier cancellation is still winding down.
        """
        if self.state.terminal:
            return
        first = not self._cancelled
        if first:
            self._cancelled = True
            self._progress_observers.clear()
            self._state_observers.clear()
            for callback in list(self._callbacks):
                callback.cancel()
            if self._accumulator is not None:
                self._accumulator.close()

        task = self._task
        if task is None:
            self._finish_cancelled(self._cancelled_outcome())
            await self._transport.aclose()
            return
        if task is not asyncio.current_task() and not task.done():
            if first:
                task.cancel()
            await asyncio.wait({task})

    async def _run(self) -> AdvisoryOutcome:
        accumulator = ContentAccumulator()
        accumulator.subscribe(self._on_progress)
        self._accumulator = accumulator
        decoder = ChunkDecoder(self._stream_config)
        self._transition(SessionState.STREAMING)

        try:
            await self._pump(decoder, accumulator)
        except TransportError as exc:
            return self._failure(exc)
        if self._cancelled:
            return self._cancelled_outcome()

        self._transition(SessionState.EXTRACTING)
        result = self._extractor.extract(accumulator.final_text(), self.schema, self._catalog)
        self.result = result
        outcome = self._apply_policy(result)
        if outcome.state is SessionState.DONE:
            outcome.quota = await self._quota_gate.consume(self.id, self.slot)
            if not outcome.quota.allowed:
                logger.info("Quota denied for session %s: %s", self.id, outcome.quota.message)
        return outcome

    async def _pump(self, decoder: ChunkDecoder, accumulator: ContentAccumulator) -> None:
        stream = self._transport.stream(self._request)
        try:
            async for chunk in stream:
                if self._cancelled:
                    return
                for fragment in decoder.feed(chunk):
                    accumulator.append(fragment)
                if decoder.finished:
                    break
            if not self._cancelled:
                for fragment in decoder.close():
                    accumulator.append(fragment)
        finally:
            closer = getattr(stream, "aclose", None)
            if closer is not None:
                await closer()

    def _apply_policy(self, result: ExtractionResult) -> AdvisoryOutcome:
        outcome = AdvisoryOutcome(
            session_id=self.id,
            slot=self.slot,
            state=SessionState.DONE,
            result=result,
        )

        if (
            isinstance(self.schema, RecommendationSetSchema)
            and self._catalog is not None
            and self._profile is not None
        ):
            extracted = (
                list(result.fields["recommendations"])
                if result.status is not ExtractionStatus.FAILED
                else []
            )
            outcome.entries = self._scorer.merge(
                extracted, self._catalog, self._profile, self.schema.required_count
            )
            outcome.used_fallback = any(
                entry.origin is EntryOrigin.FALLBACK for entry in outcome.entries
            )
            if not outcome.entries:
                return self._failure(
                    ExtractionFailure("No recommendations and the catalog is empty"),
                    result=result,
                )
            return outcome

        if result.status is ExtractionStatus.FAILED and self.schema.kind != "profile_analysis":
            return self._failure(ExtractionFailure(), result=result)
        return outcome

    def _failure(
        self, error: AdvisoryError, *, result: ExtractionResult | None = None
    ) -> AdvisoryOutcome:
        logger.warning("Advisory session %s (%s) failed: %s", self.id, self.slot, error)
        return AdvisoryOutcome(
            session_id=self.id,
            slot=self.slot,
            state=SessionState.FAILED,
            result=result,
            error=error.message,
            error_code=error.error_code,
        )

    def _cancelled_outcome(self) -> AdvisoryOutcome:
        return AdvisoryOutcome(
            session_id=self.id,
            slot=self.slot,
            state=SessionState.CANCELLED,
            error="Session cancelled",
            error_code="cancelled",
        )

    def _finish(self, outcome: AdvisoryOutcome) -> None:
        self.outcome = outcome
        self._transition(outcome.state)
        logger.info(
            "Advisory session %s (%s) %s in %.1f ms",
            self.id,
            self.slot,
            outcome.state.value,
            self._timer.elapsed_ms,
        )
        self._record_trace(outcome)

    def _finish_cancelled(self, outcome: AdvisoryOutcome) -> None:
        self.state = SessionState.CANCELLED
        self.outcome = outcome
        logger.info("Advisory session %s (%s) cancelled", self.id, self.slot)
        self._record_trace(outcome)

    def _record_trace(self, outcome: AdvisoryOutcome) -> None:
        if self._trace_store is not None:
            buffer = self.buffer
            self._trace_store.create_record(
                session_id=self.id,
                slot=self.slot,
                state=outcome.state.value,
                text=buffer.text,
                fragment_count=buffer.fragment_count,
                extraction_status=self.result.status.value if self.result else None,
                strategy=self.result.strategy if self.result else None,
                fallback_entries=sum(
                    1 for entry in outcome.entries if entry.origin is EntryOrigin.FALLBACK
                ),
                latency_ms=self._timer.elapsed_ms,
                error_code=outcome.error_code,
            )

    def _transition(self, state: SessionState) -> None:
        if self._cancelled:
            return
        self.state = state
        logger.debug("Advisory session %s -> %s", self.id, state.value)
        for observer in list(self._state_observers):
            self._notify(observer, state)

    def _on_progress(self, snapshot: AccumulatedBuffer) -> None:
        if self._cancelled:
            return
        for observer in list(self._progress_observers):
            self._notify(observer, snapshot)

    def _notify(self, observer: Callable[[Any], Any], value: Any) -> None:
        result = observer(value)
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._callbacks.add(future)
            future.add_done_callback(self._callbacks.discard)
