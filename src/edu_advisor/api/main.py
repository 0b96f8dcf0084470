"""FastAPI entrypoint for advisory, trace and metrics endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from edu_advisor.advisory.prompts import build_request, describe_catalog, describe_profile
from edu_advisor.advisory.quota import CountingQuotaGate, QuotaGate, UnlimitedQuotaGate
from edu_advisor.advisory.session import AdvisorySession
from edu_advisor.advisory.slots import AdvisorySlots
from edu_advisor.catalog import UniversityCatalog, load_catalog
from edu_advisor.config import AdvisoryConfig
from edu_advisor.extraction.schemas import (
    CostBreakdownSchema,
    ExtractionSchema,
    FlashcardSetSchema,
    ProfileAnalysisSchema,
    RecommendationSetSchema,
)
from edu_advisor.obs.tracing import SessionTraceStore
from edu_advisor.scoring.fallback import DeterministicFallbackScorer, strength_tier_from_score
from edu_advisor.stream.transport import HttpxStreamTransport, IterableTransport, StreamTransport
from edu_advisor.types import AccumulatedBuffer, AdvisoryOutcome, SessionState, StudentProfile

logging.basicConfig(
    level=os.getenv("EDU_ADVISOR_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _create_quota_gate() -> QuotaGate:
    responses = os.getenv("EDU_ADVISOR_RESPONSES")
    if not responses:
        return UnlimitedQuotaGate()
    return CountingQuotaGate(int(responses))


def _load_catalog() -> UniversityCatalog:
    path = os.getenv("EDU_ADVISOR_CATALOG")
    if not path:
        logger.warning("EDU_ADVISOR_CATALOG is not set; recommendations will be empty")
        return UniversityCatalog()
    return load_catalog(path)


class ProfileRequest(BaseModel):
    strength_tier: int | None = Field(default=None, ge=1, le=5)
    strength_score: float | None = Field(default=None, ge=0.0, le=100.0)
    budget_min: float = Field(default=0.0, ge=0.0)
    budget_max: float | None = Field(default=None, ge=0.0)
    preferred_categories: list[str] = Field(default_factory=list)
    gpa: float | None = None
    sat: int | None = None
    toefl: int | None = None

    def to_profile(self) -> StudentProfile:
        if self.strength_tier is not None:
            tier = self.strength_tier
        elif self.strength_score is not None:
            tier = strength_tier_from_score(self.strength_score)
        else:
            tier = 3
        return StudentProfile(
            strength_tier=tier,
            budget_min=self.budget_min,
            budget_max=self.budget_max if self.budget_max is not None else float("inf"),
            preferred_categories=frozenset(
                category.strip().lower() for category in self.preferred_categories
            ),
            gpa=self.gpa,
            sat=self.sat,
            toefl=self.toefl,
        )


class AdvisoryRequest(BaseModel):
    profile: ProfileRequest = Field(default_factory=ProfileRequest)
    university: str | None = None
    content: str | None = None


app = FastAPI(title="Education Advisor", version="0.1.0")

_config = AdvisoryConfig.from_env()
_catalog = _load_catalog()
_scorer = DeterministicFallbackScorer()
_quota_gate = _create_quota_gate()
_trace_store = SessionTraceStore()
_slots = AdvisorySlots()

_SCHEMAS: dict[str, ExtractionSchema] = {
    "analysis": ProfileAnalysisSchema(),
    "recommendations": RecommendationSetSchema(required_count=_config.required_recommendations),
    "cost_estimate": CostBreakdownSchema(),
    "flashcards": FlashcardSetSchema(),
}

_FAILURE_STATUS = {"transport_failed": 502, "no_content": 422, "cancelled": 409}


def _create_transport() -> StreamTransport:
    if not _config.api_key:
        return IterableTransport([b"data: [DONE]\n\n"])
    return HttpxStreamTransport(
        base_url=_config.base_url,
        api_key=_config.api_key,
        timeout=_config.timeout_seconds,
    )


def _context(slot: str, request: AdvisoryRequest, profile: StudentProfile) -> dict[str, Any]:
    context: dict[str, Any] = {"profile": describe_profile(profile)}
    if slot == "recommendations":
        context["catalog"] = describe_catalog(_catalog)
    elif slot == "cost_estimate":
        if not request.university:
            raise HTTPException(status_code=422, detail="university is required")
        record = _catalog.resolve(request.university)
        context["university"] = record.name if record is not None else request.university
    elif slot == "flashcards":
        if not request.content:
            raise HTTPException(status_code=422, detail="content is required")
        context = {"content": request.content}
    return context


def _build_session(slot: str, request: AdvisoryRequest) -> AdvisorySession:
    schema = _SCHEMAS.get(slot)
    if schema is None:
        raise HTTPException(status_code=404, detail=f"Unknown advisory slot: {slot}")

    profile = request.profile.to_profile()
    body = build_request(schema, _context(slot, request, profile), _config)
    return AdvisorySession(
        slot,
        schema,
        _create_transport(),
        body,
        catalog=_catalog,
        profile=profile,
        scorer=_scorer,
        quota_gate=_quota_gate,
        trace_store=_trace_store,
    )


async def _start(session: AdvisorySession) -> asyncio.Task[AdvisoryOutcome]:
    await _slots.start(session)
    task = _slots.task(session.slot)
    if task is None:
        raise RuntimeError(f"Slot {session.slot} has no running task")
    return task


def _respond(outcome: AdvisoryOutcome) -> dict[str, Any]:
    if outcome.state is not SessionState.DONE:
        status = _FAILURE_STATUS.get(outcome.error_code or "", 500)
        raise HTTPException(status_code=status, detail=outcome.as_dict())
    return outcome.as_dict()


def _event(name: str, payload: dict[str, Any]) -> str:
    return f"event: {name}\ndata: {json.dumps(payload)}\n\n"


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "llm_configured": bool(_config.api_key),
        "mode": "streaming" if _config.api_key else "offline",
        "catalog_size": len(_catalog),
        "trace_count": len(_trace_store.list_recent(limit=1000)),
    }


@app.post("/advisory/{slot}")
async def advise(slot: str, request: AdvisoryRequest) -> dict[str, Any]:
    session = _build_session(slot, request)
    task = await _start(session)
    return _respond(await task)


@app.post("/advisory/{slot}/stream")
async def advise_stream(slot: str, request: AdvisoryRequest) -> StreamingResponse:
    session = _build_session(slot, request)
    queue: asyncio.Queue[AccumulatedBuffer] = asyncio.Queue()
    session.subscribe_progress(queue.put_nowait)
    task = await _start(session)

    async def events() -> AsyncIterator[str]:
        while not (task.done() and queue.empty()):
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield _event("progress", asdict(getter.result()))
            else:
                getter.cancel()
        yield _event("outcome", task.result().as_dict())

    return StreamingResponse(events(), media_type="text/event-stream")


@app.delete("/advisory/{slot}")
async def cancel(slot: str) -> dict[str, Any]:
    if slot not in _SCHEMAS:
        raise HTTPException(status_code=404, detail=f"Unknown advisory slot: {slot}")
    return {"slot": slot, "cancelled": await _slots.cancel(slot)}


@app.get("/traces")
def traces(limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in _trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{session_id}")
def trace_detail(session_id: str) -> dict[str, Any]:
    try:
        record = _trace_store.get(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return _trace_store.summary()
