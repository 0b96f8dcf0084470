"""Schema-driven extraction over completed model output."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from edu_advisor.catalog import UniversityCatalog
from edu_advisor.config import ExtractionConfig
from edu_advisor.errors import ExtractionFailure, ValidationMismatch
from edu_advisor.extraction.parsers import (
    ParseAttempt,
    parse_json_cards,
    parse_labelled_lines,
    parse_qa_lines,
    parse_ranked_block,
    parse_ranked_lines,
    parse_tagged,
)
from edu_advisor.extraction.schemas import (
    ExtractionSchema,
    FlashcardSetSchema,
    RecommendationSetSchema,
    default_fields,
    field_names,
)
from edu_advisor.types import (
    EntryOrigin,
    ExtractionResult,
    ExtractionStatus,
    Flashcard,
    RankedRecommendation,
)

logger = logging.getLogger(__name__)

Parser = Callable[[str, ExtractionSchema], ParseAttempt | None]

# Ordered, fallible parser pipelines per schema kind: structured grammar
# first, then the line-oriented heuristic.
_PIPELINES: dict[str, tuple[Parser, ...]] = {
    "profile_analysis": (parse_tagged, parse_labelled_lines),
    "cost_breakdown": (parse_tagged, parse_labelled_lines),
    "recommendation_set": (parse_ranked_block, parse_ranked_lines),
    "flashcard_set": (parse_json_cards, parse_qa_lines),
}


class SchemaExtractor:
    """Recovers an `ExtractionResult` from a completed text buffer.

    Every field the parsers could not locate takes the schema default and is
    listed in `missing_fields`; the result is COMPLETE only when nothing is
    missing. Identical text and schema always give an identical result.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()

    def extract(
        self,
        text: str,
        schema: ExtractionSchema,
        catalog: UniversityCatalog | None = None,
    ) -> ExtractionResult:
        if schema.kind == "recommendation_set" and catalog is None:
            raise ValueError("Recommendation extraction requires a catalog")

        attempt = self._first_attempt(text, schema)
        if attempt is None:
            return self._failed(schema, ExtractionFailure())

        finalize = _FINALIZERS[schema.kind]
        return finalize(self, attempt, schema, catalog)

    def _first_attempt(self, text: str, schema: ExtractionSchema) -> ParseAttempt | None:
        if not text.strip():
            return None
        for parser in _PIPELINES[schema.kind]:
            attempt = parser(text, schema)
            if attempt is not None:
                logger.debug(
                    "%s parsed %s fields via %s (confidence %.2f)",
                    schema.kind,
                    len(attempt.fields),
                    attempt.strategy,
                    attempt.confidence,
                )
                return attempt
        return None

    def _failed(self, schema: ExtractionSchema, error: ExtractionFailure) -> ExtractionResult:
        logger.info("%s extraction failed: %s", schema.kind, error.message)
        return ExtractionResult(
            status=ExtractionStatus.FAILED,
            fields=default_fields(schema),
            missing_fields=field_names(schema),
            strategy="none",
        )

    def _finalize_fields(
        self,
        attempt: ParseAttempt,
        schema: ExtractionSchema,
        catalog: UniversityCatalog | None,
    ) -> ExtractionResult:
        del catalog
        fields = default_fields(schema)
        missing: set[str] = set()
        for spec in schema.fields:
            if spec.name in attempt.fields:
                fields[spec.name] = attempt.fields[spec.name]
            else:
                missing.add(spec.name)

        if "strength_score" in attempt.fields:
            fields["strength_score"] = min(
                max(float(fields["strength_score"]), self.config.min_strength_score),
                self.config.max_strength_score,
            )
        return _result(fields, missing, attempt.strategy)

    def _finalize_recommendations(
        self,
        attempt: ParseAttempt,
        schema: ExtractionSchema,
        catalog: UniversityCatalog | None,
    ) -> ExtractionResult:
        if not isinstance(schema, RecommendationSetSchema) or catalog is None:
            raise TypeError("Recommendation finalizer needs a recommendation schema and a catalog")
        entries: list[RankedRecommendation] = []
        seen: set[str] = set()
        for position, (raw_id, rank) in enumerate(attempt.fields["recommendations"], start=1):
            record = catalog.resolve(raw_id)
            if record is None:
                error = ValidationMismatch(raw_id)
                logger.warning("Dropping recommendation: %s", error.message)
                continue
            if record.record_id in seen:
                continue
            seen.add(record.record_id)
            entries.append(
                RankedRecommendation(
                    record_id=record.record_id,
                    rank=rank if rank is not None else position,
                    origin=EntryOrigin.MODEL,
                )
            )

        if not entries:
            return self._failed(schema, ExtractionFailure("No recommended record is in the catalog"))

        entries = entries[: schema.required_count]
        missing = {"recommendations"} if len(entries) < schema.required_count else set()
        return _result({"recommendations": tuple(entries)}, missing, attempt.strategy)

    def _finalize_cards(
        self,
        attempt: ParseAttempt,
        schema: ExtractionSchema,
        catalog: UniversityCatalog | None,
    ) -> ExtractionResult:
        del catalog
        if not isinstance(schema, FlashcardSetSchema):
            raise TypeError(f"Flashcard finalizer got a {schema.kind} schema")
        cards = tuple(
            Flashcard(question=question, answer=answer)
            for question, answer in attempt.fields["cards"][: schema.max_cards]
        )
        missing = {"cards"} if len(cards) < schema.min_cards else set()
        return _result({"cards": cards}, missing, attempt.strategy)


_FINALIZERS: dict[str, Callable[..., ExtractionResult]] = {
    "profile_analysis": SchemaExtractor._finalize_fields,
    "cost_breakdown": SchemaExtractor._finalize_fields,
    "recommendation_set": SchemaExtractor._finalize_recommendations,
    "flashcard_set": SchemaExtractor._finalize_cards,
}


def _result(fields: dict[str, Any], missing: set[str], strategy: str) -> ExtractionResult:
    return ExtractionResult(
        status=ExtractionStatus.PARTIAL if missing else ExtractionStatus.COMPLETE,
        fields=fields,
        missing_fields=frozenset(missing),
        strategy=strategy,
    )
