"""Declarative extraction schemas shared by every advisory feature.

Schemas are a tagged union: each variant is a frozen dataclass with a literal
`kind`, and consumers dispatch on that tag rather than on a class hierarchy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

FieldKind = Literal["number", "text", "list"]


@dataclass(slots=True, frozen=True)
class FieldSpec:
    """One named field; dotted names address nested tags (`categories.tuition`)."""

    name: str
    kind: FieldKind
    default: Any
    aliases: tuple[str, ...] = ()

    @property
    def leaf(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    @property
    def parent(self) -> str | None:
        return self.name.rsplit(".", 1)[0] if "." in self.name else None

    def labels(self) -> tuple[str, ...]:
        """Normalized labels the heuristic parser accepts for this field."""
        names = (self.leaf.replace("_", " "), self.name.replace(".", " ").replace("_", " "))
        return tuple(dict.fromkeys(names + self.aliases))


PROFILE_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(
        "strength_score",
        "number",
        0.0,
        aliases=("strength", "score", "overall score", "profile strength", "profile score"),
    ),
    FieldSpec("summary", "text", "", aliases=("overview", "profile summary")),
    FieldSpec(
        "assessment",
        "text",
        "",
        aliases=("academic assessment", "analysis", "evaluation"),
    ),
    FieldSpec(
        "action_items",
        "list",
        (),
        aliases=("actions", "next steps", "recommendations", "action plan", "improvements"),
    ),
)

COST_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("currency", "text", "USD"),
    FieldSpec("categories.tuition", "number", 0.0, aliases=("tuition fees", "tuition fee")),
    FieldSpec("categories.housing", "number", 0.0, aliases=("accommodation", "rent")),
    FieldSpec("categories.food", "number", 0.0, aliases=("meals", "dining")),
    FieldSpec("categories.insurance", "number", 0.0, aliases=("health insurance",)),
    FieldSpec("categories.books", "number", 0.0, aliases=("books and supplies", "supplies")),
    FieldSpec("categories.transport", "number", 0.0, aliases=("transportation", "travel")),
    FieldSpec("total", "number", 0.0, aliases=("total cost", "annual total", "estimated total")),
)


@dataclass(slots=True, frozen=True)
class ProfileAnalysisSchema:
    """Numeric strength score, free-text fields and an action list."""

    kind: Literal["profile_analysis"] = "profile_analysis"
    block_tag: str = "profile_analysis"
    fields: tuple[FieldSpec, ...] = PROFILE_FIELDS


@dataclass(slots=True, frozen=True)
class CostBreakdownSchema:
    """Nested per-category annual costs plus currency and total."""

    kind: Literal["cost_breakdown"] = "cost_breakdown"
    block_tag: str = "cost_breakdown"
    fields: tuple[FieldSpec, ...] = COST_FIELDS


@dataclass(slots=True, frozen=True)
class RecommendationSetSchema:
    """Ordered `record_id | rank` pairs validated against the catalog."""

    kind: Literal["recommendation_set"] = "recommendation_set"
    block_tag: str = "recommendations"
    required_count: int = 5
    fields: tuple[FieldSpec, ...] = field(
        default=(FieldSpec("recommendations", "list", ()),)
    )


@dataclass(slots=True, frozen=True)
class FlashcardSetSchema:
    """A JSON array of question/answer objects."""

    kind: Literal["flashcard_set"] = "flashcard_set"
    block_tag: str = "flashcards"
    min_cards: int = 1
    max_cards: int = 20
    fields: tuple[FieldSpec, ...] = field(default=(FieldSpec("cards", "list", ()),))


ExtractionSchema = Union[
    ProfileAnalysisSchema,
    CostBreakdownSchema,
    RecommendationSetSchema,
    FlashcardSetSchema,
]


def default_fields(schema: ExtractionSchema) -> dict[str, Any]:
    return {spec.name: spec.default for spec in schema.fields}


def field_names(schema: ExtractionSchema) -> frozenset[str]:
    return frozenset(spec.name for spec in schema.fields)
