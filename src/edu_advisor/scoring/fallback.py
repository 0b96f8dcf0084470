"""Deterministic fallback ranking when model output is unusable or short."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from edu_advisor.catalog import UniversityCatalog
from edu_advisor.config import ScoringConfig
from edu_advisor.types import (
    EntryOrigin,
    RankedRecommendation,
    ScoredRecord,
    StudentProfile,
    University,
)

logger = logging.getLogger(__name__)


class DeterministicFallbackScorer:
    """Ranks catalog records against a profile without any model dependency.

    Score for one record:
    - academic fit: `academic_weight * max(0, 1 - |profile tier - record tier| / tier_span)`,
      a symmetric falloff around the profile's strength tier;
    - budget: `budget_weight` when the annual cost lies inside the profile's
      budget band, nothing outside it;
    - categories: `category_weight` for each preferred category the record
      is tagged with.

    Ties fall to the more selective record, then the cheaper one, then
    catalog order, so a fixed catalog and profile always rank identically.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self.config = config or ScoringConfig()

    def score(self, record: University, profile: StudentProfile) -> ScoredRecord:
        cfg = self.config
        distance = abs(profile.strength_tier - record.selectivity_tier)
        academic = cfg.academic_weight * max(0.0, 1.0 - distance / cfg.tier_span)
        in_budget = profile.budget_min <= record.annual_cost <= profile.budget_max
        budget = cfg.budget_weight if in_budget else 0.0
        matched = sorted(profile.preferred_categories & record.tags)
        categories = cfg.category_weight * len(matched)

        notes = [
            f"academic fit {academic:.1f} (tier {profile.strength_tier} vs {record.selectivity_tier})",
            f"budget {'+' if in_budget else ''}{budget:.1f}",
        ]
        if matched:
            notes.append(f"categories {', '.join(matched)} +{categories:.1f}")
        notes.extend(_requirement_notes(record, profile))

        return ScoredRecord(
            record=record,
            score=round(academic + budget + categories, 6),
            rationale="; ".join(notes),
        )

    def rank(
        self,
        catalog: UniversityCatalog,
        profile: StudentProfile,
        *,
        limit: int | None = None,
    ) -> list[ScoredRecord]:
        scored = [self.score(record, profile) for record in catalog]
        scored.sort(
            key=lambda item: (
                -item.score,
                -item.record.selectivity_tier,
                item.record.annual_cost,
                catalog.position(item.record),
            )
        )
        return scored[:limit] if limit is not None else scored

    def merge(
        self,
        extracted: Sequence[RankedRecommendation],
        catalog: UniversityCatalog,
        profile: StudentProfile,
        required: int,
    ) -> list[RankedRecommendation]:
        """Keep extracted entries first, then pad from the fallback ranking.

        The output never repeats a record and holds `required` entries unless
        the catalog itself is smaller. Ranks are renumbered from 1.
        """
        seen: set[str] = set()
        merged: list[RankedRecommendation] = []
        for entry in extracted:
            key = entry.record_id.casefold()
            if key in seen:
                continue
            seen.add(key)
            merged.append(entry)

        padded = 0
        if len(merged) < required:
            for item in self.rank(catalog, profile):
                if len(merged) >= required:
                    break
                key = item.record.record_id.casefold()
                if key in seen:
                    continue
                seen.add(key)
                merged.append(
                    RankedRecommendation(
                        record_id=item.record.record_id,
                        rank=0,
                        origin=EntryOrigin.FALLBACK,
                    )
                )
                padded += 1

        if padded:
            logger.info(
                "Fallback scorer padded %d of %d recommendations", padded, len(merged)
            )
        return [
            RankedRecommendation(record_id=entry.record_id, rank=index, origin=entry.origin)
            for index, entry in enumerate(merged[:required], start=1)
        ]


def strength_tier_from_score(score: float, *, max_score: float = 100.0) -> int:
    """Map a profile strength score onto the 1..5 selectivity scale."""
    ratio = min(max(score / max_score, 0.0), 1.0) if max_score > 0 else 0.0
    return 1 + min(4, int(ratio * 5))


def _requirement_notes(record: University, profile: StudentProfile) -> list[str]:
    checks = (
        ("GPA", profile.gpa, record.min_gpa),
        ("SAT", profile.sat, record.min_sat),
        ("TOEFL", profile.toefl, record.min_toefl),
    )
    notes: list[str] = []
    for label, actual, required in checks:
        if actual is None or required is None:
            continue
        verdict = "meets" if actual >= required else "below"
        notes.append(f"{verdict} {label} {required:g}")
    return notes
