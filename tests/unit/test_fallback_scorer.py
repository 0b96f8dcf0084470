from edu_advisor.catalog import UniversityCatalog
from edu_advisor.scoring.fallback import DeterministicFallbackScorer, strength_tier_from_score
from edu_advisor.types import EntryOrigin, RankedRecommendation, StudentProfile, University


def test_score_combines_academic_budget_and_category_terms(catalog, profile) -> None:
    scorer = DeterministicFallbackScorer()

    tum = scorer.score(catalog.resolve("tum"), profile)
    mit = scorer.score(catalog.resolve("mit"), profile)

    assert tum.score == 90.0
    assert mit.score == 47.5
    assert "categories engineering" in tum.rationale


def test_rank_orders_by_score_then_tier_then_cost(catalog, profile) -> None:
    ranked = DeterministicFallbackScorer().rank(catalog, profile)

    assert [item.record.record_id for item in ranked] == [
        "tum",
        "monash",
        "oxford",
        "ubc",
        "state",
        "toronto",
        "mit",
        "stanford",
    ]


def test_full_ties_keep_catalog_order() -> None:
    twins = UniversityCatalog(
        [
            University("beta", "Beta", 3, 20_000),
            University("alpha", "Alpha", 3, 20_000),
        ]
    )

    ranked = DeterministicFallbackScorer().rank(twins, StudentProfile(strength_tier=3))

    assert [item.record.record_id for item in ranked] == ["beta", "alpha"]


def test_merge_keeps_extracted_entries_and_pads_with_fallback(catalog, profile) -> None:
    extracted = [
        RankedRecommendation("mit", 1),
        RankedRecommendation("stanford", 3),
        RankedRecommendation("oxford", 5),
    ]

    merged = DeterministicFallbackScorer().merge(extracted, catalog, profile, 5)

    assert [entry.record_id for entry in merged] == ["mit", "stanford", "oxford", "tum", "monash"]
    assert [entry.rank for entry in merged] == [1, 2, 3, 4, 5]
    assert [entry.origin for entry in merged] == [EntryOrigin.MODEL] * 3 + [EntryOrigin.FALLBACK] * 2


def test_merge_never_exceeds_a_small_catalog(profile) -> None:
    small = UniversityCatalog([University("solo", "Solo", 3, 9_000)])

    merged = DeterministicFallbackScorer().merge([], small, profile, 5)

    assert [entry.record_id for entry in merged] == ["solo"]


def test_requirement_notes_in_rationale() -> None:
    record = University("ivy", "Ivy", 5, 60_000, min_gpa=3.8, min_toefl=100)
    student = StudentProfile(strength_tier=5, gpa=3.9, toefl=95)

    rationale = DeterministicFallbackScorer().score(record, student).rationale

    assert "meets GPA 3.8" in rationale
    assert "below TOEFL 100" in rationale


def test_strength_tier_from_score_boundaries() -> None:
    assert strength_tier_from_score(0) == 1
    assert strength_tier_from_score(39.9) == 2
    assert strength_tier_from_score(60) == 4
    assert strength_tier_from_score(100) == 5
    assert strength_tier_from_score(150) == 5
