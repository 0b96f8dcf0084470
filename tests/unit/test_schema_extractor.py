import pytest

from edu_advisor.extraction.extractor import SchemaExtractor
from edu_advisor.extraction.schemas import (
    CostBreakdownSchema,
    FlashcardSetSchema,
    ProfileAnalysisSchema,
    RecommendationSetSchema,
)
from edu_advisor.types import EntryOrigin, ExtractionStatus, Flashcard

PROFILE_TEXT = """Thanks for sharing your profile! Here is my take.

<profile_analysis>
<strength_score>78</strength_score>
<summary>Strong STEM background with solid grades.</summary>
<assessment>GPA and SAT sit above the median for tier 4 schools.</assessment>
<action_items>
<item>Retake the TOEFL</item>
<item>Add a research project</item>
</action_items>
</profile_analysis>

Good luck with your applications!"""

COST_TEXT_WITHOUT_INSURANCE = """Studying in Munich is affordable.
<cost_breakdown>
<currency>EUR</currency>
<categories>
<tuition>12,500</tuition>
<housing>€6,000</housing>
<food>3000</food>
<books>450</books>
<transport>600</transport>
</categories>
<total>22550</total>
</cost_breakdown>"""


def test_profile_structured_block_inside_prose_is_complete() -> None:
    result = SchemaExtractor().extract(PROFILE_TEXT, ProfileAnalysisSchema())

    assert result.status is ExtractionStatus.COMPLETE
    assert result.missing_fields == frozenset()
    assert result.strategy == "structured"
    assert result.fields["strength_score"] == 78.0
    assert result.fields["summary"] == "Strong STEM background with solid grades."
    assert result.fields["action_items"] == ("Retake the TOEFL", "Add a research project")


def test_profile_labelled_lines_use_heuristic_parser() -> None:
    text = (
        "Strength score: 64/100\n"
        "Summary: Balanced profile with room to grow.\n"
        "Assessment: Grades are fine but test scores lag.\n"
        "Next steps:\n"
        "- Take the SAT again\n"
        "- Visit campuses\n"
    )

    result = SchemaExtractor().extract(text, ProfileAnalysisSchema())

    assert result.status is ExtractionStatus.COMPLETE
    assert result.strategy == "heuristic"
    assert result.fields["strength_score"] == 64.0
    assert result.fields["action_items"] == ("Take the SAT again", "Visit campuses")


def test_truncated_block_is_treated_as_absent() -> None:
    text = "<profile_analysis>\n<strength_score>81</strength_score>\n<summary>Cut off"

    result = SchemaExtractor().extract(text, ProfileAnalysisSchema())

    assert result.status is ExtractionStatus.FAILED
    assert result.missing_fields == {"strength_score", "summary", "assessment", "action_items"}
    assert result.fields["strength_score"] == 0.0


def test_strength_score_is_clamped_to_configured_bounds() -> None:
    text = "<profile_analysis><strength_score>140</strength_score></profile_analysis>"

    result = SchemaExtractor().extract(text, ProfileAnalysisSchema())

    assert result.status is ExtractionStatus.PARTIAL
    assert result.fields["strength_score"] == 100.0
    assert result.missing_fields == {"summary", "assessment", "action_items"}


def test_cost_missing_nested_field_is_partial_with_default() -> None:
    result = SchemaExtractor().extract(COST_TEXT_WITHOUT_INSURANCE, CostBreakdownSchema())

    assert result.status is ExtractionStatus.PARTIAL
    assert result.missing_fields == {"categories.insurance"}
    assert result.fields["categories.insurance"] == 0.0
    assert result.fields["categories.tuition"] == 12500.0
    assert result.fields["categories.housing"] == 6000.0
    assert result.fields["currency"] == "EUR"


def test_cost_accepts_named_category_attributes() -> None:
    text = """<cost_breakdown>
<currency>USD</currency>
<categories>
<category name="tuition" amount="$41,000"/>
<category name="housing" amount="14000"/>
<category name="food" amount="5200"/>
<category name="insurance" amount="2400"/>
<category name="books" amount="1200"/>
<category name="transport" amount="900"/>
</categories>
<total value="64700"/>
</cost_breakdown>"""

    result = SchemaExtractor().extract(text, CostBreakdownSchema())

    assert result.status is ExtractionStatus.COMPLETE
    assert result.fields["categories.tuition"] == 41000.0
    assert result.fields["total"] == 64700.0


def test_recommendations_drop_unknown_identifiers(catalog) -> None:
    text = """Here are my picks:
<recommendations>
mit | 1
fake-university | 2
Stanford | 3
ghost | 4
oxford | 5
</recommendations>"""

    result = SchemaExtractor().extract(text, RecommendationSetSchema(), catalog)

    assert result.status is ExtractionStatus.PARTIAL
    assert result.missing_fields == {"recommendations"}
    entries = result.fields["recommendations"]
    assert [entry.record_id for entry in entries] == ["mit", "stanford", "oxford"]
    assert [entry.rank for entry in entries] == [1, 3, 5]
    assert all(entry.origin is EntryOrigin.MODEL for entry in entries)


def test_recommendations_from_numbered_lines(catalog) -> None:
    text = (
        "1. TUM (id: tum) - excellent engineering value\n"
        "2. monash\n"
        "3. ubc\n"
        "4. State University (state)\n"
        "5. oxford\n"
    )

    result = SchemaExtractor().extract(text, RecommendationSetSchema(), catalog)

    assert result.status is ExtractionStatus.COMPLETE
    assert result.strategy == "heuristic"
    assert [entry.record_id for entry in result.fields["recommendations"]] == [
        "tum",
        "monash",
        "ubc",
        "state",
        "oxford",
    ]


def test_recommendations_with_only_unknown_identifiers_fail(catalog) -> None:
    text = "<recommendations>\nharvard | 1\nyale | 2\n</recommendations>"

    result = SchemaExtractor().extract(text, RecommendationSetSchema(), catalog)

    assert result.status is ExtractionStatus.FAILED
    assert result.fields["recommendations"] == ()


def test_recommendations_require_a_catalog() -> None:
    with pytest.raises(ValueError):
        SchemaExtractor().extract("<recommendations>mit</recommendations>", RecommendationSetSchema())


def test_flashcards_from_json_array() -> None:
    text = """Here you go:
[
  {"question": "What is GPA?", "answer": "Grade point average."},
  {"front": "TOEFL measures?", "back": "English proficiency."},
  {"question": "broken"}
]"""

    result = SchemaExtractor().extract(text, FlashcardSetSchema())

    assert result.status is ExtractionStatus.COMPLETE
    assert result.strategy == "structured"
    assert result.fields["cards"] == (
        Flashcard("What is GPA?", "Grade point average."),
        Flashcard("TOEFL measures?", "English proficiency."),
    )


def test_flashcards_fall_back_to_question_answer_lines() -> None:
    text = "Q: What is a safety school?\nA: A school you are very likely to get into.\n"

    result = SchemaExtractor().extract(text, FlashcardSetSchema())

    assert result.status is ExtractionStatus.COMPLETE
    assert result.strategy == "heuristic"
    assert result.fields["cards"] == (
        Flashcard("What is a safety school?", "A school you are very likely to get into."),
    )


def test_unstructured_text_fails_with_defaults() -> None:
    result = SchemaExtractor().extract("I could not produce flashcards.", FlashcardSetSchema())

    assert result.status is ExtractionStatus.FAILED
    assert result.fields == {"cards": ()}
    assert result.missing_fields == {"cards"}
    assert result.strategy == "none"


def test_flashcards_pair_alternating_unmarked_lines() -> None:
    text = "What is GPA?\nGrade point average.\n\n2. What does TOEFL test?\nEnglish proficiency.\n"

    result = SchemaExtractor().extract(text, FlashcardSetSchema())

    assert result.status is ExtractionStatus.COMPLETE
    assert result.strategy == "heuristic"
    assert result.fields["cards"] == (
        Flashcard("What is GPA?", "Grade point average."),
        Flashcard("What does TOEFL test?", "English proficiency."),
    )


def test_flashcards_drop_trailing_unpaired_line() -> None:
    text = "Q: What is ED?\nEarly decision.\nWhat is EA?"

    result = SchemaExtractor().extract(text, FlashcardSetSchema())

    assert result.fields["cards"] == (Flashcard("What is ED?", "Early decision."),)
