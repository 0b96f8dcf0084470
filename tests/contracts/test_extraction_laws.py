import json

import pytest

from edu_advisor.extraction.extractor import SchemaExtractor
from edu_advisor.extraction.schemas import (
    CostBreakdownSchema,
    FlashcardSetSchema,
    ProfileAnalysisSchema,
    RecommendationSetSchema,
    default_fields,
)
from edu_advisor.stream.accumulator import ContentAccumulator
from edu_advisor.stream.decoder import ChunkDecoder
from edu_advisor.stream.transport import sse_frames
from edu_advisor.types import ExtractionStatus

SAMPLES = [
    (ProfileAnalysisSchema(), ""),
    (ProfileAnalysisSchema(), "Summary: Great fit for engineering.\nScore: 81"),
    (
        ProfileAnalysisSchema(),
        "<profile_analysis><strength_score>55</strength_score><summary>Ok</summary>"
        "<assessment>Fine</assessment><action_items><item>Study</item></action_items>"
        "</profile_analysis>",
    ),
    (CostBreakdownSchema(), "Tuition: $30,000\nHousing: 9,000\nTotal: 39000"),
    (CostBreakdownSchema(), "<cost_breakdown><total>100</total>"),
    (RecommendationSetSchema(), "<recommendations>\ntum | 1\nmonash | 2\n</recommendations>"),
    (RecommendationSetSchema(), "1. harvard\n2. yale"),
    (FlashcardSetSchema(), '[{"question": "Q1", "answer": "A1"}]'),
    (FlashcardSetSchema(), "no cards here"),
]


@pytest.mark.parametrize(("schema", "text"), SAMPLES)
def test_extraction_is_deterministic(schema, text, catalog) -> None:
    first = SchemaExtractor().extract(text, schema, catalog).as_dict()
    second = SchemaExtractor().extract(text, schema, catalog).as_dict()

    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


@pytest.mark.parametrize(("schema", "text"), SAMPLES)
def test_status_matches_missing_fields(schema, text, catalog) -> None:
    result = SchemaExtractor().extract(text, schema, catalog)
    defaults = default_fields(schema)

    assert set(result.fields) == set(defaults)
    assert (result.status is ExtractionStatus.COMPLETE) == (not result.missing_fields)
    if result.status is ExtractionStatus.FAILED:
        assert result.missing_fields == set(defaults)
    for name in result.missing_fields:
        if schema.kind != "recommendation_set" and schema.kind != "flashcard_set":
            assert result.fields[name] == defaults[name]


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 16, 64, 4096])
def test_accumulated_text_equals_fragment_concatenation(chunk_size) -> None:
    texts = ["Die ", "Universität ", "Zürich ", "· 🎓 ", "ok"]
    frames = [
        json.dumps({"choices": [{"delta": {"content": text}}]}, ensure_ascii=False)
        for text in texts
    ]
    stream = "".join(f"data: {frame}\n\n" for frame in frames).encode("utf-8")
    stream += b"".join(sse_frames([]))
    decoder = ChunkDecoder()
    accumulator = ContentAccumulator()

    for index in range(0, len(stream), chunk_size):
        for fragment in decoder.feed(stream[index : index + chunk_size]):
            accumulator.append(fragment)
    for fragment in decoder.close():
        accumulator.append(fragment)

    assert accumulator.complete
    assert accumulator.final_text() == "".join(texts)
