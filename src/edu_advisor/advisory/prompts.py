"""Schema-specific instructions rendered into streaming request bodies."""

from __future__ import annotations

from typing import Any

from langchain_core.prompts import ChatPromptTemplate

from edu_advisor.catalog import UniversityCatalog
from edu_advisor.config import AdvisoryConfig
from edu_advisor.extraction.schemas import ExtractionSchema
from edu_advisor.types import StudentProfile

_BASE_RULES = """
You are an education advisor for students applying to universities.
Write a short, friendly explanation first. Then emit exactly one structured
block in the format below. Never emit the block twice and never leave it open.
""".strip()

_SYSTEM_PROMPTS: dict[str, str] = {
    "profile_analysis": _BASE_RULES
    + """

<profile_analysis>
<strength_score>0-100</strength_score>
<summary>one paragraph</summary>
<assessment>academic assessment</assessment>
<action_items>
<item>concrete next step</item>
</action_items>
</profile_analysis>""",
    "recommendation_set": _BASE_RULES
    + """

Only use record ids from the catalog, one per line, best match first:
<recommendations>
record_id | rank
</recommendations>""",
    "cost_breakdown": _BASE_RULES
    + """

All amounts are annual numbers without currency symbols:
<cost_breakdown>
<currency>ISO code</currency>
<categories>
<tuition>0</tuition>
<housing>0</housing>
<food>0</food>
<insurance>0</insurance>
<books>0</books>
<transport>0</transport>
</categories>
<total>0</total>
</cost_breakdown>""",
    "flashcard_set": """
You are an AI assistant that creates educational flashcards. Generate 5-10
high-quality flashcards from the provided content. Each flashcard has a clear
question and a concise, informative answer. Respond with a JSON array of
objects with "question" and "answer" fields, for example:
[{{"question": "...", "answer": "..."}}]
""".strip(),
}

_HUMAN_PROMPTS: dict[str, str] = {
    "profile_analysis": "Analyse this student profile:\n{profile}",
    "recommendation_set": (
        "Recommend {count} universities for this student.\n\n"
        "Profile:\n{profile}\n\nCatalog (id | name | tier | annual cost | tags):\n{catalog}"
    ),
    "cost_breakdown": (
        "Estimate the annual cost of studying at {university} for this student.\n\n"
        "Profile:\n{profile}"
    ),
    "flashcard_set": "Please generate educational flashcards from this content:\n\n{content}",
}

_ROLES = {"system": "system", "human": "user", "ai": "assistant"}


def prompt_for(schema: ExtractionSchema) -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages(
        [
            ("system", _SYSTEM_PROMPTS[schema.kind]),
            ("human", _HUMAN_PROMPTS[schema.kind]),
        ]
    )


def build_request(
    schema: ExtractionSchema,
    context: dict[str, Any],
    config: AdvisoryConfig | None = None,
) -> dict[str, Any]:
    """Render an OpenAI-compatible streaming chat-completion body."""
    config = config or AdvisoryConfig()
    variables = dict(context)
    if schema.kind == "recommendation_set":
        variables.setdefault("count", schema.required_count)
    messages = prompt_for(schema).format_messages(**variables)
    return {
        "model": config.model,
        "messages": [
            {"role": _ROLES.get(message.type, "user"), "content": str(message.content)}
            for message in messages
        ],
        "temperature": config.temperature,
        "stream": True,
    }


def describe_profile(profile: StudentProfile) -> str:
    lines = [f"Strength tier: {profile.strength_tier} of 5"]
    if profile.budget_max != float("inf") or profile.budget_min > 0:
        lines.append(f"Annual budget: {profile.budget_min:,.0f} - {profile.budget_max:,.0f}")
    if profile.preferred_categories:
        lines.append(f"Preferred fields: {', '.join(sorted(profile.preferred_categories))}")
    for label, value in (("GPA", profile.gpa), ("SAT", profile.sat), ("TOEFL", profile.toefl)):
        if value is not None:
            lines.append(f"{label}: {value}")
    return "\n".join(lines)


def describe_catalog(catalog: UniversityCatalog) -> str:
    return "\n".join(
        f"{record.record_id} | {record.name} | {record.selectivity_tier} | "
        f"{record.annual_cost:,.0f} | {', '.join(sorted(record.tags))}"
        for record in catalog
    )
