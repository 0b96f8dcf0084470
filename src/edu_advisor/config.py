"""Configuration models for the advisory pipeline."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field


class StreamConfig(BaseModel):
    """Configures server-push line framing."""

    data_prefix: str = Field(default="data:", min_length=1)
    done_sentinel: str = Field(default="[DONE]", min_length=1)
    max_line_bytes: int = Field(default=1_048_576, ge=1024)


class ExtractionConfig(BaseModel):
    """Configures numeric bounds applied while extracting fields."""

    min_strength_score: float = Field(default=0.0)
    max_strength_score: float = Field(default=100.0)


class ScoringConfig(BaseModel):
    """Configures the rule-based fallback scorer."""

    academic_weight: float = Field(default=50.0, ge=0.0)
    budget_weight: float = Field(default=30.0, ge=0.0)
    category_weight: float = Field(default=10.0, ge=0.0)
    tier_span: int = Field(default=4, ge=1)


class AdvisoryConfig(BaseModel):
    """Configures advisory sessions and the LLM backend."""

    required_recommendations: int = Field(default=5, ge=1)
    base_url: str = Field(default="https://api.openai.com/v1")
    model: str = Field(default="gpt-4o-mini")
    api_key: str | None = None
    timeout_seconds: float = Field(default=120.0, gt=0.0)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    @classmethod
    def from_env(cls) -> "AdvisoryConfig":
        values: dict[str, object] = {"api_key": os.getenv("LLM_API_KEY")}
        if os.getenv("EDU_ADVISOR_BASE_URL"):
            values["base_url"] = os.environ["EDU_ADVISOR_BASE_URL"]
        if os.getenv("EDU_ADVISOR_MODEL"):
            values["model"] = os.environ["EDU_ADVISOR_MODEL"]
        if os.getenv("EDU_ADVISOR_REQUIRED_RECOMMENDATIONS"):
            values["required_recommendations"] = int(
                os.environ["EDU_ADVISOR_REQUIRED_RECOMMENDATIONS"]
            )
        return cls.model_validate(values)
