"""Pipeline, admission-control and quality gate configuration for Chronoclue."""

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self

from chronoclue.core.constants import DEFAULT_TARGET_COUNT


class RateLimitConfig(BaseModel):
    """Token bucket settings for outbound LLM calls."""

    tokens_per_second: float = Field(default=10.0, gt=0, description="Sustained admission rate")
    burst_capacity: int = Field(default=20, ge=1, description="Bucket size")


class PipelineConfig(BaseSettings):
    """Attempt/cycle ceilings and batch sizing.

    Environment Variables:
        CHRONOCLUE_PIPELINE_MAX_TOTAL_ATTEMPTS=4
        CHRONOCLUE_PIPELINE_RATE_LIMIT__TOKENS_PER_SECOND=10
    """

    model_config = SettingsConfigDict(
        env_prefix="CHRONOCLUE_PIPELINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    max_total_attempts: int = Field(default=4, ge=1)
    max_critic_cycles: int = Field(default=2, ge=1)
    min_required_events: int = Field(default=6, ge=1)
    max_selected_events: int = Field(default=10, ge=1)
    min_candidates: int = Field(default=12, ge=1, description="Fewest candidates a generation may return")
    max_candidates: int = Field(default=18, ge=1, description="Most candidates kept from a generation")
    default_target_count: int = Field(default=DEFAULT_TARGET_COUNT, ge=1)
    max_concurrent_runs: int = Field(
        default=0, ge=0, description="Cap on concurrently running years (0 = unbounded)"
    )
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        if self.max_selected_events < self.min_required_events:
            raise ValueError(
                f"max_selected_events ({self.max_selected_events}) must be >= "
                f"min_required_events ({self.min_required_events})"
            )
        if self.max_candidates < self.min_candidates:
            raise ValueError(
                f"max_candidates ({self.max_candidates}) must be >= "
                f"min_candidates ({self.min_candidates})"
            )
        return self


class QualityConfig(BaseSettings):
    """Semantic leakage validator settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHRONOCLUE_QUALITY_",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    leak_phrases_path: str | None = Field(
        default=None, description="JSON file persisting learned leak phrases"
    )
    max_learned_phrases: int = Field(default=10_000, ge=0)
    embedding_dims: int = Field(default=256, ge=2)
