"""
LLM configuration for Chronoclue.

Configuration Sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (CHRONOCLUE_LLM_*)
3. OPENROUTER_API_KEY for the API key only
4. Default values

Environment Variables:
    CHRONOCLUE_LLM_API_KEY=sk-or-...
    CHRONOCLUE_LLM_BASE_URL=https://openrouter.ai/api/v1/chat/completions
    CHRONOCLUE_LLM_GENERATOR__MODEL=google/gemini-3-pro-preview
"""

import os
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self

from chronoclue.core.constants import (
    DEFAULT_CRITIC_MODEL,
    DEFAULT_FALLBACK_MODEL,
    DEFAULT_GENERATOR_MODEL,
    OPENROUTER_DEFAULT_BASE_URL,
)

ThinkingLevel = Literal["low", "medium", "high"]


class StageModelConfig(BaseModel):
    """Per-stage model settings (generator, critic, reviser)."""

    model: str = Field(description="Primary model for this stage")
    temperature: float = Field(default=0.35, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=6_000, gt=0)
    thinking_level: ThinkingLevel = Field(default="medium")


class LLMConfig(BaseSettings):
    """OpenRouter client configuration shared by all pipeline stages."""

    model_config = SettingsConfigDict(
        env_prefix="CHRONOCLUE_LLM_",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    api_key: SecretStr | None = Field(
        default=None, description="OpenRouter API key (falls back to OPENROUTER_API_KEY)"
    )
    base_url: str = Field(
        default=OPENROUTER_DEFAULT_BASE_URL,
        description="Chat completions endpoint",
    )
    fallback_model: str | None = Field(
        default=DEFAULT_FALLBACK_MODEL,
        description="Model used after the primary model exhausts its retries",
    )
    timeout: float = Field(default=120.0, gt=0, description="Request timeout in seconds")
    max_attempts: int = Field(default=3, ge=1, description="Attempts per model")
    backoff_base: float = Field(default=1.0, ge=0, description="Base backoff in seconds")
    max_backoff: float = Field(default=15.0, ge=0, description="Backoff ceiling in seconds")
    jitter_ratio: float = Field(default=0.25, ge=0, le=1)
    cache_system_prompt: bool = Field(default=True)
    cache_ttl_seconds: int = Field(default=86_400, ge=0)

    generator: StageModelConfig = Field(
        default_factory=lambda: StageModelConfig(
            model=DEFAULT_GENERATOR_MODEL,
            temperature=0.8,
            max_output_tokens=32_000,
            thinking_level="high",
        )
    )
    critic: StageModelConfig = Field(
        default_factory=lambda: StageModelConfig(
            model=DEFAULT_CRITIC_MODEL,
            temperature=0.2,
            max_output_tokens=32_000,
            thinking_level="low",
        )
    )
    reviser: StageModelConfig = Field(
        default_factory=lambda: StageModelConfig(
            model=DEFAULT_GENERATOR_MODEL,
            temperature=0.6,
            max_output_tokens=16_000,
            thinking_level="medium",
        )
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an absolute http(s) URL, got '{v}'")
        return v

    @model_validator(mode="after")
    def resolve_api_key(self) -> Self:
        """Fall back to OPENROUTER_API_KEY when no prefixed key is configured."""
        if self.api_key is None:
            env_key = os.getenv("OPENROUTER_API_KEY")
            if env_key:
                self.api_key = SecretStr(env_key)
        return self

    def is_configured(self) -> bool:
        """Check if an API key is available."""
        return self.api_key is not None and bool(self.api_key.get_secret_value())
