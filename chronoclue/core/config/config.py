"""Aggregate configuration for Chronoclue."""

from pydantic import BaseModel, Field, ValidationError

from chronoclue.core.config.llm_config import LLMConfig
from chronoclue.core.config.logging_config import LoggingConfig
from chronoclue.core.config.pipeline_config import PipelineConfig, QualityConfig
from chronoclue.core.exceptions.pipeline import ConfigurationError


class Config(BaseModel):
    """Top-level configuration bundle."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls) -> "Config":
        """Build configuration from environment variables and defaults.

        Raises:
            ConfigurationError: If any section fails validation
        """
        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
