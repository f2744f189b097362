"""LLM provider interface for the clue generation stages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.reasoning_tokens


@dataclass(frozen=True)
class CostBreakdown:
    """USD cost of one completion."""

    input_usd: float = 0.0
    output_usd: float = 0.0
    reasoning_usd: float = 0.0
    cache_savings_usd: float = 0.0
    total_usd: float = 0.0


@dataclass
class LLMResponse:
    """Response from an LLM completion."""

    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: CostBreakdown = field(default_factory=CostBreakdown)
    data: Any = None
    request_id: str | None = None
    latency_ms: float = 0.0
    cache_hit: bool = False
    cache_key: str | None = None
    cache_status: str | None = None
    fallback_from: str | None = None
    finish_reason: str | None = None

    @property
    def tokens_used(self) -> int:
        return self.usage.total_tokens


class LLMProvider(ABC):
    """Abstract base class for completion providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Primary model name."""
        ...

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        max_completion_tokens: int | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        """Generate a free-text completion."""
        ...

    @abstractmethod
    async def complete_structured(
        self,
        prompt: str,
        json_schema: dict[str, Any],
        system: str | None = None,
        max_completion_tokens: int | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        """Generate a JSON completion; the parsed object is returned in ``data``.

        Raises:
            LLMProviderError: If the service keeps failing after retries
            LLMResponseError: If the payload is empty or not valid JSON
        """
        ...

    @abstractmethod
    def estimate_tokens(self, text: str) -> int:
        """Estimate token count for text."""
        ...

    @abstractmethod
    def get_usage_stats(self) -> dict[str, Any]:
        """Get cumulative usage statistics."""
        ...
