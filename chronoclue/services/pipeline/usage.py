"""Token and cost accounting across pipeline stages."""

from dataclasses import dataclass, field
from typing import Any

from chronoclue.services.generation.models import LLMCallInfo


@dataclass
class StageUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    fallbacks: int = 0

    def add(self, call: LLMCallInfo) -> None:
        self.input_tokens += call.usage.input_tokens
        self.output_tokens += call.usage.output_tokens
        self.reasoning_tokens += call.usage.reasoning_tokens
        self.total_tokens += call.usage.total_tokens
        self.cost_usd += call.cost_usd
        if call.cache_hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1
        if call.fallback_from:
            self.fallbacks += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "reasoningTokens": self.reasoning_tokens,
            "totalTokens": self.total_tokens,
            "costUsd": self.cost_usd,
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "fallbacks": self.fallbacks,
        }


@dataclass
class UsageSummary:
    """Per-stage usage plus the running total."""

    generator: StageUsage = field(default_factory=StageUsage)
    critic: StageUsage = field(default_factory=StageUsage)
    reviser: StageUsage = field(default_factory=StageUsage)
    total: StageUsage = field(default_factory=StageUsage)

    def record(self, stage: str, call: LLMCallInfo | None) -> None:
        """Add one call to its stage and the total; ``None`` means no call was made."""
        if call is None:
            return
        stage_usage: StageUsage = getattr(self, stage)
        stage_usage.add(call)
        self.total.add(call)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generator": self.generator.to_dict(),
            "critic": self.critic.to_dict(),
            "reviser": self.reviser.to_dict(),
            "total": self.total.to_dict(),
        }
