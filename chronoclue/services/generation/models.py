"""Stage outcomes and the stage contracts the orchestrator depends on."""

from dataclasses import dataclass, field
from typing import Protocol

from chronoclue.core.models import CandidateEvent, CritiqueResult, Era, GeneratorYear
from chronoclue.interfaces.llm_provider import LLMResponse, TokenUsage


@dataclass(frozen=True)
class LLMCallInfo:
    """Accounting details for one stage call."""

    request_id: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost_usd: float = 0.0
    cache_hit: bool = False
    fallback_from: str | None = None

    @classmethod
    def from_response(cls, response: LLMResponse) -> "LLMCallInfo":
        return cls(
            request_id=response.request_id or "",
            model=response.model,
            usage=response.usage,
            cost_usd=response.cost.total_usd,
            cache_hit=response.cache_hit,
            fallback_from=response.fallback_from,
        )


@dataclass(frozen=True)
class GenerationOutcome:
    year: GeneratorYear
    candidates: list[CandidateEvent]
    llm: LLMCallInfo


@dataclass(frozen=True)
class CritiqueOutcome:
    results: list[CritiqueResult]
    # None when there was nothing to critique and no call was made
    llm: LLMCallInfo | None
    deterministic_failures: int = 0


@dataclass(frozen=True)
class RevisionOutcome:
    rewrites: list[CandidateEvent]
    llm: LLMCallInfo | None


class CandidateSource(Protocol):
    async def generate(self, year: int, era: Era) -> GenerationOutcome: ...


class CandidateCritic(Protocol):
    async def critique(
        self, year: int, era: Era, candidates: list[CandidateEvent]
    ) -> CritiqueOutcome: ...


class CandidateRewriter(Protocol):
    async def revise(
        self, failing: list[CritiqueResult], year: int, era: Era
    ) -> RevisionOutcome: ...
