"""Per-year generation pipeline.

One run drives a year through generate -> critique -> revise cycles until
enough candidates pass the quality gate or the attempt budget runs out:

    ATTEMPTING -> CRITIQUING -> SELECTING                 (success)
                            -> REVISING -> CRITIQUING
                            -> ATTEMPTING -> EXHAUSTED    (failure)

Each stage call can be routed through a shared RateLimiter so the outbound
call rate stays bounded across concurrently running years.
"""

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, TypeVar

from loguru import logger

from chronoclue.core.config.pipeline_config import PipelineConfig
from chronoclue.core.constants import SCORE_EPSILON
from chronoclue.core.models import CandidateEvent, CritiqueResult, Era
from chronoclue.core.utils.stage_logging import log_stage_success
from chronoclue.core.utils.text_validation import derive_era
from chronoclue.services.generation.models import (
    CandidateCritic,
    CandidateRewriter,
    CandidateSource,
)
from chronoclue.services.pipeline.usage import UsageSummary
from chronoclue.services.quality_scores import QualityScores, compute_quality_scores
from chronoclue.services.rate_limiter import RateLimiter

T = TypeVar("T")

STAGE = "Orchestrator"

FailureReason = Literal["insufficient_quality"]
INSUFFICIENT_QUALITY: FailureReason = "insufficient_quality"


class PipelineState(str, Enum):
    ATTEMPTING = "attempting"
    CRITIQUING = "critiquing"
    REVISING = "revising"
    SELECTING = "selecting"
    EXHAUSTED = "exhausted"


TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.ATTEMPTING: frozenset({PipelineState.CRITIQUING, PipelineState.EXHAUSTED}),
    PipelineState.CRITIQUING: frozenset(
        {PipelineState.SELECTING, PipelineState.REVISING, PipelineState.ATTEMPTING}
    ),
    PipelineState.REVISING: frozenset({PipelineState.CRITIQUING}),
    PipelineState.SELECTING: frozenset(),
    PipelineState.EXHAUSTED: frozenset(),
}


class GenerationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class PipelineMetadata:
    attempts: int = 0
    critic_cycles: int = 0
    revisions: int = 0
    deterministic_failures: int = 0
    selected_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "attempts": self.attempts,
            "criticCycles": self.critic_cycles,
            "revisions": self.revisions,
            "deterministicFailures": self.deterministic_failures,
        }
        if self.selected_count is not None:
            data["selectedCount"] = self.selected_count
        return data


@dataclass
class YearGenerationResult:
    """Outcome of one pipeline run."""

    year: int
    era: Era
    status: GenerationStatus
    metadata: PipelineMetadata = field(default_factory=PipelineMetadata)
    usage: UsageSummary = field(default_factory=UsageSummary)
    events: list[CandidateEvent] = field(default_factory=list)
    quality_scores: QualityScores | None = None
    reason: FailureReason | None = None
    # Set only on synthetic failures built from an unexpected exception
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is GenerationStatus.SUCCESS

    @classmethod
    def from_exception(cls, year: int, error: BaseException) -> "YearGenerationResult":
        """Zero-usage failure standing in for a run that raised."""
        return cls(
            year=year,
            era=derive_era(year),
            status=GenerationStatus.FAILED,
            reason=INSUFFICIENT_QUALITY,
            error=f"{type(error).__name__}: {error}",
        )


@dataclass(frozen=True)
class RevisionPair:
    """A failing critique and the rewrite returned for it, if any."""

    original: CritiqueResult
    rewrite: CandidateEvent | None

    @property
    def candidate(self) -> CandidateEvent:
        return self.rewrite if self.rewrite is not None else self.original.event


def pair_revisions(
    failing: list[CritiqueResult], rewrites: list[CandidateEvent]
) -> list[RevisionPair]:
    return [
        RevisionPair(original, rewrites[index] if index < len(rewrites) else None)
        for index, original in enumerate(failing)
    ]


def rebuild_candidates(
    results: list[CritiqueResult], pairs: list[RevisionPair]
) -> list[CandidateEvent]:
    """Swap rewrites in for failing entries, keeping the original order."""
    replacements = iter(pairs)
    rebuilt = []
    for result in results:
        if result.passed:
            rebuilt.append(result.event)
        else:
            rebuilt.append(next(replacements).candidate)
    return rebuilt


def _compare(a: CritiqueResult, b: CritiqueResult) -> float:
    guess_diff = b.scores.guessability - a.scores.guessability
    if abs(guess_diff) > SCORE_EPSILON:
        return guess_diff
    factual_diff = b.scores.factual - a.scores.factual
    if abs(factual_diff) > SCORE_EPSILON:
        return factual_diff
    return a.scores.leak_risk - b.scores.leak_risk


def select_top_events(results: list[CritiqueResult], limit: int) -> list[CandidateEvent]:
    """Best passing candidates: guessability, then factual, then lowest leak risk."""
    passed = [result for result in results if result.passed]
    ranked = sorted(passed, key=functools.cmp_to_key(_compare))
    return [result.event for result in ranked[:limit]]


@dataclass
class _RunContext:
    year: int
    era: Era
    usage: UsageSummary = field(default_factory=UsageSummary)
    metadata: PipelineMetadata = field(default_factory=PipelineMetadata)
    candidates: list[CandidateEvent] = field(default_factory=list)
    cycles: int = 0
    last_results: list[CritiqueResult] = field(default_factory=list)
    selected: list[CandidateEvent] = field(default_factory=list)


class IllegalTransitionError(RuntimeError):
    pass


class PipelineOrchestrator:
    """Runs the generate/critique/revise state machine for one year at a time."""

    def __init__(
        self,
        generator: CandidateSource,
        critic: CandidateCritic,
        reviser: CandidateRewriter,
        config: PipelineConfig | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self._generator = generator
        self._critic = critic
        self._reviser = reviser
        self._config = config or PipelineConfig()
        self._rate_limiter = rate_limiter

    async def run(self, year: int) -> YearGenerationResult:
        """Generate a clue set for ``year``.

        Quality exhaustion is reported as a failed result. Stage exceptions,
        contract violations included, propagate to the caller.
        """
        ctx = _RunContext(year=year, era=derive_era(year))
        state = PipelineState.ATTEMPTING

        while state not in (PipelineState.SELECTING, PipelineState.EXHAUSTED):
            if state is PipelineState.ATTEMPTING:
                next_state = await self._attempt(ctx)
            elif state is PipelineState.CRITIQUING:
                next_state = await self._critique(ctx)
            else:
                next_state = await self._revise(ctx)

            if next_state not in TRANSITIONS[state]:
                raise IllegalTransitionError(f"{state.value} -> {next_state.value}")
            logger.debug(f"[{STAGE}] {year}: {state.value} -> {next_state.value}")
            state = next_state

        if state is PipelineState.SELECTING:
            return self._success(ctx)
        return self._failure(ctx)

    async def _admit(self, call: Callable[[], Awaitable[T]]) -> T:
        if self._rate_limiter is None:
            return await call()
        return await self._rate_limiter.execute(call)

    async def _attempt(self, ctx: _RunContext) -> PipelineState:
        if ctx.metadata.attempts >= self._config.max_total_attempts:
            return PipelineState.EXHAUSTED

        ctx.metadata.attempts += 1
        generation = await self._admit(lambda: self._generator.generate(ctx.year, ctx.era))
        ctx.usage.record("generator", generation.llm)
        ctx.candidates = list(generation.candidates)
        ctx.cycles = 0
        return PipelineState.CRITIQUING

    async def _critique(self, ctx: _RunContext) -> PipelineState:
        ctx.cycles += 1
        ctx.metadata.critic_cycles += 1

        candidates = ctx.candidates
        critique = await self._admit(
            lambda: self._critic.critique(ctx.year, ctx.era, candidates)
        )
        ctx.usage.record("critic", critique.llm)
        ctx.metadata.deterministic_failures += critique.deterministic_failures
        ctx.last_results = critique.results

        passing = sum(1 for result in critique.results if result.passed)
        logger.debug(
            f"[{STAGE}] {ctx.year} attempt {ctx.metadata.attempts} cycle {ctx.cycles}: "
            f"{passing}/{len(critique.results)} passed"
        )

        if passing >= self._config.min_required_events:
            selected = select_top_events(critique.results, self._config.max_selected_events)
            if len(selected) >= self._config.min_required_events:
                ctx.selected = selected
                return PipelineState.SELECTING

        has_failing = passing < len(critique.results)
        if not has_failing or ctx.cycles >= self._config.max_critic_cycles:
            return PipelineState.ATTEMPTING
        return PipelineState.REVISING

    async def _revise(self, ctx: _RunContext) -> PipelineState:
        failing = [result for result in ctx.last_results if not result.passed]
        revision = await self._admit(lambda: self._reviser.revise(failing, ctx.year, ctx.era))
        ctx.usage.record("reviser", revision.llm)
        ctx.metadata.revisions += 1

        pairs = pair_revisions(failing, revision.rewrites)
        ctx.candidates = rebuild_candidates(ctx.last_results, pairs)
        return PipelineState.CRITIQUING

    def _success(self, ctx: _RunContext) -> YearGenerationResult:
        quality = compute_quality_scores(ctx.last_results, ctx.selected)
        ctx.metadata.selected_count = len(ctx.selected)
        log_stage_success(
            STAGE,
            f"Pipeline completed for {ctx.year}",
            status="success",
            attempts=ctx.metadata.attempts,
            quality_overall=quality.overall,
        )
        return YearGenerationResult(
            year=ctx.year,
            era=ctx.era,
            status=GenerationStatus.SUCCESS,
            metadata=ctx.metadata,
            usage=ctx.usage,
            events=ctx.selected,
            quality_scores=quality,
        )

    def _failure(self, ctx: _RunContext) -> YearGenerationResult:
        quality = compute_quality_scores(ctx.last_results, []) if ctx.last_results else None
        log_stage_success(
            STAGE,
            f"Pipeline completed for {ctx.year}",
            status="failed",
            attempts=ctx.metadata.attempts,
            quality_overall=quality.overall if quality else None,
        )
        return YearGenerationResult(
            year=ctx.year,
            era=ctx.era,
            status=GenerationStatus.FAILED,
            metadata=ctx.metadata,
            usage=ctx.usage,
            quality_scores=quality,
            reason=INSUFFICIENT_QUALITY,
        )
