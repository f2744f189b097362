"""Wire the pipeline together from configuration."""

from pathlib import Path

from chronoclue.core.config.config import Config
from chronoclue.interfaces.llm_provider import LLMProvider
from chronoclue.interfaces.puzzle_store import AlertNotifier, PuzzleStore
from chronoclue.providers.llm.openrouter_provider import OpenRouterProvider
from chronoclue.services.coverage.allocator import CoverageAllocator
from chronoclue.services.generation import CandidateGenerator, CandidateReviser, QualityGate
from chronoclue.services.pipeline.batch_runner import BatchRunner
from chronoclue.services.pipeline.orchestrator import PipelineOrchestrator
from chronoclue.services.quality.leakage import QualityValidator, SemanticLeakageDetector
from chronoclue.services.quality.phrase_store import LeakPhraseStore
from chronoclue.services.rate_limiter import RateLimiter


def create_quality_validator(config: Config) -> QualityValidator:
    quality = config.quality
    store = LeakPhraseStore(Path(quality.leak_phrases_path)) if quality.leak_phrases_path else None
    return QualityValidator(
        detector=SemanticLeakageDetector(dims=quality.embedding_dims),
        phrase_store=store,
        max_learned_phrases=quality.max_learned_phrases,
    )


def create_orchestrator(
    config: Config,
    generator_llm: LLMProvider | None = None,
    critic_llm: LLMProvider | None = None,
    reviser_llm: LLMProvider | None = None,
    rate_limiter: RateLimiter | None = None,
) -> PipelineOrchestrator:
    """Build a PipelineOrchestrator; missing providers are created for OpenRouter.

    Raises:
        ConfigurationError: If a provider must be created and no API key is set
    """
    pipeline = config.pipeline
    generator_llm = generator_llm or OpenRouterProvider.from_config(config.llm, "generator")
    critic_llm = critic_llm or OpenRouterProvider.from_config(config.llm, "critic")
    reviser_llm = reviser_llm or OpenRouterProvider.from_config(config.llm, "reviser")

    return PipelineOrchestrator(
        generator=CandidateGenerator(
            generator_llm,
            min_candidates=pipeline.min_candidates,
            max_candidates=pipeline.max_candidates,
        ),
        critic=QualityGate(critic_llm, create_quality_validator(config)),
        reviser=CandidateReviser(reviser_llm),
        config=pipeline,
        rate_limiter=rate_limiter
        or RateLimiter(
            tokens_per_second=pipeline.rate_limit.tokens_per_second,
            burst_capacity=pipeline.rate_limit.burst_capacity,
        ),
    )


def create_batch_runner(
    config: Config,
    store: PuzzleStore,
    alerts: AlertNotifier | None = None,
    orchestrator: PipelineOrchestrator | None = None,
) -> BatchRunner:
    return BatchRunner(
        orchestrator=orchestrator or create_orchestrator(config),
        store=store,
        allocator=CoverageAllocator(store),
        alerts=alerts,
        config=config.pipeline,
    )
