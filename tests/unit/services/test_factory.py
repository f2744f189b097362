"""Tests for wiring the pipeline from configuration."""

import pytest

from chronoclue.core.config.config import Config
from chronoclue.core.config.pipeline_config import PipelineConfig, QualityConfig
from chronoclue.core.exceptions import ConfigurationError
from chronoclue.providers.llm.openrouter_provider import OpenRouterProvider
from chronoclue.services.factory import (
    create_batch_runner,
    create_orchestrator,
    create_quality_validator,
)
from chronoclue.services.generation import CandidateGenerator, QualityGate
from chronoclue.services.memory_store import InMemoryPuzzleStore
from chronoclue.services.quality.leakage import QualityValidator
from chronoclue.services.rate_limiter import RateLimiter
from tests.helpers.fake_llm_providers import ScriptedLLMProvider


@pytest.fixture(autouse=True)
def _clean(clean_environment):
    yield


def test_quality_validator_without_persistence():
    validator = create_quality_validator(Config())
    assert isinstance(validator, QualityValidator)
    assert validator.detector.dims == 256


def test_quality_validator_persists_learned_phrases(tmp_path):
    path = tmp_path / "learned.json"
    config = Config(quality=QualityConfig(leak_phrases_path=str(path), embedding_dims=64))

    first = create_quality_validator(config)
    assert first.detector.dims == 64
    assert first.learn_from_rejected("Queen Victoria opens the Great Exhibition", (1851, 1851))
    assert path.exists()

    second = create_quality_validator(config)
    assert second.detector.contains("queen victoria opens the great exhibition")


def test_orchestrator_uses_given_providers():
    config = Config(pipeline=PipelineConfig(min_candidates=5, max_candidates=7))
    limiter = RateLimiter(tokens_per_second=1.0, burst_capacity=1)

    orchestrator = create_orchestrator(
        config,
        generator_llm=ScriptedLLMProvider(),
        critic_llm=ScriptedLLMProvider(),
        reviser_llm=ScriptedLLMProvider(),
        rate_limiter=limiter,
    )

    assert isinstance(orchestrator._generator, CandidateGenerator)
    assert orchestrator._generator._min_candidates == 5
    assert orchestrator._generator._max_candidates == 7
    assert isinstance(orchestrator._critic, QualityGate)
    assert orchestrator._rate_limiter is limiter


def test_orchestrator_builds_rate_limiter_from_config():
    orchestrator = create_orchestrator(
        Config(),
        generator_llm=ScriptedLLMProvider(),
        critic_llm=ScriptedLLMProvider(),
        reviser_llm=ScriptedLLMProvider(),
    )
    assert isinstance(orchestrator._rate_limiter, RateLimiter)
    assert orchestrator._rate_limiter._rate == 10.0
    assert orchestrator._rate_limiter._capacity == 20.0


def test_orchestrator_requires_api_key_for_missing_providers():
    with pytest.raises(ConfigurationError, match="API key is required"):
        create_orchestrator(Config())


def test_orchestrator_creates_openrouter_providers(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test")
    orchestrator = create_orchestrator(Config())

    generator_llm = orchestrator._generator._llm
    assert isinstance(generator_llm, OpenRouterProvider)
    assert generator_llm.stage == "generator"
    assert orchestrator._reviser._llm.stage == "reviser"


def test_batch_runner_wiring():
    store = InMemoryPuzzleStore()
    orchestrator = create_orchestrator(
        Config(),
        generator_llm=ScriptedLLMProvider(),
        critic_llm=ScriptedLLMProvider(),
        reviser_llm=ScriptedLLMProvider(),
    )

    runner = create_batch_runner(Config(), store, orchestrator=orchestrator)

    assert runner._orchestrator is orchestrator
    assert runner._store is store
    assert runner._allocator._store is store
