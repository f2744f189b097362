import os

import pytest


@pytest.fixture
def clean_environment(monkeypatch):
    """Ensure tests run with a clean environment.

    - Unset CHRONOCLUE_* variables that can alter configuration.
    - Unset the OpenRouter API key to avoid accidental network calls.
    """
    to_clear = [k for k in os.environ.keys() if k.startswith("CHRONOCLUE_")]
    to_clear += ["OPENROUTER_API_KEY"]
    for k in to_clear:
        monkeypatch.delenv(k, raising=False)
    yield


@pytest.fixture
def seedless_validator():
    """QualityValidator with an empty phrase library."""
    from chronoclue.services.quality.leakage import (
        QualityValidator,
        SemanticLeakageDetector,
    )

    return QualityValidator(detector=SemanticLeakageDetector(phrases=[]))
