from .pipeline import (
    ChronoclueError,
    ConfigurationError,
    ContractViolationError,
    LLMProviderError,
    LLMResponseError,
)

__all__ = [
    "ChronoclueError",
    "ConfigurationError",
    "ContractViolationError",
    "LLMProviderError",
    "LLMResponseError",
]
