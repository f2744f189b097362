"""Exception classes for the clue generation pipeline.

Kept in a leaf module so providers, stage services and the orchestrator can
share them without circular imports.
"""


class ChronoclueError(Exception):
    """Base exception for Chronoclue operations."""

    pass


class ConfigurationError(ChronoclueError):
    """Raised for missing or invalid configuration.

    This occurs when:
    - No OpenRouter API key is available
    - Settings fail validation
    """

    pass


class LLMProviderError(ChronoclueError):
    """Raised when the completion service cannot be reached or keeps failing.

    Carries the HTTP status code when the failure came from a response.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        """Rate limits and server errors are worth retrying; other 4xx are not."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class LLMResponseError(ChronoclueError):
    """Raised when the model returns an empty or unparseable payload."""

    pass


class ContractViolationError(ChronoclueError):
    """Raised when a model response does not match the expected structure.

    This occurs when:
    - The critic returns fewer results than candidates submitted
    - Scores fall outside [0, 1]
    - Required fields are missing or have the wrong type

    Fatal for the run that received it.
    """

    pass
