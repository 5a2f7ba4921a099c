"""
Exception hierarchy for the generation pipeline.

Provider errors are split by whether retrying the same backend is likely to
help: transient errors (rate limits, 5xx, network) are retried with backoff,
permanent errors move straight on to the next model.
"""

from __future__ import annotations


class StudyForgeError(Exception):
    """Base class for all pipeline errors."""
    pass


class ValidationError(StudyForgeError):
    """Raised when input or options are rejected before any network activity."""
    pass


class ConfigurationError(StudyForgeError):
    """Raised when required configuration (e.g. the API key) is missing."""
    pass


class CancellationError(StudyForgeError):
    """Raised when the caller cancels an in-flight completion request."""
    pass


class ChunkParseError(StudyForgeError):
    """Raised when a chunk's structured payload cannot be parsed."""

    def __init__(self, message: str, chunk_index: int | None = None):
        super().__init__(message)
        self.chunk_index = chunk_index


class ProviderError(StudyForgeError):
    """A single completion request failed."""

    retryable = False

    def __init__(
        self,
        message: str,
        model: str | None = None,
        status_code: int | None = None,
        body: str = "",
    ):
        super().__init__(message)
        self.model = model
        self.status_code = status_code
        self.body = body


class TransientProviderError(ProviderError):
    """Failure that is worth retrying on the same model."""

    retryable = True


class RateLimitedError(TransientProviderError):
    """HTTP 429 from the provider."""
    pass


class ServerError(TransientProviderError):
    """HTTP 5xx from the provider."""
    pass


class ProviderConnectionError(TransientProviderError):
    """Network failure or timeout before a response was received."""
    pass


class PermanentProviderError(ProviderError):
    """Client-side failure (4xx other than 429); retrying will not help."""
    pass


class EmptyResponseError(PermanentProviderError):
    """Provider answered successfully but without usable content."""
    pass


class AllProvidersExhaustedError(StudyForgeError):
    """Every model in the priority list failed."""

    def __init__(self, failures: list[tuple[str, str]]):
        self.failures = list(failures)
        details = "; ".join(f"{model}: {error}" for model, error in self.failures)
        super().__init__(f"All models failed. Details: {details or 'no models attempted'}")

    @property
    def models(self) -> list[str]:
        return [model for model, _ in self.failures]
