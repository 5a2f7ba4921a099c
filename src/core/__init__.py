"""
Core Module - Shared errors and configuration objects.

Components:
- exceptions: Error hierarchy (validation, provider, exhaustion, parse, cancellation)
- roster: Immutable per-feature model priority lists
- logging_config: Loguru sink setup
"""

from src.core.exceptions import (
    AllProvidersExhaustedError,
    CancellationError,
    ChunkParseError,
    ConfigurationError,
    EmptyResponseError,
    PermanentProviderError,
    ProviderConnectionError,
    ProviderError,
    RateLimitedError,
    ServerError,
    StudyForgeError,
    TransientProviderError,
    ValidationError,
)
from src.core.roster import DEFAULT_MODEL_POOL, Feature, ModelRoster

__all__ = [
    "AllProvidersExhaustedError",
    "CancellationError",
    "ChunkParseError",
    "ConfigurationError",
    "DEFAULT_MODEL_POOL",
    "EmptyResponseError",
    "Feature",
    "ModelRoster",
    "PermanentProviderError",
    "ProviderConnectionError",
    "ProviderError",
    "RateLimitedError",
    "ServerError",
    "StudyForgeError",
    "TransientProviderError",
    "ValidationError",
]
