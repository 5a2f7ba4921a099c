"""
Completion provider integration.

Modules:
- completion_client: single-shot OpenRouter chat completion requests (httpx)
- fallback: retry/backoff and multi-model fallback on top of the client
"""
from .completion_client import (
    ChatMessage,
    CompletionClient,
    CompletionOptions,
    CompletionResult,
    CompletionStream,
)
from .fallback import FallbackOrchestrator, RetryPolicy, compute_backoff_delay

__all__ = [
    "ChatMessage",
    "CompletionClient",
    "CompletionOptions",
    "CompletionResult",
    "CompletionStream",
    "FallbackOrchestrator",
    "RetryPolicy",
    "compute_backoff_delay",
]
