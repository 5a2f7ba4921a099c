"""
Multi-model fallback with retry and exponential backoff.

Turns an unreliable pool of interchangeable backends into one best-effort
logical completion call:

- Models are tried strictly in priority order, one request at a time
- Rate-limited (429), 5xx and network failures are retried on the same model
  with exponential backoff plus jitter, up to max_attempts
- Any other failure, or running out of attempts, moves on to the next model
- When every model fails, AllProvidersExhaustedError carries each model's
  final error

At most len(models) * max_attempts requests are issued per call.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from src.core.exceptions import AllProvidersExhaustedError, ProviderError, ValidationError

from .completion_client import (
    ChatMessage,
    CompletionClient,
    CompletionOptions,
    CompletionResult,
    CompletionStream,
)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters (seconds)."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValidationError(f"max_attempts must be at least 1, got {self.max_attempts}")


def compute_backoff_delay(
    attempt: int,
    base: float = 1.0,
    cap: float = 30.0,
    jitter: float = 0.5,
    rng: random.Random | None = None,
) -> float:
    """
    Delay before retry number `attempt` (1-based).

    min(base * 2^(attempt-1) + uniform(0, jitter), cap)
    """
    rng = rng or random
    exponential = base * (2 ** (attempt - 1))
    return min(exponential + rng.uniform(0, jitter), cap)


class FallbackOrchestrator:
    """Drives a CompletionClient across a priority-ordered model list."""

    def __init__(
        self,
        client: CompletionClient,
        policy: RetryPolicy | None = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Single-shot completion client
            policy: Retry/backoff parameters
            sleep: Async sleep used between retries (injectable for tests)
            rng: Random source for jitter
        """
        self.client = client
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, client: CompletionClient, settings=None) -> FallbackOrchestrator:
        if settings is None:
            from config import get_settings

            settings = get_settings()
        return cls(client, RetryPolicy(**settings.get_retry_config()))

    def backoff_delay(self, attempt: int) -> float:
        return compute_backoff_delay(
            attempt,
            base=self.policy.base_delay,
            cap=self.policy.max_delay,
            jitter=self.policy.jitter,
            rng=self._rng,
        )

    async def complete(
        self,
        models: tuple[str, ...] | list[str],
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        """
        Run one logical completion with retry and model fallback.

        Returns:
            CompletionResult whose model_used names the model that succeeded

        Raises:
            ValidationError: If models is empty
            AllProvidersExhaustedError: If every model failed
            CancellationError: Propagated immediately, no fallback
        """
        if not models:
            raise ValidationError("At least one model is required")

        failures: list[tuple[str, str]] = []
        max_attempts = self.policy.max_attempts

        for position, model in enumerate(models):
            attempt = 0
            while True:
                attempt += 1
                try:
                    result = await self.client.send_completion(model, messages, options)
                except ProviderError as e:
                    if e.retryable and attempt < max_attempts:
                        delay = self.backoff_delay(attempt)
                        logger.warning(
                            f"{type(e).__name__} on {model}, attempt {attempt}/{max_attempts}. "
                            f"Retrying in {delay:.2f}s..."
                        )
                        await self._sleep(delay)
                        continue

                    logger.warning(f"Model {model} failed after {attempt} attempt(s): {e}")
                    failures.append((model, str(e)))
                    break

                result.model_used = model
                if position > 0:
                    logger.info(f"Completion served by fallback model {model} (priority {position + 1})")
                return result

        logger.error(f"All {len(models)} models failed")
        raise AllProvidersExhaustedError(failures)

    async def stream(
        self,
        models: tuple[str, ...] | list[str],
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> CompletionStream:
        """
        Open a stream on the first model that accepts the request.

        Each model gets a single attempt; no backoff, since the caller is
        waiting interactively.
        """
        if not models:
            raise ValidationError("At least one model is required")

        failures: list[tuple[str, str]] = []
        for model in models:
            try:
                return await self.client.open_stream(model, messages, options)
            except ProviderError as e:
                logger.warning(f"Streaming on {model} failed: {e}")
                failures.append((model, str(e)))

        raise AllProvidersExhaustedError(failures)
