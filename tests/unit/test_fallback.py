"""
Unit tests for retry/backoff and multi-model fallback.
"""

import asyncio
import random

import pytest

from src.core.exceptions import (
    AllProvidersExhaustedError,
    CancellationError,
    PermanentProviderError,
    ProviderConnectionError,
    RateLimitedError,
    ServerError,
    ValidationError,
)
from src.integrations.completion_client import ChatMessage
from src.integrations.fallback import FallbackOrchestrator, RetryPolicy, compute_backoff_delay

MESSAGES = [ChatMessage("user", "hello")]


class ZeroRandom(random.Random):
    """Random source whose jitter is always zero."""

    def uniform(self, a, b):
        return a


class TestComputeBackoffDelay:
    """Tests for the backoff formula."""

    def test_exponential_growth_without_jitter(self):
        rng = ZeroRandom()
        delays = [compute_backoff_delay(n, base=1.0, cap=30.0, jitter=0.5, rng=rng) for n in range(1, 6)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_non_decreasing_and_capped(self):
        rng = ZeroRandom()
        delays = [compute_backoff_delay(n, rng=rng) for n in range(1, 12)]

        assert delays == sorted(delays)
        assert max(delays) == 30.0

    def test_jitter_bounded(self):
        rng = random.Random(42)
        for attempt in range(1, 5):
            delay = compute_backoff_delay(attempt, base=1.0, cap=30.0, jitter=0.5, rng=rng)
            exponential = 2 ** (attempt - 1)
            assert exponential <= delay <= exponential + 0.5

    def test_cap_applies_to_jitter(self):
        assert compute_backoff_delay(10, cap=30.0, jitter=0.5) <= 30.0


class TestRetryPolicy:
    """Tests for policy validation."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 5
        assert policy.max_delay == 30.0

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)


class TestComplete:
    """Tests for FallbackOrchestrator.complete."""

    @pytest.mark.asyncio
    async def test_rate_limited_model_falls_back(self, fake_client_factory, recording_sleep):
        """Model A always 429s with max_attempts=2: A, A, then B succeeds."""
        def responder(model, messages, options):
            if model == "A":
                raise RateLimitedError("HTTP 429", model=model, status_code=429)
            return "from B"

        client = fake_client_factory(responder)
        orchestrator = FallbackOrchestrator(client, RetryPolicy(max_attempts=2), sleep=recording_sleep)

        result = await orchestrator.complete(["A", "B"], MESSAGES)

        assert client.models_called == ["A", "A", "B"]
        assert result.model_used == "B"
        assert result.content == "from B"
        assert len(recording_sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_first_model_success_no_sleep(self, fake_client_factory, recording_sleep):
        client = fake_client_factory(lambda model, messages, options: "ok")
        orchestrator = FallbackOrchestrator(client, sleep=recording_sleep)

        result = await orchestrator.complete(["A", "B"], MESSAGES)

        assert result.model_used == "A"
        assert client.models_called == ["A"]
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_error_recovers_on_same_model(self, fake_client_factory, recording_sleep):
        outcomes = iter([ServerError("HTTP 503", model="A", status_code=503), "recovered"])

        def responder(model, messages, options):
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        client = fake_client_factory(responder)
        orchestrator = FallbackOrchestrator(client, sleep=recording_sleep, rng=ZeroRandom())

        result = await orchestrator.complete(["A", "B"], MESSAGES)

        assert result.model_used == "A"
        assert client.models_called == ["A", "A"]
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_permanent_error_skips_retry(self, fake_client_factory, recording_sleep):
        def responder(model, messages, options):
            if model == "A":
                raise PermanentProviderError("HTTP 400", model=model, status_code=400)
            return "ok"

        client = fake_client_factory(responder)
        orchestrator = FallbackOrchestrator(client, sleep=recording_sleep)

        result = await orchestrator.complete(["A", "B"], MESSAGES)

        assert client.models_called == ["A", "B"]
        assert result.model_used == "B"
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model_count,max_attempts", [(1, 1), (2, 3), (3, 5)])
    async def test_call_bound_when_everything_fails(self, fake_client_factory, recording_sleep, model_count, max_attempts):
        """At most M x A calls before AllProvidersExhaustedError."""
        def responder(model, messages, options):
            raise ProviderConnectionError("network down", model=model)

        client = fake_client_factory(responder)
        orchestrator = FallbackOrchestrator(client, RetryPolicy(max_attempts=max_attempts), sleep=recording_sleep)
        models = [f"m{i}" for i in range(model_count)]

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await orchestrator.complete(models, MESSAGES)

        assert len(client.calls) == model_count * max_attempts
        assert exc_info.value.models == models
        assert "All models failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_backoff_delays_non_decreasing(self, fake_client_factory, recording_sleep):
        def responder(model, messages, options):
            raise RateLimitedError("HTTP 429", model=model, status_code=429)

        client = fake_client_factory(responder)
        orchestrator = FallbackOrchestrator(
            client, RetryPolicy(max_attempts=5), sleep=recording_sleep, rng=ZeroRandom()
        )

        with pytest.raises(AllProvidersExhaustedError):
            await orchestrator.complete(["A"], MESSAGES)

        assert recording_sleep.delays == [1.0, 2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_empty_model_list(self, fake_client_factory):
        orchestrator = FallbackOrchestrator(fake_client_factory(lambda *args: "ok"))

        with pytest.raises(ValidationError):
            await orchestrator.complete([], MESSAGES)

    @pytest.mark.asyncio
    async def test_cancellation_propagates_without_fallback(self, fake_client_factory, recording_sleep):
        def responder(model, messages, options):
            raise CancellationError("cancelled")

        client = fake_client_factory(responder)
        orchestrator = FallbackOrchestrator(client, sleep=recording_sleep)

        with pytest.raises(CancellationError):
            await orchestrator.complete(["A", "B"], MESSAGES)
        assert client.models_called == ["A"]

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, fake_client_factory):
        def responder(model, messages, options):
            raise asyncio.CancelledError()

        orchestrator = FallbackOrchestrator(fake_client_factory(responder))

        with pytest.raises(asyncio.CancelledError):
            await orchestrator.complete(["A", "B"], MESSAGES)


class TestStream:
    """Tests for FallbackOrchestrator.stream."""

    @pytest.mark.asyncio
    async def test_stream_falls_back_once_per_model(self, fake_client_factory):
        sentinel = object()

        def responder(model, messages, options):
            if model == "A":
                raise RateLimitedError("HTTP 429", model=model, status_code=429)
            return sentinel

        client = fake_client_factory(responder)
        orchestrator = FallbackOrchestrator(client)

        stream = await orchestrator.stream(["A", "B"], MESSAGES)

        assert stream is sentinel
        assert client.models_called == ["A", "B"]

    @pytest.mark.asyncio
    async def test_stream_exhausted(self, fake_client_factory):
        def responder(model, messages, options):
            raise ServerError("HTTP 500", model=model, status_code=500)

        orchestrator = FallbackOrchestrator(fake_client_factory(responder))

        with pytest.raises(AllProvidersExhaustedError):
            await orchestrator.stream(["A", "B"], MESSAGES)
