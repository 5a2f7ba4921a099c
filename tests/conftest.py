"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.core.roster import ModelRoster
from src.integrations.completion_client import CompletionResult


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Fakes
# =============================================================================


class FakeCompletionClient:
    """
    Stands in for CompletionClient.

    `responder(model, messages, options)` returns the content string or
    raises a ProviderError. Every call is recorded as (model, messages, options).
    """

    def __init__(self, responder):
        self.responder = responder
        self.calls = []

    @property
    def models_called(self):
        return [model for model, _, _ in self.calls]

    async def send_completion(self, model, messages, options=None):
        self.calls.append((model, messages, options))
        outcome = self.responder(model, messages, options)
        if isinstance(outcome, CompletionResult):
            return outcome
        return CompletionResult(content=outcome, finish_reason="stop", model_used=model)

    async def open_stream(self, model, messages, options=None):
        self.calls.append((model, messages, options))
        return self.responder(model, messages, options)


class RecordingSleep:
    """Async sleep replacement that records delays and returns immediately."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fake_client_factory():
    """Build a FakeCompletionClient from a responder callable."""
    return FakeCompletionClient


@pytest.fixture
def recording_sleep():
    """Sleep that records requested delays without waiting."""
    return RecordingSleep()


@pytest.fixture
def roster():
    """Deterministic two-model roster used for every feature."""
    return ModelRoster.uniform(["model-a", "model-b"])


# =============================================================================
# Sample Content
# =============================================================================


@pytest.fixture
def sample_text():
    """Short source text that fits in one request."""
    return (
        "The OSI model has seven layers. The network layer handles routing "
        "between networks, while the data link layer handles framing on a "
        "single link. Routers operate at layer 3 and switches at layer 2."
    )


@pytest.fixture
def paragraph_text():
    """10,000 characters: ten 998-character paragraphs, each followed by a blank line."""
    sentence = "Packets are forwarded hop by hop toward their destination. "
    block = (sentence * 20)[:997] + "."
    return "".join(block + "\n\n" for _ in range(10))


def make_quiz_payload(count, prefix="Q"):
    """JSON quiz payload with `count` valid questions."""
    return json.dumps(
        {
            "quiz": [
                {
                    "question": f"{prefix}{i}: Which layer handles routing?",
                    "options": ["Physical", "Data link", "Network", "Transport"],
                    "correctIndex": 2,
                    "explanation": "The source says the network layer handles routing.",
                }
                for i in range(count)
            ]
        }
    )


def make_flashcard_payload(count, prefix="C"):
    """JSON flashcard payload with `count` valid cards."""
    return json.dumps(
        {
            "flashcards": [
                {
                    "question": f"{prefix}{i}: What do routers do?",
                    "answer": "Route packets between networks",
                    "hint": "Layer 3",
                }
                for i in range(count)
            ]
        }
    )


@pytest.fixture
def quiz_payload():
    """Factory for JSON quiz payloads."""
    return make_quiz_payload


@pytest.fixture
def flashcard_payload():
    """Factory for JSON flashcard payloads."""
    return make_flashcard_payload
