"""
Unit tests for model priority configuration and settings.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config import Settings
from src.core.roster import DEFAULT_MODEL_POOL, Feature, ModelRoster


class TestModelRoster:
    """Tests for ModelRoster."""

    def test_default_pool_orders(self):
        roster = ModelRoster.from_pool(DEFAULT_MODEL_POOL)

        for feature in Feature:
            models = roster.for_feature(feature)
            assert sorted(models) == sorted(DEFAULT_MODEL_POOL)

        assert roster.chat == DEFAULT_MODEL_POOL
        assert roster.lesson[1] == DEFAULT_MODEL_POOL[2]

    def test_custom_pool_used_as_is(self):
        roster = ModelRoster.from_pool(["x", "y", "x", " "])

        assert roster.lesson == ("x", "y")
        assert roster.quiz == ("x", "y")

    def test_empty_pool_rejected(self):
        with pytest.raises(ValueError):
            ModelRoster.from_pool([])

    def test_empty_feature_list_rejected(self):
        with pytest.raises(PydanticValidationError):
            ModelRoster(lesson=(), quiz=("q",), flashcards=("f",), chat=("c",))

    def test_immutable(self):
        roster = ModelRoster.uniform(["a"])
        with pytest.raises(PydanticValidationError):
            roster.lesson = ("b",)

    def test_for_feature_accepts_strings(self):
        roster = ModelRoster.uniform(["a", "b"])
        assert roster.for_feature("quiz") == ("a", "b")


class TestSettings:
    """Tests for settings helpers."""

    def test_defaults(self):
        settings = Settings(_env_file=None, openrouter_api_key=None)

        assert not settings.has_ai_configured()
        assert settings.get_retry_config() == {
            "max_attempts": 5,
            "base_delay": 1.0,
            "max_delay": 30.0,
            "jitter": 0.5,
        }

        options = settings.get_chunk_options()
        assert options.max_chunk_size == 3000
        assert options.overlap_size == 600
        assert options.preserve_paragraphs
        assert options.adaptive_chunking

    def test_roster_from_pool(self):
        settings = Settings(_env_file=None, model_pool=["m1", "m2"])
        assert settings.get_model_roster().chat == ("m1", "m2")

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
        settings = Settings(_env_file=None)
        assert settings.has_ai_configured()
