"""
Model priority configuration.

The provider exposes several interchangeable backends whose availability
changes over time. A ModelRoster holds one immutable priority list per
feature; it is built from the configured pool and injected into the
generators so tests can substitute deterministic rosters.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class Feature(str, Enum):
    """Features that own a model priority list."""

    LESSON = "lesson"
    QUIZ = "quiz"
    FLASHCARDS = "flashcards"
    CHAT = "chat"


DEFAULT_MODEL_POOL: tuple[str, ...] = (
    "meta-llama/llama-3.1-8b-instruct:free",
    "qwen/qwen-2.5-32b-instruct:free",
    "google/gemma-2-9b-it:free",
    "mistralai/mistral-7b-instruct:free",
    "deepseek/deepseek-r1:free",
    "openchat/openchat-3.5:free",
    "mistralai/mixtral-8x7b-instruct",
    "meta-llama/llama-3.1-70b-instruct",
    "qwen/qwen-2.5-72b-instruct",
    "nousresearch/hermes-2-pro-mistral",
)

# Positions into the pool. Lessons favour wider-context generalists,
# quiz/flashcards favour models that follow JSON instructions well.
_FEATURE_ORDER: dict[Feature, tuple[int, ...]] = {
    Feature.LESSON: (0, 2, 6, 3, 7, 1, 8, 4, 5, 9),
    Feature.QUIZ: (0, 1, 2, 3, 6, 7, 5, 4, 8, 9),
    Feature.FLASHCARDS: (0, 1, 2, 3, 6, 7, 5, 4, 8, 9),
    Feature.CHAT: (0, 1, 2, 3, 4, 5, 6, 7, 8, 9),
}


class ModelRoster(BaseModel):
    """Immutable per-feature model priority lists."""

    model_config = ConfigDict(frozen=True)

    lesson: tuple[str, ...]
    quiz: tuple[str, ...]
    flashcards: tuple[str, ...]
    chat: tuple[str, ...]

    @field_validator("lesson", "quiz", "flashcards", "chat")
    @classmethod
    def _not_empty(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("model priority list must not be empty")
        return value

    @classmethod
    def from_pool(cls, pool: list[str] | tuple[str, ...]) -> ModelRoster:
        """
        Derive per-feature orderings from one preference-ordered pool.

        Pools of the default size get the curated per-feature orderings;
        any other pool is used as-is for every feature.
        """
        pool = tuple(dict.fromkeys(m.strip() for m in pool if m and m.strip()))
        if not pool:
            raise ValueError("model pool must contain at least one model id")

        orders: dict[str, tuple[str, ...]] = {}
        for feature, positions in _FEATURE_ORDER.items():
            if len(pool) == len(positions):
                orders[feature.value] = tuple(pool[i] for i in positions)
            else:
                orders[feature.value] = pool
        return cls(**orders)

    @classmethod
    def uniform(cls, models: list[str] | tuple[str, ...]) -> ModelRoster:
        """Same priority list for every feature."""
        models = tuple(models)
        return cls(lesson=models, quiz=models, flashcards=models, chat=models)

    def for_feature(self, feature: Feature | str) -> tuple[str, ...]:
        """Priority list for a feature."""
        return getattr(self, Feature(feature).value)
