"""
Study artifact schemas.

Pydantic models for the artifacts handed back to callers:
- Lesson: merged markdown document
- Quiz / QuizQuestion: four-option multiple choice
- FlashcardSet / Flashcard: question, answer and optional hint

Items coming back from a model are validated here; anything that does not
fit (wrong option count, out-of-range answer index, blank text) is rejected
with a pydantic ValidationError and dropped by the merger.
"""
from __future__ import annotations

import json
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

QUIZ_OPTION_COUNT = 4


class QuizQuestion(BaseModel):
    """One multiple-choice question."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    question: str = Field(..., min_length=1, description="Question text")
    options: List[str] = Field(
        ...,
        min_length=QUIZ_OPTION_COUNT,
        max_length=QUIZ_OPTION_COUNT,
        description="Exactly four answer options",
    )
    correct_index: int = Field(
        ...,
        ge=0,
        le=QUIZ_OPTION_COUNT - 1,
        alias="correctIndex",
        validation_alias=AliasChoices("correctIndex", "correct_index", "answerIndex"),
        description="Index of the correct option (0-3)",
    )
    explanation: str = Field("", description="Why the correct option is right")

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]


class Flashcard(BaseModel):
    """One flashcard."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    question: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("question", "front"),
        description="Front of the card",
    )
    answer: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("answer", "back"),
        description="Back of the card",
    )
    hint: Optional[str] = Field(None, description="Optional hint")


class Lesson(BaseModel):
    """Merged lesson document."""

    markdown: str
    chunk_count: int = Field(1, ge=1, description="Number of chunk calls that produced the lesson")
    models_used: List[str] = Field(default_factory=list, description="Model per chunk, in order")

    def to_text(self) -> str:
        return self.markdown


class Quiz(BaseModel):
    """Merged quiz."""

    questions: List[QuizQuestion] = Field(default_factory=list)
    chunk_count: int = 1
    models_used: List[str] = Field(default_factory=list)

    def to_text(self) -> str:
        """Serialize as {"quiz": [...]} for persistence."""
        items = [q.model_dump(by_alias=True) for q in self.questions]
        return json.dumps({"quiz": items}, ensure_ascii=False, indent=2)


class FlashcardSet(BaseModel):
    """Merged flashcard set."""

    cards: List[Flashcard] = Field(default_factory=list)
    chunk_count: int = 1
    models_used: List[str] = Field(default_factory=list)

    def to_text(self) -> str:
        """Serialize as {"flashcards": [...]} for persistence."""
        items = [c.model_dump(exclude_none=True) for c in self.cards]
        return json.dumps({"flashcards": items}, ensure_ascii=False, indent=2)
