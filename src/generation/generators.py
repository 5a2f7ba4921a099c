"""
Chunk-Driving Study Artifact Generators.

Implements the generation pipeline for lessons, quizzes and flashcards:
1. Validate the source text (rejected before any network activity)
2. Decide between one request and a chunked run
3. Drive the fallback orchestrator chunk by chunk, strictly in order,
   pausing briefly between calls
4. Merge the chunk outputs into one artifact

Key Features:
- Lesson parts after the first carry a continuity hint summarizing the
  previous part, and only the last part asks for the self-check section
- Quiz/flashcard item targets are spread over chunks and the merged list is
  truncated to the requested count
- Progress: cosmetic estimator for single requests, 10 + completed/total * 80
  with an ETA for chunked runs, then 95 (merging) and 100 (done)

Failure policy (all artifact types): provider failures and cancellation abort
the whole call with no partial artifact. A quiz/flashcard chunk whose payload
cannot be parsed is skipped; the call fails with ChunkParseError only when
every chunk was unparseable. Valid empty payloads give an empty artifact.
"""

from __future__ import annotations

import asyncio
import math
import random
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from loguru import logger

from src.core.exceptions import CancellationError, ValidationError
from src.core.roster import Feature, ModelRoster
from src.integrations.completion_client import (
    ChatMessage,
    CompletionClient,
    CompletionOptions,
    CompletionResult,
    CompletionStream,
)
from src.integrations.fallback import FallbackOrchestrator
from src.processing.chunker import ChunkOptions, TextChunk, chunk_text, estimate_token_count

from .continuity import build_continuity_hint, summarize_for_continuity
from .merger import merge_chunked_results
from .progress import (
    EtaTracker,
    ProgressCallback,
    ProgressEstimator,
    ProgressReporter,
)
from .prompts import (
    build_flashcard_messages,
    build_lesson_messages,
    build_question_messages,
    build_quiz_messages,
    build_synthesis_messages,
)
from .schemas import FlashcardSet, Lesson, Quiz

SleepFunc = Callable[[float], Awaitable[None]]
MessageBuilder = Callable[[TextChunk, list[CompletionResult]], list[ChatMessage]]

DEFAULT_CHUNK_OPTIONS = ChunkOptions(
    max_chunk_size=3000,
    overlap_size=600,
    preserve_paragraphs=True,
    adaptive_chunking=True,
)
DIFFICULTIES = ("beginner", "intermediate", "advanced")


def chunk_item_counts(target: int, chunk_count: int) -> list[int]:
    """
    Items to request from each chunk.

    ceil(target / n) for every chunk but the last, which gets the remainder;
    never less than one per chunk. 10 over 3 chunks -> [4, 4, 2].
    """
    if target <= 0:
        raise ValidationError(f"Item count must be positive, got {target}")
    if chunk_count <= 0:
        return []
    per_chunk = math.ceil(target / chunk_count)
    counts = [per_chunk] * (chunk_count - 1)
    counts.append(max(1, target - per_chunk * (chunk_count - 1)))
    return counts


class Pacer:
    """Randomized pause between sequential chunk calls."""

    def __init__(
        self,
        min_seconds: float = 0.5,
        max_seconds: float = 1.0,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.min_seconds = min_seconds
        self.max_seconds = max(min_seconds, max_seconds)
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def pause(self) -> float:
        delay = self._rng.uniform(self.min_seconds, self.max_seconds)
        await self._sleep(delay)
        return delay


# =============================================================================
# Base Generator
# =============================================================================

class ChunkedGenerator:
    """
    Shared single-request / chunked-run driver.

    Subclasses set `feature` and `expect_json` and supply the per-chunk
    prompt builder.
    """

    feature: Feature = Feature.LESSON
    expect_json: bool = False

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        roster: ModelRoster,
        chunk_options: ChunkOptions | None = None,
        chunking_threshold: int = 4000,
        min_source_chars: int = 20,
        pacer: Pacer | None = None,
        progress_sleep: SleepFunc = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the generator.

        Args:
            orchestrator: Fallback orchestrator used for every request
            roster: Model priority lists (this generator uses its feature's list)
            chunk_options: Options for the chunked path
            chunking_threshold: Estimated tokens above which the text is chunked
            min_source_chars: Minimum stripped source length
            pacer: Pause between chunk calls
            progress_sleep: Sleep used by the single-request progress estimator
            clock: Time source for ETA estimates
        """
        self.orchestrator = orchestrator
        self.roster = roster
        self.chunk_options = chunk_options or DEFAULT_CHUNK_OPTIONS
        self.chunk_options.validate()
        self.chunking_threshold = chunking_threshold
        self.min_source_chars = min_source_chars
        self.pacer = pacer or Pacer()
        self._progress_sleep = progress_sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, orchestrator: FallbackOrchestrator, settings=None):
        """Build a generator configured from application settings."""
        if settings is None:
            from config import get_settings

            settings = get_settings()
        return cls(
            orchestrator,
            settings.get_model_roster(),
            chunk_options=settings.get_chunk_options(),
            chunking_threshold=settings.chunking_token_threshold,
            min_source_chars=settings.min_source_chars,
            pacer=Pacer(settings.pacing_min_seconds, settings.pacing_max_seconds),
        )

    @property
    def models(self) -> tuple[str, ...]:
        return self.roster.for_feature(self.feature)

    def validate_source(self, text: str) -> str:
        """Return the stripped source or raise ValidationError."""
        stripped = (text or "").strip()
        if len(stripped) < self.min_source_chars:
            raise ValidationError(
                f"Source text too short: {len(stripped)} characters "
                f"(minimum {self.min_source_chars})"
            )
        return stripped

    def needs_chunking(self, text: str) -> bool:
        return estimate_token_count(text) > self.chunking_threshold

    def split(self, text: str) -> list[TextChunk]:
        """Chunks for a source; a single chunk when chunking is not needed."""
        if not self.needs_chunking(text):
            return [TextChunk(text=text, index=0, total=1, start=0, end=len(text))]
        return chunk_text(text, self.chunk_options)

    async def run_chunks(
        self,
        chunks: list[TextChunk],
        build_messages: MessageBuilder,
        reporter: ProgressReporter,
        cancel_event: asyncio.Event | None = None,
        models: tuple[str, ...] | None = None,
    ) -> list[CompletionResult]:
        """
        Drive one orchestrator call per chunk, strictly in order.

        Returns:
            One CompletionResult per chunk, in chunk order

        Raises:
            AllProvidersExhaustedError: A chunk could not be served by any model
            CancellationError: cancel_event was set
        """
        models = models or self.models
        options = CompletionOptions(expect_json=self.expect_json, cancel_event=cancel_event)
        total = len(chunks)

        if total == 1:
            messages = build_messages(chunks[0], [])
            reporter.report(5, "Sending request...")
            async with ProgressEstimator(reporter, sleep=self._progress_sleep):
                result = await self.orchestrator.complete(models, messages, options)
            self._check_truncation(result, chunks[0])
            return [result]

        logger.info(f"Processing {total} chunks for {self.feature.value}")
        reporter.report(10, f"Split content into {total} chunks")
        eta = EtaTracker(total, clock=self._clock)
        results: list[CompletionResult] = []

        for chunk in chunks:
            if cancel_event is not None and cancel_event.is_set():
                raise CancellationError(f"Cancelled before {chunk.label}")
            if chunk.index > 0:
                await self.pacer.pause()

            messages = build_messages(chunk, results)
            result = await self.orchestrator.complete(models, messages, options)
            self._check_truncation(result, chunk)
            results.append(result)

            completed = chunk.index + 1
            logger.debug(f"{chunk.label} done via {result.model_used}")
            reporter.report(
                10 + completed / total * 80,
                f"Processed chunk {completed}/{total}",
                eta.eta(completed),
            )

        reporter.report(95, "Merging results...")
        return results

    @staticmethod
    def _check_truncation(result: CompletionResult, chunk: TextChunk) -> None:
        if result.truncated:
            logger.warning(
                f"Output for {chunk.label} was truncated by the token limit "
                f"(model {result.model_used})"
            )


# =============================================================================
# Feature Generators
# =============================================================================

class LessonGenerator(ChunkedGenerator):
    """Markdown lessons with continuity between parts."""

    feature = Feature.LESSON
    expect_json = False

    async def generate(
        self,
        text: str,
        difficulty: str = "intermediate",
        include_self_check: bool = True,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Lesson:
        """
        Generate a lesson from source text.

        Args:
            text: Extracted source text
            difficulty: beginner, intermediate or advanced
            include_self_check: Request a self-check section (final part only)
            on_progress: Receives ProgressEvent updates
            cancel_event: Set to abort the in-flight request

        Raises:
            ValidationError: Source too short or unknown difficulty
            AllProvidersExhaustedError: Any part could not be generated
            CancellationError: Cancelled by the caller
        """
        source = self.validate_source(text)
        if difficulty not in DIFFICULTIES:
            raise ValidationError(f"Unknown difficulty '{difficulty}', expected one of {DIFFICULTIES}")

        reporter = ProgressReporter(on_progress)
        chunks = self.split(source)

        def build(chunk: TextChunk, previous: list[CompletionResult]) -> list[ChatMessage]:
            hint = None
            if previous:
                summary = summarize_for_continuity(previous[-1].content)
                hint = build_continuity_hint(summary, chunk.index + 1, chunk.total)
            return build_lesson_messages(
                chunk.text,
                difficulty=difficulty,
                continuity_hint=hint,
                include_self_check=include_self_check and chunk.is_last,
            )

        results = await self.run_chunks(chunks, build, reporter, cancel_event)
        markdown = merge_chunked_results([r.content for r in results], "lesson")

        reporter.complete("Lesson ready")
        logger.info(f"Lesson generated from {len(results)} part(s), {len(markdown)} chars")
        return Lesson(
            markdown=markdown,
            chunk_count=len(results),
            models_used=[r.model_used for r in results],
        )


class _ItemGenerator(ChunkedGenerator, ABC):
    """Quiz/flashcard generation: JSON items spread across chunks."""

    expect_json = True
    kind = "quiz"

    @abstractmethod
    def build_item_messages(self, content: str, count: int) -> list[ChatMessage]:
        """Messages asking for `count` items from one chunk."""
        ...

    async def generate_items(
        self,
        text: str,
        count: int,
        on_progress: Optional[ProgressCallback],
        cancel_event: asyncio.Event | None,
    ) -> tuple[list, list[CompletionResult]]:
        source = self.validate_source(text)
        if count <= 0:
            raise ValidationError(f"Item count must be positive, got {count}")

        reporter = ProgressReporter(on_progress)
        chunks = self.split(source)
        counts = chunk_item_counts(count, len(chunks))

        def build(chunk: TextChunk, previous: list[CompletionResult]) -> list[ChatMessage]:
            return self.build_item_messages(chunk.text, counts[chunk.index])

        results = await self.run_chunks(chunks, build, reporter, cancel_event)
        items = merge_chunked_results(
            [r.content for r in results],
            self.kind,
            requested_count=count,
            require_parseable=True,
        )
        if len(items) < count:
            logger.warning(f"Requested {count} {self.kind} items, got {len(items)}")

        reporter.complete(f"Generated {len(items)} {self.kind} items")
        return items, results


class QuizGenerator(_ItemGenerator):
    """Four-option multiple choice quizzes."""

    feature = Feature.QUIZ
    kind = "quiz"

    def build_item_messages(self, content: str, count: int) -> list[ChatMessage]:
        return build_quiz_messages(content, count)

    async def generate(
        self,
        text: str,
        count: int = 5,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Quiz:
        """Generate at most `count` questions from source text."""
        items, results = await self.generate_items(text, count, on_progress, cancel_event)
        return Quiz(
            questions=items,
            chunk_count=len(results),
            models_used=[r.model_used for r in results],
        )


class FlashcardGenerator(_ItemGenerator):
    """Question/answer flashcards."""

    feature = Feature.FLASHCARDS
    kind = "flashcards"

    def build_item_messages(self, content: str, count: int) -> list[ChatMessage]:
        return build_flashcard_messages(content, count)

    async def generate(
        self,
        text: str,
        count: int = 10,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: asyncio.Event | None = None,
    ) -> FlashcardSet:
        """Generate at most `count` flashcards from source text."""
        items, results = await self.generate_items(text, count, on_progress, cancel_event)
        return FlashcardSet(
            cards=items,
            chunk_count=len(results),
            models_used=[r.model_used for r in results],
        )


# =============================================================================
# Question Answering
# =============================================================================

class QuestionAnswerer:
    """
    Answer questions over long context.

    Context that fits one chunk is answered directly; longer context is
    answered per section, then the section answers are synthesized.
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        roster: ModelRoster,
        chunk_size: int = 6000,
        pacer: Pacer | None = None,
    ):
        self.orchestrator = orchestrator
        self.roster = roster
        self.chunk_options = ChunkOptions(max_chunk_size=chunk_size)
        self.chunk_options.validate()
        self.pacer = pacer or Pacer()

    @classmethod
    def from_settings(cls, orchestrator: FallbackOrchestrator, settings=None) -> QuestionAnswerer:
        if settings is None:
            from config import get_settings

            settings = get_settings()
        return cls(
            orchestrator,
            settings.get_model_roster(),
            chunk_size=settings.qa_chunk_max_size,
            pacer=Pacer(settings.pacing_min_seconds, settings.pacing_max_seconds),
        )

    @property
    def models(self) -> tuple[str, ...]:
        return self.roster.for_feature(Feature.CHAT)

    @staticmethod
    def _validate(question: str, context: str) -> None:
        if not question or not question.strip():
            raise ValidationError("Question must not be empty")
        if not context or not context.strip():
            raise ValidationError("Context must not be empty")

    async def answer(
        self,
        question: str,
        context: str,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """
        Answer a question from the given context.

        Raises:
            ValidationError: Empty question or context
            AllProvidersExhaustedError: A section could not be answered
        """
        self._validate(question, context)
        options = CompletionOptions(cancel_event=cancel_event)
        chunks = chunk_text(context, self.chunk_options)

        if len(chunks) <= 1:
            result = await self.orchestrator.complete(
                self.models, build_question_messages(question, context.strip()), options
            )
            return result.content

        logger.info(f"Answering over {len(chunks)} context sections")
        answers: list[str] = []
        for chunk in chunks:
            if chunk.index > 0:
                await self.pacer.pause()
            result = await self.orchestrator.complete(
                self.models, build_question_messages(question, chunk.text), options
            )
            answers.append(result.content)

        synthesis = await self.orchestrator.complete(
            self.models, build_synthesis_messages(question, answers), options
        )
        return synthesis.content

    async def stream_answer(
        self,
        question: str,
        context: str,
        cancel_event: asyncio.Event | None = None,
    ) -> CompletionStream:
        """Open a streamed answer on the first chat model that accepts it."""
        self._validate(question, context)
        return await self.orchestrator.stream(
            self.models,
            build_question_messages(question, context.strip()),
            CompletionOptions(cancel_event=cancel_event),
        )


# =============================================================================
# Convenience Functions
# =============================================================================

async def _run_with_settings(generator_cls, settings, call):
    """Build client, orchestrator and generator from settings, then run `call`."""
    if settings is None:
        from config import get_settings

        settings = get_settings()
    async with CompletionClient.from_settings(settings) as client:
        orchestrator = FallbackOrchestrator.from_settings(client, settings)
        generator = generator_cls.from_settings(orchestrator, settings)
        return await call(generator, settings)


async def generate_lesson(
    text: str,
    difficulty: str | None = None,
    include_self_check: bool = True,
    on_progress: Optional[ProgressCallback] = None,
    settings=None,
) -> Lesson:
    """Generate a lesson using a client built from settings."""
    async def call(generator: LessonGenerator, settings) -> Lesson:
        level = difficulty or settings.default_difficulty
        return await generator.generate(text, level, include_self_check, on_progress)

    return await _run_with_settings(LessonGenerator, settings, call)


async def generate_quiz(
    text: str,
    count: int | None = None,
    on_progress: Optional[ProgressCallback] = None,
    settings=None,
) -> Quiz:
    """Generate a quiz using a client built from settings."""
    async def call(generator: QuizGenerator, settings) -> Quiz:
        target = count if count is not None else settings.default_quiz_questions
        return await generator.generate(text, target, on_progress)

    return await _run_with_settings(QuizGenerator, settings, call)


async def generate_flashcards(
    text: str,
    count: int | None = None,
    on_progress: Optional[ProgressCallback] = None,
    settings=None,
) -> FlashcardSet:
    """Generate flashcards using a client built from settings."""
    async def call(generator: FlashcardGenerator, settings) -> FlashcardSet:
        target = count if count is not None else settings.default_flashcards
        return await generator.generate(text, target, on_progress)

    return await _run_with_settings(FlashcardGenerator, settings, call)
