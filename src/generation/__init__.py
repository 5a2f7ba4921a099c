"""Study artifact generation from long source text.

Pipeline:
1. Chunker splits the source (src.processing.chunker)
2. Generators drive the fallback orchestrator chunk by chunk
3. Merger reassembles chunk outputs into a Lesson, Quiz or FlashcardSet

Usage:
    from src.generation import generate_quiz

    quiz = await generate_quiz(text, count=10)
    for q in quiz.questions:
        print(f"Q: {q.question}")
        print(f"A: {q.correct_option}")
"""
from src.generation.continuity import build_continuity_hint, summarize_for_continuity
from src.generation.generators import (
    ChunkedGenerator,
    FlashcardGenerator,
    LessonGenerator,
    Pacer,
    QuestionAnswerer,
    QuizGenerator,
    chunk_item_counts,
    generate_flashcards,
    generate_lesson,
    generate_quiz,
)
from src.generation.merger import (
    extract_json_payload,
    merge_chunked_results,
    merge_lesson_parts,
    parse_chunk_items,
)
from src.generation.progress import (
    EtaTracker,
    ProgressEstimator,
    ProgressEvent,
    ProgressReporter,
)
from src.generation.schemas import Flashcard, FlashcardSet, Lesson, Quiz, QuizQuestion

__all__ = [
    "ChunkedGenerator",
    "EtaTracker",
    "Flashcard",
    "FlashcardGenerator",
    "FlashcardSet",
    "Lesson",
    "LessonGenerator",
    "Pacer",
    "ProgressEstimator",
    "ProgressEvent",
    "ProgressReporter",
    "QuestionAnswerer",
    "Quiz",
    "QuizGenerator",
    "QuizQuestion",
    "build_continuity_hint",
    "chunk_item_counts",
    "extract_json_payload",
    "generate_flashcards",
    "generate_lesson",
    "generate_quiz",
    "merge_chunked_results",
    "merge_lesson_parts",
    "parse_chunk_items",
    "summarize_for_continuity",
]
