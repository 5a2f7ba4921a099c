"""
Typer CLI for the studyforge generation pipeline.

Commands:
    studyforge chunk FILE        - Show how a file would be chunked
    studyforge lesson FILE       - Generate a markdown lesson
    studyforge quiz FILE         - Generate a multiple-choice quiz
    studyforge flashcards FILE   - Generate flashcards
    studyforge ask QUESTION FILE...  - Answer a question from one or more files
    studyforge models            - Show per-feature model priority

Usage:
    studyforge --help
    studyforge chunk notes.txt --max-size 3000 --overlap 600
    studyforge lesson transcript.txt --difficulty beginner -o lesson.md
    studyforge quiz chapter1.txt --count 10 -o quiz.json
    studyforge ask "What is a VLAN?" chapter1.txt chapter2.txt --stream
"""

from __future__ import annotations

import asyncio
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.markdown import Markdown
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from config import get_settings
from src.core.exceptions import StudyForgeError
from src.core.logging_config import configure_logging
from src.core.roster import Feature
from src.generation import (
    FlashcardSet,
    Lesson,
    ProgressEvent,
    QuestionAnswerer,
    Quiz,
    generate_flashcards,
    generate_lesson,
    generate_quiz,
)
from src.integrations.completion_client import CompletionClient
from src.integrations.fallback import FallbackOrchestrator
from src.processing.chunker import ChunkOptions, analyze_chunks, chunk_text, estimate_token_count
from src.processing.context_builder import SourceDocument, build_context

app = typer.Typer(
    help="studyforge: turn long source text into lessons, quizzes and flashcards",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Generate study material from extracted text with model fallback."""
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


# ========================================
# Helpers
# ========================================


def _read_source(path: Path) -> str:
    if not path.exists() or not path.is_file():
        rprint(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8", errors="replace")


@contextmanager
def _progress_bar(description: str) -> Iterator:
    """Rich progress bar driven by ProgressEvent callbacks."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.fields[eta]}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=100, eta="")

        def on_progress(event: ProgressEvent) -> None:
            eta = f"~{event.eta_seconds:.0f}s left" if event.eta_seconds else ""
            progress.update(
                task,
                completed=event.percent,
                description=event.message or description,
                eta=eta,
            )

        yield on_progress


def _run(coro):
    """Run a coroutine, turning pipeline errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except StudyForgeError as e:
        rprint(f"[red]✗[/red] {type(e).__name__}: {e}")
        raise typer.Exit(code=1)


def _write_output(artifact: Lesson | Quiz | FlashcardSet, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(artifact.to_text(), encoding="utf-8")
    rprint(f"[green]✓[/green] Saved to {output}")


def _models_note(models_used: list[str]) -> str:
    unique = list(dict.fromkeys(models_used))
    return ", ".join(unique) if unique else "-"


# ========================================
# Commands
# ========================================


@app.command("chunk")
def chunk_file(
    file: Path = typer.Argument(..., help="Text file to chunk"),
    max_size: int = typer.Option(3000, "--max-size", "-m", help="Maximum characters per chunk"),
    overlap: int = typer.Option(600, "--overlap", help="Characters shared by adjacent chunks"),
    no_paragraphs: bool = typer.Option(False, "--no-paragraphs", help="Ignore paragraph/line breaks"),
    adaptive: bool = typer.Option(False, "--adaptive", help="Shrink chunks for dense content"),
) -> None:
    """Show how a file would be split into chunks."""
    text = _read_source(file)
    options = ChunkOptions(
        max_chunk_size=max_size,
        overlap_size=overlap,
        preserve_paragraphs=not no_paragraphs,
        adaptive_chunking=adaptive,
    )
    try:
        chunks = chunk_text(text, options)
    except StudyForgeError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    if not chunks:
        rprint("[yellow]⚠[/yellow] File is empty")
        return

    table = Table(title=f"{file.name}: {len(chunks)} chunk(s), ~{estimate_token_count(text)} tokens")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Chars", justify="right", style="green")
    table.add_column("Preview", style="dim")

    for chunk in chunks:
        preview = chunk.text[:50].replace("\n", " ")
        table.add_row(str(chunk.index + 1), str(chunk.start), str(chunk.end), str(len(chunk.text)), preview)

    console.print(table)

    stats = analyze_chunks(chunks)
    rprint(
        f"  Average {stats.avg_chars:.0f} chars, "
        f"min {stats.min_chars}, max {stats.max_chars}"
    )


@app.command("lesson")
def lesson_command(
    file: Path = typer.Argument(..., help="Source text file"),
    difficulty: Optional[str] = typer.Option(
        None, "--difficulty", "-d", help="beginner, intermediate or advanced"
    ),
    no_self_check: bool = typer.Option(False, "--no-self-check", help="Skip the self-check section"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write markdown to this file"),
) -> None:
    """Generate a markdown lesson from a source file."""
    text = _read_source(file)
    settings = get_settings()

    with _progress_bar("Generating lesson...") as on_progress:
        lesson = _run(
            generate_lesson(
                text,
                difficulty=difficulty,
                include_self_check=not no_self_check,
                on_progress=on_progress,
                settings=settings,
            )
        )

    rprint(f"[green]✓[/green] Lesson from {lesson.chunk_count} part(s) via {_models_note(lesson.models_used)}")
    if output:
        _write_output(lesson, output)
    else:
        console.print(Markdown(lesson.markdown))


@app.command("quiz")
def quiz_command(
    file: Path = typer.Argument(..., help="Source text file"),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Number of questions"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON to this file"),
) -> None:
    """Generate a multiple-choice quiz from a source file."""
    text = _read_source(file)
    settings = get_settings()

    with _progress_bar("Generating quiz...") as on_progress:
        quiz = _run(generate_quiz(text, count=count, on_progress=on_progress, settings=settings))

    rprint(f"[green]✓[/green] {len(quiz.questions)} question(s) via {_models_note(quiz.models_used)}")
    if output:
        _write_output(quiz, output)
        return

    for number, question in enumerate(quiz.questions, start=1):
        rprint(f"\n[bold]{number}. {question.question}[/bold]")
        for index, option in enumerate(question.options):
            marker = "[green]✓[/green]" if index == question.correct_index else " "
            rprint(f"  {marker} {chr(65 + index)}. {option}")
        if question.explanation:
            rprint(f"    [dim]{question.explanation}[/dim]")


@app.command("flashcards")
def flashcards_command(
    file: Path = typer.Argument(..., help="Source text file"),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Number of flashcards"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON to this file"),
) -> None:
    """Generate flashcards from a source file."""
    text = _read_source(file)
    settings = get_settings()

    with _progress_bar("Generating flashcards...") as on_progress:
        cards = _run(generate_flashcards(text, count=count, on_progress=on_progress, settings=settings))

    rprint(f"[green]✓[/green] {len(cards.cards)} card(s) via {_models_note(cards.models_used)}")
    if output:
        _write_output(cards, output)
        return

    table = Table(title="Flashcards")
    table.add_column("Question", style="cyan")
    table.add_column("Answer")
    table.add_column("Hint", style="dim")
    for card in cards.cards:
        table.add_row(card.question, card.answer, card.hint or "")
    console.print(table)


@app.command("ask")
def ask_command(
    question: str = typer.Argument(..., help="Question to answer"),
    files: List[Path] = typer.Argument(..., help="Source text files"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Stream the answer as it is generated"),
) -> None:
    """Answer a question using only the given files."""
    settings = get_settings()
    sources = [
        SourceDocument(source_id=str(i), filename=path.name, full_text=_read_source(path))
        for i, path in enumerate(files)
    ]
    built = build_context(sources, max_tokens=settings.context_max_tokens)
    if not built.context:
        rprint("[red]Error:[/red] No text found in the given files")
        raise typer.Exit(1)
    logger.debug(f"Context: {len(built.slices)} slice(s), ~{built.total_tokens} tokens")

    async def answer() -> str | None:
        async with CompletionClient.from_settings(settings) as client:
            answerer = QuestionAnswerer.from_settings(FallbackOrchestrator.from_settings(client, settings), settings)
            if not stream:
                return await answerer.answer(question, built.context)

            completion = await answerer.stream_answer(question, built.context)
            async for delta in completion:
                console.print(delta, end="", markup=False, highlight=False)
            console.print()
            return None

    result = _run(answer())
    if result is not None:
        console.print(Markdown(result))


@app.command("models")
def models_command() -> None:
    """Show the model priority list for each feature."""
    settings = get_settings()
    try:
        roster = settings.get_model_roster()
    except ValueError as e:
        rprint(f"[red]✗[/red] Invalid model pool: {e}")
        raise typer.Exit(code=1)

    table = Table(title="Model Priority")
    table.add_column("#", justify="right", style="dim")
    for feature in Feature:
        table.add_column(feature.value.title(), style="cyan")

    lists = [roster.for_feature(feature) for feature in Feature]
    for position in range(max(len(models) for models in lists)):
        row = [str(position + 1)]
        row.extend(models[position] if position < len(models) else "" for models in lists)
        table.add_row(*row)

    console.print(table)
    if not settings.has_ai_configured():
        rprint("[yellow]⚠[/yellow] OPENROUTER_API_KEY is not set")


def run() -> None:
    """Entry point for the CLI."""
    if sys.platform == "win32" and hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    app()


if __name__ == "__main__":
    run()
