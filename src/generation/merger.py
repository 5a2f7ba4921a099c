"""
Reassembly of per-chunk outputs.

- Lessons: markdown parts joined with a divider, repeated headings dropped
- Quiz / flashcards: JSON payloads parsed, validated, concatenated in chunk
  order and truncated to the requested count

Models wrap JSON in code fences, prose or wrapper objects often enough that
extraction is lenient; a chunk whose payload cannot be read at all raises
ChunkParseError and is skipped by the merge.
"""
from __future__ import annotations

import json
import re
from typing import Any, Literal

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from src.core.exceptions import ChunkParseError, ValidationError

from .schemas import Flashcard, QuizQuestion

ArtifactKind = Literal["lesson", "quiz", "flashcards"]

LESSON_DIVIDER = "\n\n---\n\n"

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_HEADING_LINE = re.compile(r"^\s{0,3}#{1,6}\s+\S")

_ITEM_MODELS = {
    "quiz": QuizQuestion,
    "flashcards": Flashcard,
}

_WRAPPER_KEYS = {
    "quiz": ("quiz", "questions"),
    "flashcards": ("flashcards", "cards"),
}


# =============================================================================
# JSON Extraction
# =============================================================================

def extract_json_payload(text: str, chunk_index: int | None = None) -> Any:
    """
    Pull a JSON value out of a model response.

    Tries, in order: a fenced ```json block, the whole text, the outermost
    {...} span, the outermost [...] span.

    Raises:
        ChunkParseError: If no candidate parses
    """
    text = (text or "").strip()
    if not text:
        raise ChunkParseError("Empty response payload", chunk_index=chunk_index)

    candidates: list[str] = []
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(text)

    for open_char, close_char in (("{", "}"), ("[", "]")):
        first, last = text.find(open_char), text.rfind(close_char)
        if first != -1 and last > first:
            candidates.append(text[first:last + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    raise ChunkParseError(
        f"No JSON found in response: {text[:80]!r}",
        chunk_index=chunk_index,
    )


def parse_chunk_items(content: str, kind: ArtifactKind, chunk_index: int | None = None) -> list:
    """
    Parse one chunk's structured payload into validated items.

    Individually invalid items are dropped; a payload with no item array at
    all raises ChunkParseError.
    """
    if kind not in _ITEM_MODELS:
        raise ValidationError(f"No structured items for artifact kind '{kind}'")

    payload = extract_json_payload(content, chunk_index=chunk_index)

    raw_items: Any = None
    if isinstance(payload, list):
        raw_items = payload
    elif isinstance(payload, dict):
        for key in _WRAPPER_KEYS[kind]:
            if isinstance(payload.get(key), list):
                raw_items = payload[key]
                break

    if raw_items is None:
        raise ChunkParseError(
            f"Expected a list of {kind} items, got {type(payload).__name__}",
            chunk_index=chunk_index,
        )

    model = _ITEM_MODELS[kind]
    items = []
    for position, raw in enumerate(raw_items):
        try:
            items.append(model.model_validate(raw))
        except PydanticValidationError as e:
            logger.debug(f"Dropping invalid {kind} item {position} in chunk {chunk_index}: {e.error_count()} error(s)")

    return items


# =============================================================================
# Merging
# =============================================================================

def merge_lesson_parts(parts: list[str]) -> str:
    """
    Join lesson parts, dropping heading lines already seen earlier.

    Lines inside fenced code blocks are never treated as headings.
    """
    seen_headings: set[str] = set()
    merged: list[str] = []

    for part in parts:
        if not part or not part.strip():
            continue

        kept: list[str] = []
        in_fence = False
        for line in part.strip().split("\n"):
            if line.lstrip().startswith("```"):
                in_fence = not in_fence
            elif not in_fence and _HEADING_LINE.match(line):
                key = line.strip()
                if key in seen_headings:
                    continue
                seen_headings.add(key)
            kept.append(line)

        text = "\n".join(kept).strip()
        if text:
            merged.append(text)

    return LESSON_DIVIDER.join(merged)


def merge_chunked_results(
    results: list[str],
    kind: ArtifactKind,
    requested_count: int | None = None,
    require_parseable: bool = False,
):
    """
    Merge per-chunk outputs into one artifact body.

    Chunks whose payload cannot be parsed are skipped. Chunks that parse
    to an empty list simply contribute nothing, so the merged list may be
    empty.

    Args:
        results: Chunk outputs in chunk order
        kind: "lesson", "quiz" or "flashcards"
        requested_count: Upper bound on merged quiz/flashcard items
        require_parseable: Fail when every chunk was unparseable

    Returns:
        Markdown string for lessons; list of items otherwise

    Raises:
        ChunkParseError: require_parseable is set and no chunk payload parsed
    """
    if kind == "lesson":
        return merge_lesson_parts(results)

    items: list = []
    skipped = 0
    for index, content in enumerate(results):
        try:
            items.extend(parse_chunk_items(content, kind, chunk_index=index))
        except ChunkParseError as e:
            skipped += 1
            logger.warning(f"Skipping chunk {index + 1}/{len(results)}: {e}")

    if require_parseable and results and skipped == len(results):
        raise ChunkParseError(f"No parseable {kind} payload in any of {len(results)} chunk(s)")

    if requested_count is not None and len(items) > requested_count:
        logger.debug(f"Truncating {len(items)} {kind} items to {requested_count}")
        items = items[:requested_count]

    return items
