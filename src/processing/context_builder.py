"""
Multi-source context stitching.

Builds one prompt context from several extracted documents while staying
within a token budget. Each source contributes its start, middle and end
slices so long documents keep coverage without dominating the budget.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from .chunker import ChunkOptions, chunk_text, estimate_token_count

DEFAULT_MAX_TOKENS = 3200  # ~12.8k chars
SLICE_OPTIONS = ChunkOptions(max_chunk_size=1400, overlap_size=200, preserve_paragraphs=True)
SLICE_SEPARATOR = "\n\n====\n\n"


@dataclass
class SourceDocument:
    """Text produced by the external document extractor."""
    source_id: str
    filename: str
    full_text: str
    page_count: int = 0


@dataclass
class ContextSlice:
    source_id: str
    filename: str
    page_count: int
    text: str
    tokens: int


@dataclass
class ContextBuildResult:
    context: str = ""
    total_tokens: int = 0
    slices: list[ContextSlice] = field(default_factory=list)


def build_context(
    sources: list[SourceDocument],
    selected_ids: list[str] | None = None,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> ContextBuildResult:
    """
    Stitch a context from the selected sources within max_tokens.

    Args:
        sources: Extracted documents
        selected_ids: Source ids to include (None = all)
        max_tokens: Estimated token budget for the stitched context

    Returns:
        ContextBuildResult; empty when no selected source has text
    """
    selected = [
        s for s in sources
        if (selected_ids is None or s.source_id in selected_ids) and s.full_text.strip()
    ]
    if not selected:
        return ContextBuildResult()

    slices: list[ContextSlice] = []
    running_tokens = 0

    for source in selected:
        chunks = chunk_text(source.full_text, SLICE_OPTIONS)
        if not chunks:
            continue

        if len(chunks) <= 3:
            important = chunks
        else:
            important = [chunks[0], chunks[len(chunks) // 2], chunks[-1]]

        for chunk in important:
            annotated = (
                f"Source: {source.filename} ({source.page_count} pages)\n"
                f"Part {chunk.index + 1}/{chunk.total}:\n{chunk.text}"
            )
            tokens = estimate_token_count(annotated)
            if running_tokens + tokens > max_tokens:
                logger.debug(f"Skipping {source.filename} part {chunk.index + 1}: over token budget")
                continue

            slices.append(
                ContextSlice(
                    source_id=source.source_id,
                    filename=source.filename,
                    page_count=source.page_count,
                    text=annotated,
                    tokens=tokens,
                )
            )
            running_tokens += tokens

    return ContextBuildResult(
        context=SLICE_SEPARATOR.join(s.text for s in slices),
        total_tokens=running_tokens,
        slices=slices,
    )
