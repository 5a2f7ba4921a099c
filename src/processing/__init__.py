"""
Processing module for splitting long source text.

Breaks extracted documents and transcripts into bounded, overlapping chunks
that fit a single completion request, and stitches multi-source context
within a token budget.
"""

from .chunker import (
    ChunkingStats,
    ChunkOptions,
    TextChunk,
    analyze_chunks,
    chunk_text,
    estimate_content_density,
    estimate_token_count,
)
from .context_builder import ContextBuildResult, ContextSlice, SourceDocument, build_context

__all__ = [
    "ChunkOptions",
    "ChunkingStats",
    "ContextBuildResult",
    "ContextSlice",
    "SourceDocument",
    "TextChunk",
    "analyze_chunks",
    "build_context",
    "chunk_text",
    "estimate_content_density",
    "estimate_token_count",
]
