"""
Unit tests for the overlapping text chunker.
"""

import pytest

from src.core.exceptions import ValidationError
from src.processing.chunker import (
    ChunkOptions,
    TextChunk,
    analyze_chunks,
    chunk_text,
    effective_chunk_size,
    estimate_content_density,
    estimate_token_count,
)


class TestChunkOptions:
    """Tests for option validation."""

    def test_defaults_are_valid(self):
        """Default options pass validation."""
        ChunkOptions().validate()

    @pytest.mark.parametrize("max_size,overlap", [(3000, 3000), (3000, 4000), (100, 100)])
    def test_overlap_not_smaller_than_size_rejected(self, max_size, overlap):
        """An overlap that would stop the chunker advancing is rejected."""
        with pytest.raises(ValidationError):
            chunk_text("x" * 10_000, ChunkOptions(max_chunk_size=max_size, overlap_size=overlap))

    def test_negative_overlap_rejected(self):
        with pytest.raises(ValidationError):
            ChunkOptions(max_chunk_size=100, overlap_size=-1).validate()

    def test_non_positive_size_rejected(self):
        with pytest.raises(ValidationError):
            ChunkOptions(max_chunk_size=0, overlap_size=0).validate()

    def test_validation_happens_before_short_input_shortcut(self):
        """Invalid options fail even when the text would fit in one chunk."""
        with pytest.raises(ValidationError):
            chunk_text("short", ChunkOptions(max_chunk_size=10, overlap_size=10))


class TestSmallInput:
    """Tests for input that needs no splitting."""

    def test_empty_input(self):
        assert chunk_text("") == []

    def test_whitespace_only_input(self):
        assert chunk_text("   \n\n\t  ") == []

    def test_short_input_single_chunk(self):
        """2,000 characters with max 3000 gives one trimmed chunk."""
        text = "  " + ("a" * 1996) + "  "
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=3000, overlap_size=600))

        assert len(chunks) == 1
        assert chunks[0].index == 0
        assert chunks[0].total == 1
        assert chunks[0].text == text.strip()

    def test_exactly_max_size_single_chunk(self):
        text = "b" * 3000
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=3000, overlap_size=600))
        assert len(chunks) == 1


class TestBoundaries:
    """Tests for boundary selection."""

    def test_paragraph_breaks_preferred(self, paragraph_text):
        """10,000 chars with paragraph breaks every 1,000 split on those breaks."""
        options = ChunkOptions(max_chunk_size=3000, overlap_size=600, preserve_paragraphs=True)
        chunks = chunk_text(paragraph_text, options)

        assert 4 <= len(chunks) <= 5
        assert [c.end for c in chunks] == [3000, 5000, 7000, 9000, 10000]
        for chunk in chunks[:-1]:
            assert paragraph_text[chunk.end - 2:chunk.end] == "\n\n"

    def test_overlap_start(self, paragraph_text):
        """Each chunk after the first starts overlap_size before the previous end."""
        options = ChunkOptions(max_chunk_size=3000, overlap_size=600)
        chunks = chunk_text(paragraph_text, options)

        for previous, current in zip(chunks, chunks[1:]):
            assert current.start == previous.end - 600

    def test_sentence_boundary_without_newlines(self):
        """Without line breaks the cut lands after sentence punctuation."""
        text = "Routers forward packets between networks. " * 100
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=1000, overlap_size=100))

        for chunk in chunks[:-1]:
            assert chunk.text.endswith(".")

    def test_sentence_boundary_with_closing_quote(self):
        text = ('He said "stop." Then more words follow here. ' * 60).strip()
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=500, overlap_size=50))

        for chunk in chunks[:-1]:
            assert chunk.text.endswith(".") or chunk.text.endswith('."')

    def test_word_boundary_fallback(self):
        """Text without punctuation or newlines is cut between words."""
        text = "alpha beta gamma delta " * 200
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=500, overlap_size=50))

        for chunk in chunks[:-1]:
            assert text[chunk.end - 1] == " "

    def test_hard_cut_without_boundaries(self):
        text = "x" * 10_000
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=3000, overlap_size=0))

        assert [c.end for c in chunks] == [3000, 6000, 9000, 10_000]

    def test_paragraphs_ignored_when_not_preserved(self, paragraph_text):
        """With preserve_paragraphs off, the line-break tiers are skipped."""
        options = ChunkOptions(max_chunk_size=3000, overlap_size=600, preserve_paragraphs=False)
        chunks = chunk_text(paragraph_text, options)

        # The paragraph blocks end in "." followed by "\n\n", which is also a sentence end
        for chunk in chunks[:-1]:
            assert chunk.text.endswith(".")


class TestChunkInvariants:
    """Properties every split must satisfy."""

    def _check_coverage(self, text, chunks):
        assert chunks[0].start == 0
        assert chunks[-1].end == len(text)
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start <= previous.end
            assert current.start > previous.start

    @pytest.mark.parametrize(
        "text",
        [
            "x" * 10_000,
            "Sentence number one is here. " * 400,
            "word " * 3000,
            "line of text\n" * 900,
        ],
    )
    def test_coverage_and_totals(self, text):
        """Chunks cover the whole text in order and share one total."""
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=1000, overlap_size=200))

        self._check_coverage(text, chunks)
        assert all(c.total == len(chunks) for c in chunks)
        assert [c.index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert chunk.text == text[chunk.start:chunk.end].strip()
            assert len(chunk.text) <= 1000

    def test_idempotent(self, paragraph_text):
        options = ChunkOptions(max_chunk_size=3000, overlap_size=600, adaptive_chunking=True)
        assert chunk_text(paragraph_text, options) == chunk_text(paragraph_text, options)

    def test_terminates_with_large_overlap(self):
        """Overlap just below the size still advances and terminates."""
        text = "x" * 1000
        chunks = chunk_text(text, ChunkOptions(max_chunk_size=100, overlap_size=99))

        self._check_coverage(text, chunks)
        assert chunks[-1].end == 1000


class TestDensity:
    """Tests for adaptive sizing."""

    def test_dense_content_scores_high(self):
        text = "192.168.1.1 10.0.0.1 VLAN10 OSPF (area 0) [R1] " * 50
        assert estimate_content_density(text) > 0.7

    def test_prose_scores_low(self):
        text = "the quick brown fox jumps over the lazy dog " * 50
        assert estimate_content_density(text) == 0.0

    def test_empty_density(self):
        assert estimate_content_density("") == 0.0

    def test_dense_content_shrinks_chunks(self):
        text = "192.168.1.1 10.0.0.1 VLAN10 OSPF (area 0) [R1] " * 300
        options = ChunkOptions(max_chunk_size=3000, overlap_size=600, adaptive_chunking=True)

        assert effective_chunk_size(text, options) == 2100
        assert max(len(c.text) for c in chunk_text(text, options)) <= 2100

    def test_shrink_never_reaches_overlap(self):
        text = "1 2 3 4 5 6 7 8 9 " * 500
        options = ChunkOptions(max_chunk_size=1000, overlap_size=900, adaptive_chunking=True)
        assert effective_chunk_size(text, options) == 901

    def test_not_adaptive_keeps_size(self):
        text = "1 2 3 4 5 6 7 8 9 " * 500
        options = ChunkOptions(max_chunk_size=1000, overlap_size=100, adaptive_chunking=False)
        assert effective_chunk_size(text, options) == 1000


class TestHelpers:
    """Tests for token estimates, labels and stats."""

    @pytest.mark.parametrize("text,expected", [("", 0), ("abcd", 1), ("abcde", 2), ("a" * 16_001, 4001)])
    def test_estimate_token_count(self, text, expected):
        assert estimate_token_count(text) == expected

    def test_chunk_label_and_position(self):
        chunk = TextChunk(text="t", index=1, total=3)
        assert chunk.label == "Part 2 of 3"
        assert not chunk.is_first
        assert not chunk.is_last

    def test_analyze_chunks(self, paragraph_text):
        chunks = chunk_text(paragraph_text, ChunkOptions(max_chunk_size=3000, overlap_size=600))
        stats = analyze_chunks(chunks)

        assert stats.total_chunks == len(chunks)
        assert stats.max_chars <= 3000
        assert stats.min_chars > 0

    def test_analyze_empty(self):
        assert analyze_chunks([]).total_chunks == 0
