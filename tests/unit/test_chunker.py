"""Unit tests for page-based document chunking."""

import pytest

from csm_pipeline.errors import ConfigurationError
from csm_pipeline.extraction.chunker import (
    ChunkingConfig,
    DocumentChunker,
    chunk_document,
    estimate_tokens,
)
from tests.conftest import make_document


class TestChunkingConfig:
    """Tests for ChunkingConfig."""

    def test_default_config(self):
        config = ChunkingConfig()
        assert config.pages_per_chunk == 20
        assert config.overlap_pages == 5
        assert config.page_delimiter == "\f"
        assert config.stride == 15

    @pytest.mark.parametrize(
        "pages_per_chunk,overlap_pages",
        [(1, 0), (20, 20), (20, 25), (20, -1)],
    )
    def test_invalid_window_rejected(self, pages_per_chunk, overlap_pages):
        with pytest.raises(ConfigurationError):
            DocumentChunker(ChunkingConfig(pages_per_chunk=pages_per_chunk, overlap_pages=overlap_pages))

    def test_empty_delimiter_rejected(self):
        with pytest.raises(ConfigurationError):
            DocumentChunker.create(page_delimiter="")

    def test_invalid_delimiter_pattern_rejected(self):
        with pytest.raises(ConfigurationError):
            DocumentChunker.create(page_delimiter="(unclosed")


class TestEstimateTokens:
    """Tests for the whitespace token estimate."""

    def test_word_based_estimate(self):
        # 3 words / 0.75 words per token
        assert estimate_tokens("one two three") == 4

    def test_blank_text(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("   \n ") == 0

    def test_needs_chunking_compares_against_budget(self):
        chunker = DocumentChunker()
        text = " ".join(["word"] * 75)  # 100 tokens
        assert not chunker.needs_chunking(text, 100)
        assert chunker.needs_chunking(text, 99)
        assert not chunker.needs_chunking("", 0)


class TestSplitPages:
    """Tests for page splitting."""

    def test_drops_empty_pages(self):
        chunker = DocumentChunker()
        assert chunker.split_pages(" first \f\f  \fsecond") == ["first", "second"]

    def test_text_without_delimiter_is_one_page(self):
        chunker = DocumentChunker()
        assert chunker.split_pages("just one page") == ["just one page"]

    def test_custom_delimiter_pattern(self):
        chunker = DocumentChunker.create(page_delimiter=r"---PAGE \d+---")
        assert chunker.split_pages("a---PAGE 2---b---PAGE 3---c") == ["a", "b", "c"]


class TestChunkDocument:
    """Tests for document chunking."""

    def test_two_hundred_pages(self):
        chunks = chunk_document(make_document(200))

        assert len(chunks) == 13
        assert (chunks[0].page_start, chunks[0].page_end) == (1, 20)
        assert (chunks[1].page_start, chunks[1].page_end) == (16, 35)
        assert (chunks[-1].page_start, chunks[-1].page_end) == (181, 200)
        assert all(c.total_chunks == 13 for c in chunks)
        assert [c.index for c in chunks] == list(range(13))

    def test_overlap_zones(self):
        chunks = chunk_document(make_document(200))

        assert chunks[0].overlap_start is None
        assert chunks[0].overlap_end is None
        for chunk in chunks[1:]:
            assert chunk.overlap_start == chunk.page_start
            assert chunk.overlap_end == chunk.page_start + 4
            assert chunk.overlap_end < chunk.page_end

    def test_every_page_is_covered(self):
        chunks = chunk_document(make_document(137))

        covered = set()
        for chunk in chunks:
            covered.update(range(chunk.page_start, chunk.page_end + 1))
        assert covered == set(range(1, 138))
        assert chunks[-1].page_end == 137

    def test_consecutive_chunks_overlap(self):
        chunks = chunk_document(make_document(100))

        for previous, current in zip(chunks, chunks[1:]):
            assert current.page_start == previous.page_start + 15
            assert current.page_start <= previous.page_end

    def test_chunk_text_holds_its_pages(self):
        chunks = chunk_document(make_document(40))

        second = chunks[1]
        pages = second.text.split("\f")
        assert len(pages) == second.page_count
        assert pages[0].startswith(f"Page {second.page_start}.")
        assert pages[-1].startswith(f"Page {second.page_end}.")

    def test_short_document_single_chunk(self):
        chunks = chunk_document(make_document(12))

        assert len(chunks) == 1
        assert (chunks[0].page_start, chunks[0].page_end) == (1, 12)
        assert not chunks[0].has_overlap
        assert chunks[0].is_first_chunk and chunks[0].is_last_chunk

    def test_exactly_one_window(self):
        chunks = chunk_document(make_document(20))
        assert len(chunks) == 1

    def test_blank_document(self):
        chunks = chunk_document("   ")

        assert len(chunks) == 1
        assert chunks[0].text == ""
        assert (chunks[0].page_start, chunks[0].page_end) == (1, 1)

    def test_zero_overlap(self):
        chunks = chunk_document(make_document(50), ChunkingConfig(pages_per_chunk=20, overlap_pages=0))

        assert [(c.page_start, c.page_end) for c in chunks] == [(1, 20), (21, 40), (41, 50)]
        assert not any(c.has_overlap for c in chunks)

    def test_short_last_chunk_keeps_full_overlap(self):
        # Second window ends at the last page: 11-17
        chunks = chunk_document(make_document(17), ChunkingConfig(pages_per_chunk=15, overlap_pages=5))

        last = chunks[-1]
        assert (last.page_start, last.page_end) == (11, 17)
        assert (last.overlap_start, last.overlap_end) == (11, 15)
