"""Tests for sentence-aware chunking."""

import pytest

from journal_memory.chunking import TextChunker, chunk_text
from journal_memory.config import ChunkingConfig


class TestChunkText:

    def test_short_text_is_single_chunk(self):
        text = "Went for a long walk by the river and felt much calmer afterwards."
        assert chunk_text(text) == [text]

    def test_text_below_min_length_yields_nothing(self):
        assert chunk_text("Too short.") == []
        assert chunk_text("") == []

    def test_deterministic(self):
        text = "A sentence about the day. " * 200
        assert chunk_text(text) == chunk_text(text)

    def test_chunks_respect_size_and_cover_text(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(300))
        chunks = chunk_text(text, chunk_size=400, overlap=80)
        assert len(chunks) > 1
        assert all(len(c) <= 400 for c in chunks)
        assert chunks[0].startswith("Sentence number 0")
        assert chunks[-1].endswith("Sentence number 299 is here.")

    def test_cuts_at_sentence_boundary_past_half(self):
        first = "a" * 300 + "."
        text = first + " " + "b" * 300
        chunks = chunk_text(text, chunk_size=400, overlap=50, min_length=10)
        assert chunks[0] == first

    def test_ignores_boundary_before_half(self):
        text = "Hi. " + "x" * 600
        chunks = chunk_text(text, chunk_size=400, overlap=50, min_length=10)
        assert len(chunks[0]) == 400

    def test_consecutive_chunks_overlap(self):
        text = "".join(chr(ord("a") + (i % 26)) for i in range(1000))
        chunks = chunk_text(text, chunk_size=300, overlap=60, min_length=10)
        assert chunks[1].startswith(chunks[0][-60:])

    def test_newline_counts_as_boundary(self):
        text = "x" * 250 + "\n" + "y" * 250
        chunks = chunk_text(text, chunk_size=400, overlap=50, min_length=10)
        assert chunks[0] == "x" * 250

    def test_rejects_overlap_of_half_or_more(self):
        with pytest.raises(ValueError):
            chunk_text("anything", chunk_size=100, overlap=50)


class TestTextChunker:

    def test_uses_config_geometry(self):
        chunker = TextChunker(ChunkingConfig(chunk_size=200, overlap=20, min_length=5))
        text = "word " * 200
        chunks = chunker.chunk(text)
        assert len(chunks) > 1
        assert all(len(c) <= 200 for c in chunks)
