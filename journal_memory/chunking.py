"""Overlapping character-window chunking with sentence-aware cuts."""

from __future__ import annotations

from typing import List

from .config import ChunkingConfig


BOUNDARY_CHARS = (".", "!", "?", "\n")


def _last_boundary(text: str, start: int, end: int) -> int:
    """Index of the last sentence end or newline in ``text[start:end + 1]``, or -1."""
    return max(text.rfind(ch, start, end + 1) for ch in BOUNDARY_CHARS)


def chunk_text(text: str, chunk_size: int = 1600, overlap: int = 320, min_length: int = 50) -> List[str]:
    """Split text into ordered chunks of about ``chunk_size`` characters.

    A window is cut back to the nearest preceding sentence end or newline
    when that boundary lies past half the target size. Consecutive chunks
    share ``overlap`` characters. Chunks shorter than ``min_length`` after
    stripping are dropped.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap * 2 >= chunk_size:
        raise ValueError("overlap must be non-negative and less than half of chunk_size")

    chunks: List[str] = []
    start = 0
    length = len(text)

    while start < length:
        end = start + chunk_size
        if end < length:
            boundary = _last_boundary(text, start, end)
            if boundary > start + chunk_size / 2:
                end = boundary + 1
        chunks.append(text[start:end].strip())
        if end >= length:
            break
        start = end - overlap

    return [chunk for chunk in chunks if len(chunk) >= min_length]


class TextChunker:
    """Applies the configured chunk geometry."""

    def __init__(self, config: ChunkingConfig):
        self.config = config

    def chunk(self, text: str) -> List[str]:
        return chunk_text(
            text,
            chunk_size=self.config.chunk_size,
            overlap=self.config.overlap,
            min_length=self.config.min_length,
        )
