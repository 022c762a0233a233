"""Fixed-window character chunker with overlap.

Spans start at offsets ``0, step, 2*step, …`` with ``step = size - overlap``
(never less than 1). Each span is ``text[offset:offset + size]``; splitting
stops at the first span that reaches the end of the text, so the last span
may be shorter than *size*. The same text and parameters always produce the
same spans.
"""

from __future__ import annotations

DEFAULT_CHUNK_SIZE = 800
DEFAULT_OVERLAP = 100


class TextChunker:
    """Split plain text into overlapping fixed-size character windows.

    Args:
        chunk_size: Span length in characters (>= 1).
        overlap: Characters shared by consecutive spans (>= 0). Values at or
            above *chunk_size* are allowed; the step is clamped to 1.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @property
    def step(self) -> int:
        return max(1, self.chunk_size - self.overlap)

    def offsets(self, text: str) -> list[int]:
        """Start offset of every span :meth:`split` would return for *text*."""
        result: list[int] = []
        pos = 0
        length = len(text)
        while pos < length:
            result.append(pos)
            if pos + self.chunk_size >= length:
                break
            pos += self.step
        return result

    def split(self, text: str) -> list[str]:
        """Return the ordered spans of *text* (empty list for empty text)."""
        return [text[pos : pos + self.chunk_size] for pos in self.offsets(text)]


def chunk(text: str, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP) -> list[str]:
    """Split *text* into overlapping spans of *size* characters."""
    return TextChunker(chunk_size=size, overlap=overlap).split(text)
