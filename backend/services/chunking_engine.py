"""Chunking engine producing overlapping fixed-size text windows."""
import logging
from typing import Iterator, List

from config import CHUNK_SIZE, CHUNK_OVERLAP

logger = logging.getLogger(__name__)


class TextWindows:
    """Lazy view of the windows of one text.

    Iterating starts from the beginning every time, and nothing is sliced
    until it is requested.
    """

    def __init__(self, text: str, size: int, step: int):
        self.text = text or ""
        self.size = size
        self.step = step

    def __iter__(self) -> Iterator[str]:
        start = 0
        length = len(self.text)
        while start < length:
            yield self.text[start:start + self.size]
            start += self.step

    def __len__(self) -> int:
        if not self.text:
            return 0
        return (len(self.text) + self.step - 1) // self.step

    def starts(self) -> List[int]:
        """Offsets at which each window begins."""
        return list(range(0, len(self.text), self.step))


class ChunkingEngine:
    """Segments document text into overlapping windows."""

    def __init__(self, chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Window size in characters
            chunk_overlap: Characters shared by consecutive windows

        Raises:
            ValueError: If chunk_size < 1 or chunk_overlap < 0
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap cannot be negative")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        # Always move forward, even if overlap >= size
        self.step = max(1, chunk_size - chunk_overlap)

        if chunk_overlap >= chunk_size:
            logger.warning(
                f"chunk_overlap ({chunk_overlap}) >= chunk_size ({chunk_size}); "
                f"advancing one character per window"
            )

    def windows(self, text: str) -> TextWindows:
        """Return a restartable, lazily evaluated sequence of windows."""
        return TextWindows(text, self.chunk_size, self.step)

    def split(self, text: str) -> List[str]:
        """
        Split text into overlapping windows.

        Args:
            text: Text to chunk

        Returns:
            List of windows, empty for empty text. Windows that run into the
            end of the text are shorter than chunk_size.
        """
        return list(self.windows(text))
