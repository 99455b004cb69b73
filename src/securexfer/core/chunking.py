"""Fixed-size byte-range chunk planning for securexfer.

A file of ``total_size`` bytes is split into ``ceil(total_size / chunk_size)``
contiguous, non-overlapping ranges. Every range is ``chunk_size`` bytes long
except possibly the last one.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ChunkRange:
    """Inclusive byte range ``[start, end]`` of one chunk."""

    index: int
    start: int
    end: int

    @property
    def size(self) -> int:
        """Return the size of this chunk in bytes."""
        return self.end - self.start + 1

    @property
    def range_header(self) -> str:
        """Value for an HTTP ``Range`` request header."""
        return f"bytes={self.start}-{self.end}"

    def content_range_header(self, total_size: int) -> str:
        """Value for an HTTP ``Content-Range`` request header.

        Args:
            total_size: Size of the whole file.
        """
        return f"bytes {self.start}-{self.end}/{total_size}"


def total_chunks(total_size: int, chunk_size: int) -> int:
    """Number of chunks needed to cover ``total_size`` bytes.

    Args:
        total_size: File size in bytes.
        chunk_size: Chunk size in bytes (> 0).

    Returns:
        ``ceil(total_size / chunk_size)``.
    """
    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")
    if total_size < 0:
        raise ValueError(f"Total size must be non-negative, got {total_size}")
    return (total_size + chunk_size - 1) // chunk_size


def chunk_range(index: int, chunk_size: int, total_size: int) -> ChunkRange:
    """Compute the byte range of chunk ``index``.

    Args:
        index: Chunk index in ``[0, total_chunks)``.
        chunk_size: Chunk size in bytes.
        total_size: File size in bytes.

    Returns:
        ChunkRange with ``end = min(start + chunk_size - 1, total_size - 1)``.

    Raises:
        IndexError: If index is outside the plan.
    """
    count = total_chunks(total_size, chunk_size)
    if not 0 <= index < count:
        raise IndexError(f"Chunk index {index} out of range (0..{count - 1})")
    start = index * chunk_size
    end = min(start + chunk_size - 1, total_size - 1)
    return ChunkRange(index=index, start=start, end=end)


def plan_chunks(total_size: int, chunk_size: int) -> list[ChunkRange]:
    """Split a file into fixed-size chunks.

    Args:
        total_size: File size in bytes.
        chunk_size: Chunk size in bytes.

    Returns:
        Chunk ranges ordered by index. Empty for an empty file.
    """
    return [
        chunk_range(index, chunk_size, total_size)
        for index in range(total_chunks(total_size, chunk_size))
    ]


def batched(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split items into consecutive batches of at most ``size`` elements.

    Args:
        items: Items to split.
        size: Maximum batch size (>= 1).

    Yields:
        Lists of items, in order.
    """
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")
    for i in range(0, len(items), size):
        yield list(items[i : i + size])
