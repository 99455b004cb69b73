"""Local file access for transfer workers.

This module provides:
- WorkingFile: Shared random-access handle for the encrypted working file
- read_range: Positional read of an upload source file
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

logger = logging.getLogger(__name__)


class WorkingFile:
    """Random-access file shared by every worker of a download job.

    All workers write through one handle; each seek+write pair runs under a
    lock so writes to disjoint ranges never interleave.

    Usage:
        with WorkingFile.open(path, size, fresh=True) as working:
            working.write_at(offset, data)
    """

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: Path, size: int, fresh: bool) -> WorkingFile:
        """Open the working file for positional writes.

        Args:
            path: Working file path.
            size: Final size of the file.
            fresh: Truncate existing content (new plan) instead of keeping it.

        Returns:
            Open WorkingFile sized to ``size`` bytes.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = "r+b" if path.exists() and not fresh else "w+b"
        handle = open(path, mode)  # noqa: SIM115
        handle.truncate(size)
        logger.debug(f"Opened working file {path} ({'fresh' if mode == 'w+b' else 'reused'})")
        return cls(handle)

    def write_at(self, offset: int, data: bytes) -> None:
        """Write ``data`` at ``offset``."""
        with self._lock:
            self._handle.seek(offset)
            self._handle.write(data)

    def close(self) -> None:
        """Flush and close the handle."""
        with self._lock:
            if not self._handle.closed:
                self._handle.flush()
                self._handle.close()

    def __enter__(self) -> WorkingFile:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def read_range(path: Path, start: int, size: int, buffer_size: int) -> Iterator[bytes]:
    """Yield the bytes ``[start, start + size)`` of a file in buffers.

    Args:
        path: File to read.
        start: First byte.
        size: Number of bytes.
        buffer_size: Maximum buffer length.

    Yields:
        Buffers in order.

    Raises:
        OSError: If the file ends before ``start + size``.
    """
    with open(path, "rb") as f:
        f.seek(start)
        remaining = size
        while remaining > 0:
            block = f.read(min(buffer_size, remaining))
            if not block:
                raise OSError(f"{path} ended {remaining} bytes before the end of the range")
            remaining -= len(block)
            yield block
