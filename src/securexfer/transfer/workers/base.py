"""Base chunk worker with bounded retry and cooperative cancellation.

This module provides:
- CancelledException: Raised when a chunk task notices its cancellation token
- WorkerContext: Everything a worker needs to transfer one chunk
- ChunkWorker: Abstract base class for download and upload chunk workers
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from securexfer.transfer.retry import RetryExhaustedError, retry_immediately
from securexfer.transfer.types import ChunkExhaustedError

if TYPE_CHECKING:
    from collections.abc import Callable

    from securexfer.core.chunking import ChunkRange
    from securexfer.transfer.api import ConnectionFactory
    from securexfer.transfer.registry import JobState

logger = logging.getLogger(__name__)


class CancelledException(Exception):
    """Raised when a chunk task is cancelled."""

    pass


@dataclass
class WorkerContext:
    """Context passed to a chunk worker.

    Attributes:
        job_key: Key of the job the chunk belongs to.
        state: Registry state of the job; the worker only touches its own chunk.
        chunk: Byte range to transfer.
        total_size: Size of the whole file.
        cancel_check: Returns True once the task must stop.
        on_progress: Called after every buffer so the job's progress is recomputed.
    """

    job_key: str
    state: JobState
    chunk: ChunkRange
    total_size: int
    cancel_check: Callable[[], bool] = field(default=lambda: False)
    on_progress: Callable[[], None] | None = None

    def raise_if_cancelled(self) -> None:
        """Raise CancelledException if cancellation was requested."""
        if self.cancel_check():
            raise CancelledException(f"Chunk {self.chunk.index} of {self.job_key} cancelled")

    def report(self, bytes_transferred: int) -> None:
        """Record the bytes moved by the current attempt and notify progress."""
        self.state.update_progress(self.chunk.index, bytes_transferred)
        if self.on_progress:
            self.on_progress()


class ChunkWorker(ABC):
    """Transfers exactly one chunk with a bounded number of attempts.

    Each attempt is counted in the registry before it starts. A failed
    attempt (connection error, non-2xx status, short read, local I/O error)
    is retried immediately. When the budget is used up the chunk is marked
    FAILED and ChunkExhaustedError is raised. CancelledException and
    CodecError are never retried.

    Subclasses must implement:
    - _transfer_once(): One attempt, returning the number of bytes moved
    - worker_type: Property returning the worker type name
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        url: str,
        attempt_budget: int,
        buffer_size: int,
    ) -> None:
        """Initialize the worker.

        Args:
            factory: Connection factory shared by the job.
            url: Remote file URL.
            attempt_budget: Attempts per chunk.
            buffer_size: Size of each streamed read/write.
        """
        self._factory = factory
        self._url = url
        self._attempt_budget = attempt_budget
        self._buffer_size = buffer_size

    @property
    @abstractmethod
    def worker_type(self) -> str:
        """Return the worker type name ('download' or 'upload')."""
        ...

    def run(self, ctx: WorkerContext) -> int:
        """Transfer one chunk.

        Args:
            ctx: Worker context for the chunk.

        Returns:
            Number of bytes transferred.

        Raises:
            ChunkExhaustedError: If every attempt failed.
            CancelledException: If the task was cancelled.
            CodecError: If the chunk could not be encrypted.
        """
        index = ctx.chunk.index

        def attempt(number: int) -> int:
            ctx.raise_if_cancelled()
            total_attempts = ctx.state.record_attempt(index)
            logger.debug(
                f"{self.worker_type} {ctx.job_key} chunk {index} "
                f"({ctx.chunk.range_header}): attempt {number}/{self._attempt_budget} "
                f"(#{total_attempts} overall)"
            )
            return self._transfer_once(ctx)

        try:
            transferred = retry_immediately(attempt, self._attempt_budget)
        except RetryExhaustedError as e:
            ctx.state.mark_failed(index)
            logger.error(
                f"{self.worker_type} {ctx.job_key} chunk {index} failed "
                f"after {e.attempts} attempts: {e.last_exception}"
            )
            raise ChunkExhaustedError(index, e.attempts) from e.last_exception

        ctx.state.mark_completed(index, transferred)
        logger.debug(f"{self.worker_type} {ctx.job_key} chunk {index} completed ({transferred} bytes)")
        return transferred

    @abstractmethod
    def _transfer_once(self, ctx: WorkerContext) -> int:
        """Perform one attempt.

        The implementation should:
        1. Call ctx.raise_if_cancelled() at every buffer boundary
        2. Call ctx.report(bytes_so_far) after every buffer
        3. Raise TransferConnectionError or OSError on failure

        Args:
            ctx: Worker context for the chunk.

        Returns:
            Number of bytes transferred (the chunk size).
        """
        ...
