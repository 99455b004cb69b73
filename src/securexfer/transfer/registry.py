"""In-process registry of chunk state for transfer jobs.

This module provides:
- ChunkState: Mutable state of one chunk
- TaskHandle: Cancellation handle of one dispatched chunk task
- JobState: Chunk map, outstanding handles and run token of one job
- TransferRegistry: Process-wide map of job key -> JobState

The registry dict is guarded by one lock used only for create/lookup/remove.
Chunk updates and aggregate reads take the owning job's lock, so jobs never
contend with each other.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field, replace

from securexfer.core.chunking import ChunkRange, plan_chunks
from securexfer.core.types import ChunkStatus
from securexfer.transfer.types import TransferError

logger = logging.getLogger(__name__)


@dataclass
class ChunkState:
    """State of one chunk.

    Attributes:
        index: Chunk index.
        start: First byte of the range.
        end: Last byte of the range (inclusive).
        status: Current status.
        bytes_transferred: Bytes transferred by the most recent attempt.
        attempts: Attempts made since the plan was created.
    """

    index: int
    start: int
    end: int
    status: ChunkStatus = ChunkStatus.PENDING
    bytes_transferred: int = 0
    attempts: int = 0

    @property
    def size(self) -> int:
        """Size of the chunk range in bytes."""
        return self.end - self.start + 1

    @property
    def chunk_range(self) -> ChunkRange:
        """Byte range of this chunk."""
        return ChunkRange(index=self.index, start=self.start, end=self.end)

    @classmethod
    def from_range(cls, chunk: ChunkRange) -> ChunkState:
        """Create a pending state for a planned chunk."""
        return cls(index=chunk.index, start=chunk.start, end=chunk.end)


@dataclass
class TaskHandle:
    """Cancellation handle of one dispatched chunk task.

    Attributes:
        chunk_index: Chunk the task transfers.
        cancel_event: Set when the task must stop at its next I/O boundary.
        future: Future of the running task, once submitted.
    """

    chunk_index: int
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Future[int] | None = None

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation; a not-yet-started task never runs."""
        self.cancel_event.set()
        if self.future is not None:
            self.future.cancel()


class JobState:
    """Chunk map and task handles of one job."""

    def __init__(self, job_key: str, total_size: int, chunk_size: int) -> None:
        self.job_key = job_key
        self.total_size = total_size
        self.chunk_size = chunk_size
        self._lock = threading.Lock()
        self._chunks: dict[int, ChunkState] = {
            chunk.index: ChunkState.from_range(chunk)
            for chunk in plan_chunks(total_size, chunk_size)
        }
        self._handles: list[TaskHandle] = []
        self._run_event: threading.Event | None = None

    def matches(self, total_size: int, chunk_size: int) -> bool:
        """Check whether this plan was built for the given sizes."""
        return self.total_size == total_size and self.chunk_size == chunk_size

    @property
    def total_chunks(self) -> int:
        """Number of chunks in the plan."""
        return len(self._chunks)

    # === Run lifecycle ===

    @property
    def is_running(self) -> bool:
        """Check if a transfer() call currently owns this job."""
        with self._lock:
            return self._run_event is not None

    def begin_run(self, run_event: threading.Event | None = None) -> threading.Event:
        """Mark the job as running and return its run cancellation token.

        Args:
            run_event: Token to adopt; a new one is created if omitted.

        Raises:
            TransferError: If another transfer() call is running this job.
        """
        with self._lock:
            if self._run_event is not None:
                raise TransferError(f"Job {self.job_key!r} is already running")
            self._run_event = run_event if run_event is not None else threading.Event()
            return self._run_event

    def end_run(self) -> None:
        """Mark the job as no longer running and drop its handles."""
        with self._lock:
            self._run_event = None
            self._handles = []

    # === Task handles ===

    def set_handles(self, handles: list[TaskHandle]) -> None:
        """Record the handles of the batch being dispatched."""
        with self._lock:
            self._handles = list(handles)

    def clear_handles(self) -> None:
        """Forget the handles of a finished batch."""
        with self._lock:
            self._handles = []

    def cancel_outstanding(self) -> int:
        """Cancel the running batch and stop further batches.

        Returns:
            Number of task handles cancelled.
        """
        with self._lock:
            if self._run_event is not None:
                self._run_event.set()
            handles = list(self._handles)
        for handle in handles:
            handle.cancel()
        return len(handles)

    # === Chunk state ===

    def record_attempt(self, index: int) -> int:
        """Mark a chunk in progress and count a new attempt.

        The byte count is left as last recorded until the attempt reports
        fresh progress.

        Returns:
            The attempt number.
        """
        with self._lock:
            state = self._chunks[index]
            state.status = ChunkStatus.IN_PROGRESS
            state.attempts += 1
            return state.attempts

    def update_progress(self, index: int, bytes_transferred: int) -> None:
        """Record bytes transferred by the current attempt of a chunk."""
        with self._lock:
            state = self._chunks[index]
            state.status = ChunkStatus.IN_PROGRESS
            state.bytes_transferred = bytes_transferred

    def mark_completed(self, index: int, bytes_transferred: int) -> None:
        """Mark a chunk completed with its final byte count."""
        with self._lock:
            state = self._chunks[index]
            state.status = ChunkStatus.COMPLETED
            state.bytes_transferred = bytes_transferred

    def mark_failed(self, index: int) -> None:
        """Mark a chunk failed after its attempt budget ran out."""
        with self._lock:
            state = self._chunks[index]
            state.status = ChunkStatus.FAILED
            state.bytes_transferred = 0

    def reset(self) -> None:
        """Discard all chunk progress and start from a fresh plan."""
        with self._lock:
            for state in self._chunks.values():
                state.status = ChunkStatus.PENDING
                state.bytes_transferred = 0
                state.attempts = 0

    def snapshot(self) -> dict[int, ChunkState]:
        """Return a copy of the chunk map."""
        with self._lock:
            return {index: replace(state) for index, state in self._chunks.items()}

    def get(self, index: int) -> ChunkState:
        """Return a copy of one chunk's state."""
        with self._lock:
            return replace(self._chunks[index])

    def indices_with_status(self, *statuses: ChunkStatus) -> list[int]:
        """Indices of chunks whose status is one of ``statuses``."""
        with self._lock:
            return sorted(i for i, s in self._chunks.items() if s.status in statuses)

    def incomplete_indices(self) -> list[int]:
        """Indices of chunks not yet completed."""
        with self._lock:
            return sorted(
                i for i, s in self._chunks.items() if s.status != ChunkStatus.COMPLETED
            )

    def all_completed(self) -> bool:
        """Check if every chunk is completed."""
        with self._lock:
            return all(s.status == ChunkStatus.COMPLETED for s in self._chunks.values())

    def transferred_bytes(self) -> int:
        """Sum of bytes_transferred over all chunks."""
        with self._lock:
            return sum(s.bytes_transferred for s in self._chunks.values())

    def progress_percent(self) -> int:
        """Overall progress as ``floor(100 * transferred / total)``, in [0, 100]."""
        if self.total_size == 0:
            return 100
        percent = (100 * self.transferred_bytes()) // self.total_size
        return max(0, min(100, percent))


class TransferRegistry:
    """Process-wide registry of job state, keyed by job key.

    An entry is created on the first transfer() of a key, kept across pause
    and failure so a resume can pick up unfinished chunks, and removed on
    success or explicit cancel.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, JobState] = {}

    def __contains__(self, job_key: object) -> bool:
        with self._lock:
            return job_key in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def get(self, job_key: str) -> JobState | None:
        """Return the state of a job, or None."""
        with self._lock:
            return self._jobs.get(job_key)

    def get_or_create(
        self,
        job_key: str,
        total_size: int,
        chunk_size: int,
    ) -> tuple[JobState, bool]:
        """Look up a job's state or create a fresh plan.

        An existing plan is reused only if it was built for the same total
        size and chunk size; otherwise it is replaced.

        Args:
            job_key: Job key.
            total_size: File size in bytes.
            chunk_size: Chunk size in bytes.

        Returns:
            (state, reused) tuple.
        """
        with self._lock:
            state = self._jobs.get(job_key)
            if state is not None:
                if state.matches(total_size, chunk_size):
                    return state, True
                if state.is_running:
                    raise TransferError(f"Job {job_key!r} is already running")
                logger.info(
                    f"Plan for {job_key} changed "
                    f"({state.total_size}/{state.chunk_size} -> {total_size}/{chunk_size}), "
                    f"starting fresh"
                )
            state = JobState(job_key, total_size, chunk_size)
            self._jobs[job_key] = state
            return state, False

    def remove(self, job_key: str) -> JobState | None:
        """Discard a job's state.

        Returns:
            The removed state, or None if the job was unknown.
        """
        with self._lock:
            return self._jobs.pop(job_key, None)

    def remove_if(self, job_key: str, state: JobState) -> bool:
        """Discard a job's state only if it is still ``state``.

        Returns:
            True if the entry was removed.
        """
        with self._lock:
            if self._jobs.get(job_key) is state:
                del self._jobs[job_key]
                return True
            return False

    def cancel_outstanding(self, job_key: str) -> int:
        """Cancel every outstanding task of a job.

        Returns:
            Number of task handles cancelled.
        """
        state = self.get(job_key)
        if state is None:
            return 0
        return state.cancel_outstanding()
