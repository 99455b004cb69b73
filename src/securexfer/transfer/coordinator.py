"""Transfer coordinator: the batched, resumable chunk transfer engine.

This module provides:
- TransferCoordinator: Runs download and upload jobs, and pauses, resumes
  and cancels them

One transfer() call:
1. Checks reachability and fails fast when the network is unavailable
2. Probes the total size (HEAD / range GET for downloads, stat for uploads)
3. Looks up or plans the job's chunk map in the registry
4. Dispatches every non-completed chunk in sequential batches of
   ``max_concurrent_chunks``; each batch is fully resolved before the next
5. On download success, decrypts the working file into the output file
6. Removes the registry entry on success; keeps it on failure or pause

Exactly one of ``on_completion`` / ``on_error`` is called per transfer().
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from concurrent.futures import CancelledError as FutureCancelledError
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from securexfer.core.chunking import batched
from securexfer.core.config import TransferConfig
from securexfer.core.types import TransferDirection
from securexfer.transfer.api import ConnectionFactory
from securexfer.transfer.network import is_network_available
from securexfer.transfer.progress import ProgressReporter
from securexfer.transfer.registry import JobState, TaskHandle, TransferRegistry
from securexfer.transfer.storage import WorkingFile
from securexfer.transfer.types import (
    ChunkExhaustedError,
    NetworkUnavailableError,
    PartialTransferError,
    ProbeError,
    TransferCancelledError,
    TransferError,
    TransferJob,
    TransferResult,
)
from securexfer.transfer.workers import (
    CancelledException,
    ChunkWorker,
    DownloadChunkWorker,
    UploadChunkWorker,
    WorkerContext,
)

if TYPE_CHECKING:
    from pathlib import Path

    import httpx

    from securexfer.transfer.codec import ChunkCodec
    from securexfer.transfer.network import NetworkCheck
    from securexfer.transfer.types import (
        CompletionCallback,
        ErrorCallback,
        ProgressCallback,
    )

logger = logging.getLogger(__name__)


@dataclass
class _ActiveRun:
    """Stop token of one transfer() call, live from its start to its end.

    Attributes:
        stop: Set by pause() or cancel(); also the run token of the job state.
        discard: Set by cancel(); the job state is dropped when the run ends.
    """

    stop: threading.Event = field(default_factory=threading.Event)
    discard: bool = False


class TransferCoordinator:
    """Runs chunked transfers with bounded concurrency and resumable state.

    Usage:
        coordinator = TransferCoordinator(codec=AesCtrChunkCodec(key))
        result = coordinator.download(url, "report.pdf", Path("~/Downloads"))
        if not result.success:
            coordinator.resume(job)  # picks up the unfinished chunks

    A coordinator may run several jobs at once from different threads; a
    given job key may only be run by one transfer() call at a time.
    """

    def __init__(
        self,
        codec: ChunkCodec | None = None,
        registry: TransferRegistry | None = None,
        network_check: NetworkCheck | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            codec: Cipher for working files; required for downloads.
            registry: Chunk state registry (a private one by default).
            network_check: Reachability check, called with the job URL.
            transport: Optional HTTP transport override (used by tests).
        """
        self._codec = codec
        self._registry = registry if registry is not None else TransferRegistry()
        self._network_check = network_check or is_network_available
        self._transport = transport
        self._runs: dict[str, _ActiveRun] = {}
        self._runs_lock = threading.Lock()

    @property
    def registry(self) -> TransferRegistry:
        """Chunk state registry of this coordinator."""
        return self._registry

    # === Lifecycle ===

    def transfer(
        self,
        job: TransferJob,
        on_progress: ProgressCallback | None = None,
        on_completion: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> TransferResult:
        """Run a job until every chunk completes, a chunk exhausts, or it is paused.

        Job-level failures are never raised: they are passed to ``on_error``
        and stored on the returned result.

        Args:
            job: Job to run.
            on_progress: Called with the overall percentage (0-100).
            on_completion: Called once when the job succeeds.
            on_error: Called once with the terminal error when the job fails.

        Returns:
            Outcome of this call.
        """
        start_time = time.time()
        result = TransferResult(job_key=job.key, success=False)
        logger.info(f"Starting {job.direction.value} of {job.key} ({job.url})")

        try:
            self._execute(job, result, on_progress)
        except Exception as e:
            result.error = e
            result.elapsed_time = time.time() - start_time
            if isinstance(e, TransferCancelledError):
                logger.info(f"{job.key}: {e}")
            else:
                logger.error(f"Transfer of {job.key} failed: {e}")
            if on_error:
                on_error(e)
            return result

        result.success = True
        result.elapsed_time = time.time() - start_time
        logger.info(
            f"Completed {job.direction.value} of {job.key}: {result.total_size} bytes "
            f"in {result.elapsed_time:.2f}s"
        )
        if on_completion:
            on_completion()
        return result

    def resume(
        self,
        job: TransferJob,
        on_progress: ProgressCallback | None = None,
        on_completion: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> TransferResult:
        """Resume a paused or failed job; completed chunks are not transferred again.

        Equivalent to transfer() with the same job key and chunk size.
        """
        state = self._registry.get(job.key)
        if state is None:
            logger.info(f"No saved state for {job.key}, starting from scratch")
        else:
            done = state.total_chunks - len(state.incomplete_indices())
            logger.info(f"Resuming {job.key}: {done}/{state.total_chunks} chunks already completed")
        return self.transfer(job, on_progress, on_completion, on_error)

    def pause(self, job_key: str) -> bool:
        """Stop a running job, keeping its chunk state for resume().

        Outstanding chunk tasks stop at their next buffer boundary and no
        further batch is started. A job paused while it is still checking
        the network or probing the size never dispatches a chunk.

        Returns:
            True if the job is running or has saved chunk state.
        """
        with self._runs_lock:
            run = self._runs.get(job_key)
            if run is not None:
                run.stop.set()
        if run is None and job_key not in self._registry:
            return False
        cancelled = self._registry.cancel_outstanding(job_key)
        logger.info(f"Paused {job_key} ({cancelled} outstanding chunk task(s) cancelled)")
        return True

    def cancel(self, job_key: str) -> bool:
        """Stop a job and discard its chunk state.

        Returns:
            True if the job was running or had saved chunk state.
        """
        with self._runs_lock:
            run = self._runs.get(job_key)
            if run is not None:
                run.discard = True
                run.stop.set()
        state = self._registry.remove(job_key)
        if run is None and state is None:
            return False
        cancelled = state.cancel_outstanding() if state is not None else 0
        logger.info(f"Cancelled {job_key} ({cancelled} outstanding chunk task(s) cancelled)")
        return True

    def download(
        self,
        url: str,
        name: str,
        destination_dir: Path,
        config: TransferConfig | None = None,
        on_progress: ProgressCallback | None = None,
        on_completion: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> TransferResult:
        """Download ``url`` into ``destination_dir / name``."""
        job = TransferJob.download(url, name, destination_dir, config)
        return self.transfer(job, on_progress, on_completion, on_error)

    def upload(
        self,
        source_path: Path,
        url: str,
        config: TransferConfig | None = None,
        on_progress: ProgressCallback | None = None,
        on_completion: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> TransferResult:
        """Upload ``source_path`` to ``url`` in chunks."""
        job = TransferJob.upload(source_path, url, config)
        return self.transfer(job, on_progress, on_completion, on_error)

    # === Execution ===

    def _execute(
        self,
        job: TransferJob,
        result: TransferResult,
        on_progress: ProgressCallback | None,
    ) -> None:
        codec = self._codec
        if job.direction == TransferDirection.DOWNLOAD and codec is None:
            raise TransferError("Downloads need a ChunkCodec")

        run = self._start_run(job.key)
        state: JobState | None = None
        try:
            if not self._network_check(job.url):
                raise NetworkUnavailableError(f"Network unavailable for {job.url}")

            config = job.config
            with ConnectionFactory(config.headers, config.trust, self._transport) as factory:
                total_size = self._probe_size(job, factory)
                if run.stop.is_set():
                    raise TransferCancelledError(
                        f"Transfer of {job.key} was paused or cancelled before dispatch"
                    )
                state, reused = self._registry.get_or_create(
                    job.key, total_size, config.chunk_size
                )
                result.total_size = total_size
                result.total_chunks = state.total_chunks
                logger.info(
                    f"{job.key}: {total_size} bytes in {state.total_chunks} chunk(s) of "
                    f"{config.chunk_size} bytes ({'resumed' if reused else 'new'} plan)"
                )

                run_event = state.begin_run(run.stop)
                try:
                    if codec is not None and job.direction == TransferDirection.DOWNLOAD:
                        self._download(
                            job, codec, state, reused, run_event, factory, result, on_progress
                        )
                    else:
                        self._upload(job, state, run_event, factory, result, on_progress)
                finally:
                    result.failed_indices = state.incomplete_indices()
                    state.end_run()

            self._registry.remove_if(job.key, state)
        finally:
            self._finish_run(job.key, run, state)

    def _start_run(self, job_key: str) -> _ActiveRun:
        with self._runs_lock:
            if job_key in self._runs:
                raise TransferError(f"Job {job_key!r} is already running")
            run = _ActiveRun()
            self._runs[job_key] = run
            return run

    def _finish_run(self, job_key: str, run: _ActiveRun, state: JobState | None) -> None:
        with self._runs_lock:
            if self._runs.get(job_key) is run:
                del self._runs[job_key]
        if run.discard and state is not None:
            self._registry.remove_if(job_key, state)

    def _probe_size(self, job: TransferJob, factory: ConnectionFactory) -> int:
        if job.direction == TransferDirection.UPLOAD:
            source_path = job.upload_source()
            try:
                return source_path.stat().st_size
            except OSError as e:
                raise ProbeError(f"Cannot read upload source {source_path}: {e}") from e
        return factory.probe_size(job.url)

    def _download(
        self,
        job: TransferJob,
        codec: ChunkCodec,
        state: JobState,
        reused: bool,
        run_event: threading.Event,
        factory: ConnectionFactory,
        result: TransferResult,
        on_progress: ProgressCallback | None,
    ) -> None:
        working_path = job.working_path
        fresh = not reused
        if reused and not working_path.exists():
            logger.warning(f"Working file {working_path} is missing, restarting {job.key}")
            state.reset()
            fresh = True

        progress = ProgressReporter(state, on_progress)
        with WorkingFile.open(working_path, state.total_size, fresh=fresh) as working_file:
            worker = DownloadChunkWorker(
                factory,
                job.url,
                working_file,
                codec,
                job.config.attempt_budget,
                job.config.buffer_size,
            )
            self._run_batches(job, state, worker, run_event, result, progress)

        codec.finalize(job.key, working_path, job.output_path, job.config.buffer_size)
        with contextlib.suppress(OSError):
            working_path.unlink()
        result.output_path = job.output_path
        progress.finish()

    def _upload(
        self,
        job: TransferJob,
        state: JobState,
        run_event: threading.Event,
        factory: ConnectionFactory,
        result: TransferResult,
        on_progress: ProgressCallback | None,
    ) -> None:
        progress = ProgressReporter(state, on_progress)
        worker = UploadChunkWorker(
            factory,
            job.url,
            job.upload_source(),
            job.config.upload_method,
            job.config.attempt_budget,
            job.config.buffer_size,
        )
        self._run_batches(job, state, worker, run_event, result, progress)
        progress.finish()

    def _run_batches(
        self,
        job: TransferJob,
        state: JobState,
        worker: ChunkWorker,
        run_event: threading.Event,
        result: TransferResult,
        progress: ProgressReporter,
    ) -> None:
        """Dispatch every incomplete chunk in sequential, fully-awaited batches.

        Raises:
            TransferCancelledError: If the job was paused or cancelled.
            PartialTransferError: If some chunks did not complete.
            CodecError: If a chunk could not be encrypted.
        """
        pending = state.incomplete_indices()
        batch_size = job.config.max_concurrent_chunks
        chunk_errors: list[ChunkExhaustedError] = []
        progress.update()

        with ThreadPoolExecutor(
            max_workers=batch_size, thread_name_prefix=f"securexfer-{worker.worker_type}"
        ) as pool:
            try:
                for batch in batched(pending, batch_size):
                    if run_event.is_set():
                        break
                    result.batches.append(batch)
                    logger.info(f"{job.key}: dispatching chunks {batch}")
                    chunk_errors.extend(
                        self._run_batch(job, state, worker, batch, pool, run_event, progress)
                    )
            except KeyboardInterrupt:
                # Stop the workers so the pool can shut down
                state.cancel_outstanding()
                raise

        if run_event.is_set():
            raise TransferCancelledError(f"Transfer of {job.key} was paused or cancelled")

        if not state.all_completed():
            raise PartialTransferError(state.incomplete_indices(), chunk_errors)

    def _run_batch(
        self,
        job: TransferJob,
        state: JobState,
        worker: ChunkWorker,
        batch: list[int],
        pool: ThreadPoolExecutor,
        run_event: threading.Event,
        progress: ProgressReporter,
    ) -> list[ChunkExhaustedError]:
        """Run one batch and wait for every task of it.

        Exhausted chunks never cancel their siblings. Any other failure
        cancels the rest of the batch and is raised once all tasks ended.

        Returns:
            Exhaustion errors of the batch.
        """
        handles = [TaskHandle(chunk_index=index) for index in batch]
        state.set_handles(handles)
        for handle in handles:
            ctx = self._make_context(job, state, handle, run_event, progress)
            handle.future = pool.submit(worker.run, ctx)

        errors: list[ChunkExhaustedError] = []
        fatal: Exception | None = None
        try:
            futures = [handle.future for handle in handles if handle.future is not None]
            for future in as_completed(futures):
                try:
                    future.result()
                except ChunkExhaustedError as e:
                    errors.append(e)
                except (CancelledException, FutureCancelledError):
                    pass
                except Exception as e:
                    if fatal is None:
                        fatal = e
                        logger.error(f"{job.key}: aborting batch {batch}: {e}")
                        for handle in handles:
                            handle.cancel()
        finally:
            state.clear_handles()

        if fatal is not None:
            raise fatal
        return errors

    def _make_context(
        self,
        job: TransferJob,
        state: JobState,
        handle: TaskHandle,
        run_event: threading.Event,
        progress: ProgressReporter,
    ) -> WorkerContext:
        return WorkerContext(
            job_key=job.key,
            state=state,
            chunk=state.get(handle.chunk_index).chunk_range,
            total_size=state.total_size,
            cancel_check=lambda: handle.cancelled or run_event.is_set(),
            on_progress=progress.update,
        )
