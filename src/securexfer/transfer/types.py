"""Shared types and dataclasses for transfer operations.

This module provides:
- TransferError and its subclasses: the engine's exception taxonomy
- TransferJob: What to transfer and how
- TransferResult: Outcome of one transfer() call
- Type aliases for lifecycle callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from securexfer.core.config import TransferConfig
from securexfer.core.types import TransferDirection

WORKING_FILE_SUFFIX = ".enc"


class TransferError(Exception):
    """Base exception for transfer errors."""


class NetworkUnavailableError(TransferError):
    """No usable network path; raised before any chunk is attempted."""


class TransferConnectionError(TransferError):
    """A single connection attempt failed (transport error or non-2xx status).

    Drives chunk retry; only surfaced as the cause of a ChunkExhaustedError.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProbeError(TransferError):
    """The metadata probe could not determine the file size."""


class CodecError(TransferError):
    """Encryption or decryption failed; fatal to the job."""


class TransferCancelledError(TransferError):
    """The job was paused or cancelled while it was running."""


class ChunkExhaustedError(TransferError):
    """A chunk failed every attempt of its budget.

    Attributes:
        chunk_index: Index of the failed chunk.
        attempts: Number of attempts made.
    """

    def __init__(self, chunk_index: int, attempts: int) -> None:
        self.chunk_index = chunk_index
        self.attempts = attempts
        super().__init__(f"Chunk {chunk_index} failed after {attempts} attempts")


class PartialTransferError(TransferError):
    """Every batch ran but some chunks did not complete.

    Attributes:
        failed_indices: Sorted indices of chunks that are not completed.
        chunk_errors: Exhaustion errors collected during this run.
    """

    def __init__(
        self,
        failed_indices: list[int],
        chunk_errors: list[ChunkExhaustedError] | None = None,
    ) -> None:
        self.failed_indices = sorted(failed_indices)
        self.chunk_errors = list(chunk_errors or [])
        super().__init__(
            f"{len(self.failed_indices)} chunk(s) did not complete: {self.failed_indices}"
        )


# Type aliases for lifecycle callbacks
ProgressCallback = Callable[[int], None]
CompletionCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


@dataclass
class TransferJob:
    """A download or upload request.

    The job key is the target file name; it correlates registry state across
    pause and resume calls.

    Attributes:
        url: Source URL (download) or destination URL (upload).
        name: File name, also used as the job key.
        direction: Download or upload.
        config: Chunking, concurrency, header and trust settings.
        destination_dir: Directory receiving the working and output files (download).
        source_path: Local file to upload (upload).
    """

    url: str
    name: str
    direction: TransferDirection
    config: TransferConfig = field(default_factory=TransferConfig)
    destination_dir: Path | None = None
    source_path: Path | None = None

    def __post_init__(self) -> None:
        """Validate the job."""
        if not self.name:
            raise ValueError("Job key (file name) must not be empty")
        if not self.url:
            raise ValueError("URL must not be empty")
        if self.direction == TransferDirection.DOWNLOAD and self.destination_dir is None:
            raise ValueError("Download jobs need a destination_dir")
        if self.direction == TransferDirection.UPLOAD and self.source_path is None:
            raise ValueError("Upload jobs need a source_path")
        if self.destination_dir is not None:
            self.destination_dir = Path(self.destination_dir)
        if self.source_path is not None:
            self.source_path = Path(self.source_path)

    @classmethod
    def download(
        cls,
        url: str,
        name: str,
        destination_dir: Path,
        config: TransferConfig | None = None,
    ) -> TransferJob:
        """Create a download job."""
        return cls(
            url=url,
            name=name,
            direction=TransferDirection.DOWNLOAD,
            config=config or TransferConfig(),
            destination_dir=destination_dir,
        )

    @classmethod
    def upload(
        cls,
        source_path: Path,
        url: str,
        config: TransferConfig | None = None,
        name: str | None = None,
    ) -> TransferJob:
        """Create an upload job keyed by the source file name."""
        source_path = Path(source_path)
        return cls(
            url=url,
            name=name or source_path.name,
            direction=TransferDirection.UPLOAD,
            config=config or TransferConfig(),
            source_path=source_path,
        )

    @property
    def key(self) -> str:
        """Stable job key."""
        return self.name

    @property
    def working_path(self) -> Path:
        """Encrypted intermediate file of a download."""
        return self._download_dir() / f"{self.name}{WORKING_FILE_SUFFIX}"

    @property
    def output_path(self) -> Path:
        """Plaintext output file of a download."""
        return self._download_dir() / self.name

    def upload_source(self) -> Path:
        """Local file of an upload.

        Raises:
            TransferError: If this is not an upload job.
        """
        if self.source_path is None:
            raise TransferError(f"{self.key} has no source file to upload")
        return self.source_path

    def _download_dir(self) -> Path:
        if self.destination_dir is None:
            raise TransferError(f"{self.key} has no destination directory")
        return self.destination_dir


@dataclass
class TransferResult:
    """Result of one transfer() call.

    Attributes:
        job_key: Key of the job.
        success: Whether every chunk completed (and, on download, was decrypted).
        total_size: File size in bytes (0 if the probe never ran).
        total_chunks: Number of chunks in the plan.
        batches: Chunk indices dispatched per batch, in order.
        failed_indices: Indices not completed when the call ended.
        error: Terminal error delivered to on_error, if any.
        output_path: Plaintext output file of a successful download.
        elapsed_time: Wall time in seconds.
    """

    job_key: str
    success: bool
    total_size: int = 0
    total_chunks: int = 0
    batches: list[list[int]] = field(default_factory=list)
    failed_indices: list[int] = field(default_factory=list)
    error: Exception | None = None
    output_path: Path | None = None
    elapsed_time: float = 0.0

    @property
    def transferred_indices(self) -> list[int]:
        """Indices dispatched during this call."""
        return [index for batch in self.batches for index in batch]
