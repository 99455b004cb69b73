"""Shared configuration classes for securexfer.

This module defines the per-job configuration consumed by the transfer engine
and the defaults exposed through the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1 MiB
DEFAULT_MAX_CONCURRENT_CHUNKS = 4
DEFAULT_ATTEMPT_BUDGET = 3
DEFAULT_BUFFER_SIZE = 64 * 1024  # 64 KiB per read/write
DEFAULT_UPLOAD_METHOD = "POST"

# Fixed per-connection timeouts (seconds), independent of chunk size
CONNECT_TIMEOUT = 15.0
READ_TIMEOUT = 15.0


@dataclass
class TrustConfig:
    """Pinned certificate material for a transfer.

    Exactly one of ``pinned_cert_path`` or ``pinned_cert_pem`` must be set.
    When a TrustConfig is attached to a job, TLS connections trust only this
    certificate instead of the system trust store.

    Attributes:
        pinned_cert_path: Path to a PEM-encoded certificate.
        pinned_cert_pem: PEM-encoded certificate text.
    """

    pinned_cert_path: Path | None = None
    pinned_cert_pem: str | None = None

    def __post_init__(self) -> None:
        """Validate that exactly one certificate source is given."""
        if (self.pinned_cert_path is None) == (self.pinned_cert_pem is None):
            raise ValueError("TrustConfig needs exactly one of pinned_cert_path or pinned_cert_pem")
        if self.pinned_cert_path is not None:
            self.pinned_cert_path = Path(self.pinned_cert_path).expanduser()

    def load_pem(self) -> str:
        """Return the pinned certificate as PEM text.

        Raises:
            OSError: If the certificate file cannot be read.
            ValueError: If neither certificate source is set.
        """
        if self.pinned_cert_path is not None:
            return self.pinned_cert_path.read_text(encoding="ascii")
        if self.pinned_cert_pem is None:
            raise ValueError("TrustConfig has no pinned certificate")
        return self.pinned_cert_pem


@dataclass
class TransferConfig:
    """Configuration of a single transfer job.

    Attributes:
        chunk_size: Size of each byte-range chunk.
        max_concurrent_chunks: Number of chunks dispatched per batch.
        attempt_budget: Attempts per chunk before it is marked failed.
        headers: Custom headers sent with every request.
        trust: Optional pinned certificate configuration.
        buffer_size: Size of each streamed read/write.
        upload_method: HTTP method used for chunk uploads.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_concurrent_chunks: int = DEFAULT_MAX_CONCURRENT_CHUNKS
    attempt_budget: int = DEFAULT_ATTEMPT_BUDGET
    headers: dict[str, str] = field(default_factory=dict)
    trust: TrustConfig | None = None
    buffer_size: int = DEFAULT_BUFFER_SIZE
    upload_method: str = DEFAULT_UPLOAD_METHOD

    def __post_init__(self) -> None:
        """Validate limits and normalize the upload method."""
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_concurrent_chunks < 1:
            raise ValueError(
                f"max_concurrent_chunks must be at least 1, got {self.max_concurrent_chunks}"
            )
        if self.attempt_budget < 1:
            raise ValueError(f"attempt_budget must be at least 1, got {self.attempt_budget}")
        if self.buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {self.buffer_size}")
        self.upload_method = self.upload_method.upper()
        self.headers = dict(self.headers)
