"""Resumable, chunked, concurrent file transfers.

Architecture:
    TransferCoordinator → ChunkWorkers → ConnectionFactory

Components:
- **TransferCoordinator**: Plans chunks, runs them in bounded batches, and
  pauses, resumes and cancels jobs
- **TransferRegistry**: In-process chunk state per job key
- **Workers**: Transfer one chunk each (DownloadChunkWorker, UploadChunkWorker)
- **ConnectionFactory**: Builds requests with custom headers, ranges and pinned trust
- **ChunkCodec**: Encrypts downloaded chunks at rest and decrypts on completion
"""

from securexfer.transfer.api import ConnectionFactory, parse_content_range_total
from securexfer.transfer.codec import AesCtrChunkCodec, ChunkCodec
from securexfer.transfer.coordinator import TransferCoordinator
from securexfer.transfer.network import is_network_available
from securexfer.transfer.progress import ProgressReporter
from securexfer.transfer.registry import ChunkState, JobState, TaskHandle, TransferRegistry
from securexfer.transfer.retry import RetryExhaustedError, retry_immediately
from securexfer.transfer.trust import TrustConfigError, build_verify, create_pinned_ssl_context
from securexfer.transfer.types import (
    ChunkExhaustedError,
    CodecError,
    CompletionCallback,
    ErrorCallback,
    NetworkUnavailableError,
    PartialTransferError,
    ProbeError,
    ProgressCallback,
    TransferCancelledError,
    TransferConnectionError,
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

__all__ = [
    # Coordinator
    "TransferCoordinator",
    # Registry
    "ChunkState",
    "JobState",
    "TaskHandle",
    "TransferRegistry",
    # Workers
    "CancelledException",
    "ChunkWorker",
    "DownloadChunkWorker",
    "UploadChunkWorker",
    "WorkerContext",
    # Connections
    "ConnectionFactory",
    "TrustConfigError",
    "build_verify",
    "create_pinned_ssl_context",
    "is_network_available",
    "parse_content_range_total",
    # Codec
    "AesCtrChunkCodec",
    "ChunkCodec",
    # Progress and retry
    "ProgressReporter",
    "RetryExhaustedError",
    "retry_immediately",
    # Types
    "ChunkExhaustedError",
    "CodecError",
    "CompletionCallback",
    "ErrorCallback",
    "NetworkUnavailableError",
    "PartialTransferError",
    "ProbeError",
    "ProgressCallback",
    "TransferCancelledError",
    "TransferConnectionError",
    "TransferError",
    "TransferJob",
    "TransferResult",
]
