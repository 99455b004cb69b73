"""Core module - Shared crypto, chunk planning, config and types."""

from securexfer.core.chunking import (
    ChunkRange,
    batched,
    chunk_range,
    plan_chunks,
    total_chunks,
)
from securexfer.core.config import (
    CONNECT_TIMEOUT,
    DEFAULT_ATTEMPT_BUDGET,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CONCURRENT_CHUNKS,
    READ_TIMEOUT,
    TransferConfig,
    TrustConfig,
)
from securexfer.core.crypto import (
    ctr_transform,
    derive_key,
    derive_stream_nonce,
    generate_key,
    generate_salt,
    seal,
    unseal,
)
from securexfer.core.types import ChunkStatus, TransferDirection

__all__ = [
    # Chunking
    "ChunkRange",
    "batched",
    "chunk_range",
    "plan_chunks",
    "total_chunks",
    # Config
    "CONNECT_TIMEOUT",
    "DEFAULT_ATTEMPT_BUDGET",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_CONCURRENT_CHUNKS",
    "READ_TIMEOUT",
    "TransferConfig",
    "TrustConfig",
    # Crypto
    "ctr_transform",
    "derive_key",
    "derive_stream_nonce",
    "generate_key",
    "generate_salt",
    "seal",
    "unseal",
    # Types
    "ChunkStatus",
    "TransferDirection",
]
