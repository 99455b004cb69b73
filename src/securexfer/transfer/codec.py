"""Encryption at rest for downloaded chunks.

This module provides:
- ChunkCodec: Pluggable cipher interface used by download workers
- AesCtrChunkCodec: AES-CTR codec keyed by a caller-supplied secret

Each buffer is encrypted at its byte offset in the file before it is written
to the working file. Ciphertext has the same length as plaintext, so chunks
can be written positionally and in any order. Once every chunk is complete,
finalize() decrypts the working file sequentially into the output file.
"""

from __future__ import annotations

import contextlib
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from securexfer.core.config import DEFAULT_BUFFER_SIZE
from securexfer.core.crypto import VALID_KEY_SIZES, ctr_transform, derive_stream_nonce
from securexfer.transfer.types import CodecError

logger = logging.getLogger(__name__)


class ChunkCodec(ABC):
    """Length-preserving cipher for working files.

    Subclasses must implement encrypt_chunk() and decrypt_chunk(); both must
    be deterministic for a given key, job key and offset.
    """

    @abstractmethod
    def encrypt_chunk(self, data: bytes, offset: int, job_key: str) -> bytes:
        """Encrypt a buffer that belongs at ``offset`` of the file."""
        ...

    @abstractmethod
    def decrypt_chunk(self, data: bytes, offset: int, job_key: str) -> bytes:
        """Decrypt a buffer read from ``offset`` of the working file."""
        ...

    def finalize(
        self,
        job_key: str,
        working_path: Path,
        output_path: Path,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> Path:
        """Decrypt the working file into the plaintext output file.

        Writes to a temporary file first and renames it over the output path,
        so a failed finalize never leaves a partial output file. The working
        file is left untouched.

        Args:
            job_key: Job key the working file was encrypted for.
            working_path: Encrypted working file.
            output_path: Plaintext output file.
            buffer_size: Read size.

        Returns:
            The output path.

        Raises:
            CodecError: If reading, decrypting or writing fails.
        """
        tmp_path = output_path.with_name(output_path.name + ".tmp")
        offset = 0
        try:
            with open(working_path, "rb") as src, open(tmp_path, "wb") as dst:
                for block in iter(lambda: src.read(buffer_size), b""):
                    dst.write(self.decrypt_chunk(block, offset, job_key))
                    offset += len(block)
            os.replace(tmp_path, output_path)
        except Exception as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise CodecError(f"Failed to decrypt {working_path}: {e}") from e

        logger.info(f"Decrypted {job_key}: {offset} bytes -> {output_path}")
        return output_path


class AesCtrChunkCodec(ChunkCodec):
    """AES-CTR codec with a per-job stream derived from the engine key."""

    def __init__(self, key: bytes) -> None:
        """Initialize the codec.

        Args:
            key: 16, 24 or 32-byte AES key supplied by the caller.

        Raises:
            ValueError: If the key has an invalid length.
        """
        if len(key) not in VALID_KEY_SIZES:
            raise ValueError(f"Invalid key: must be 16, 24 or 32 bytes, got {len(key)}")
        self._key = key

    def _transform(self, data: bytes, offset: int, job_key: str) -> bytes:
        try:
            return ctr_transform(data, self._key, derive_stream_nonce(self._key, job_key), offset)
        except (ValueError, TypeError) as e:
            raise CodecError(f"Cipher failure at offset {offset}: {e}") from e

    def encrypt_chunk(self, data: bytes, offset: int, job_key: str) -> bytes:
        """Encrypt a buffer at its file offset."""
        return self._transform(data, offset, job_key)

    def decrypt_chunk(self, data: bytes, offset: int, job_key: str) -> bytes:
        """Decrypt a buffer at its file offset."""
        return self._transform(data, offset, job_key)
