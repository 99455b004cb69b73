"""Download chunk worker.

Fetches one byte range with a ``Range`` GET, encrypts each buffer at its
file offset and writes it positionally into the shared working file.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from securexfer.transfer.types import TransferConnectionError
from securexfer.transfer.workers.base import ChunkWorker, WorkerContext

if TYPE_CHECKING:
    from securexfer.transfer.api import ConnectionFactory
    from securexfer.transfer.codec import ChunkCodec
    from securexfer.transfer.storage import WorkingFile

logger = logging.getLogger(__name__)

HTTP_PARTIAL_CONTENT = 206


class DownloadChunkWorker(ChunkWorker):
    """Downloads one chunk into the encrypted working file.

    A response that ignores the Range header (200 for anything but the
    whole file) fails the attempt. Reading stops at the chunk's length; a
    body shorter than the chunk fails the attempt.
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        url: str,
        working_file: WorkingFile,
        codec: ChunkCodec,
        attempt_budget: int,
        buffer_size: int,
    ) -> None:
        super().__init__(factory, url, attempt_budget, buffer_size)
        self._working_file = working_file
        self._codec = codec

    @property
    def worker_type(self) -> str:
        return "download"

    def _transfer_once(self, ctx: WorkerContext) -> int:
        chunk = ctx.chunk
        request = self._factory.build_request("GET", self._url, byte_range=chunk)
        response = self._factory.open(request)
        received = 0
        try:
            whole_file = chunk.start == 0 and chunk.size == ctx.total_size
            if response.status_code != HTTP_PARTIAL_CONTENT and not whole_file:
                raise TransferConnectionError(
                    f"Server ignored {chunk.range_header} (HTTP {response.status_code})",
                    response.status_code,
                )

            for block in response.iter_bytes(self._buffer_size):
                ctx.raise_if_cancelled()
                block = block[: chunk.size - received]
                if not block:
                    break
                offset = chunk.start + received
                self._working_file.write_at(
                    offset, self._codec.encrypt_chunk(block, offset, ctx.job_key)
                )
                received += len(block)
                ctx.report(received)
                if received == chunk.size:
                    break
        except httpx.HTTPError as e:
            raise TransferConnectionError(
                f"Reading chunk {chunk.index} failed after {received} bytes: {e}"
            ) from e
        finally:
            response.close()

        if received < chunk.size:
            raise TransferConnectionError(
                f"Short read on chunk {chunk.index}: {received}/{chunk.size} bytes"
            )
        return received
