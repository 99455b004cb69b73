"""Upload chunk worker.

Reads one byte range of the source file and streams it as the request body,
tagged with ``Content-Range: bytes s-e/total``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

from securexfer.transfer.storage import read_range
from securexfer.transfer.types import TransferConnectionError
from securexfer.transfer.workers.base import ChunkWorker, WorkerContext

if TYPE_CHECKING:
    from pathlib import Path

    from securexfer.transfer.api import ConnectionFactory

logger = logging.getLogger(__name__)


class UploadChunkWorker(ChunkWorker):
    """Uploads one chunk of a local file.

    The body is a generator so the chunk is never held in memory as a
    whole; an explicit Content-Length keeps the request from being sent
    with chunked transfer encoding.
    """

    def __init__(
        self,
        factory: ConnectionFactory,
        url: str,
        source_path: Path,
        method: str,
        attempt_budget: int,
        buffer_size: int,
    ) -> None:
        super().__init__(factory, url, attempt_budget, buffer_size)
        self._source_path = source_path
        self._method = method

    @property
    def worker_type(self) -> str:
        return "upload"

    def _transfer_once(self, ctx: WorkerContext) -> int:
        chunk = ctx.chunk
        sent = 0

        def body() -> Iterator[bytes]:
            nonlocal sent
            for block in read_range(self._source_path, chunk.start, chunk.size, self._buffer_size):
                ctx.raise_if_cancelled()
                yield block
                sent += len(block)
                ctx.report(sent)

        request = self._factory.build_request(
            self._method,
            self._url,
            content_range=chunk.content_range_header(ctx.total_size),
            content=body(),
            content_length=chunk.size,
        )
        response = self._factory.open(request)
        response.close()

        if sent < chunk.size:
            raise TransferConnectionError(
                f"Upload of chunk {chunk.index} ended early: {sent}/{chunk.size} bytes sent"
            )
        return sent
