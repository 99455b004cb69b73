"""Chunk workers for transfer jobs."""

from securexfer.transfer.workers.base import CancelledException, ChunkWorker, WorkerContext
from securexfer.transfer.workers.download import DownloadChunkWorker
from securexfer.transfer.workers.upload import UploadChunkWorker

__all__ = [
    "CancelledException",
    "ChunkWorker",
    "DownloadChunkWorker",
    "UploadChunkWorker",
    "WorkerContext",
]
