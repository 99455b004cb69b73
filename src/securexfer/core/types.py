"""Shared types for securexfer.

This module defines enums used across the transfer engine and the CLI.
"""

from __future__ import annotations

from enum import Enum


class ChunkStatus(str, Enum):
    """Status of one chunk of a transfer job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TransferDirection(str, Enum):
    """Direction of a transfer job."""

    DOWNLOAD = "download"
    UPLOAD = "upload"
