"""Overall progress reporting for one transfer run."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from securexfer.transfer.registry import JobState
    from securexfer.transfer.types import ProgressCallback

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Recomputes job progress from the registry and emits it monotonically.

    Workers call update() after every buffer. The percentage is recomputed
    by summing the job's chunk map and is only emitted when it increases,
    so a retried or restarted chunk never moves the reported value backwards.
    """

    def __init__(self, state: JobState, callback: ProgressCallback | None = None) -> None:
        self._state = state
        self._callback = callback
        self._lock = threading.Lock()
        self._last = -1

    @property
    def last(self) -> int:
        """Last emitted percentage, or -1 if nothing was emitted."""
        return self._last

    def update(self) -> None:
        """Emit the current percentage if it is higher than the last one."""
        with self._lock:
            percent = self._state.progress_percent()
            if percent <= self._last:
                return
            self._last = percent
            if self._callback:
                self._callback(percent)

    def finish(self) -> None:
        """Emit 100 if the run completed without reaching it."""
        with self._lock:
            if self._last >= 100:
                return
            self._last = 100
            if self._callback:
                self._callback(100)
