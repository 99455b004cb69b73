"""Bounded, immediate retry for chunk attempts.

Chunk attempts are retried right away with no backoff delay. Only the
exceptions listed as retryable trigger another attempt; anything else
(cancellation, codec failures) propagates immediately.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from securexfer.transfer.types import TransferConnectionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Exceptions that make a single attempt fail without failing the chunk
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    TransferConnectionError,
    OSError,
)


class RetryExhaustedError(Exception):
    """Every attempt of the budget failed.

    Attributes:
        attempts: Number of attempts made.
        last_exception: Failure of the final attempt.
    """

    def __init__(self, attempts: int, last_exception: Exception) -> None:
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"All {attempts} attempts failed: {last_exception}")


def retry_immediately(
    func: Callable[[int], T],
    attempt_budget: int,
    retryable_exceptions: tuple[type[Exception], ...] = RETRYABLE_EXCEPTIONS,
) -> T:
    """Call ``func`` until it succeeds or the attempt budget is used up.

    Args:
        func: Called with the 1-based attempt number.
        attempt_budget: Maximum number of attempts (>= 1).
        retryable_exceptions: Exception types that trigger another attempt.

    Returns:
        Result of the first successful attempt.

    Raises:
        RetryExhaustedError: If all attempts failed with retryable errors.
        Exception: Any non-retryable exception, unchanged.
    """
    if attempt_budget < 1:
        raise ValueError(f"attempt_budget must be at least 1, got {attempt_budget}")

    for attempt in range(1, attempt_budget + 1):
        try:
            return func(attempt)
        except retryable_exceptions as e:
            if attempt == attempt_budget:
                raise RetryExhaustedError(attempt_budget, e) from e
            logger.warning(f"Attempt {attempt}/{attempt_budget} failed: {e}. Retrying...")

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry loop exit")
