"""Deadline enforcement for export pipelines.

``guard`` races an awaitable against a time budget. The raced operation is not
cancelled when the budget runs out: only its result is discarded, and the
operation keeps running until it settles on its own (its own ``finally``
blocks, such as session release, still execute).
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import ExportTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _consume_abandoned_outcome(task: asyncio.Future) -> None:
    """Retrieve the outcome of an operation whose result was discarded."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Operation abandoned after timeout failed later: {error!r}")
    else:
        logger.debug("Operation abandoned after timeout completed later")


async def guard(awaitable: Awaitable[T], timeout_ms: float, error_message: str) -> T:
    """Race an awaitable against a time budget.

    Args:
        awaitable: Operation to run
        timeout_ms: Budget in milliseconds
        error_message: Message of the timeout error

    Returns:
        The operation's result if it settles in time

    Raises:
        ExportTimeoutError: If the budget elapses first
        Exception: Whatever the operation raises if it fails in time
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=max(timeout_ms, 0) / 1000)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_consume_abandoned_outcome)
    logger.debug(error_message)
    raise ExportTimeoutError(error_message, timeout_ms=timeout_ms)


class Deadline:
    """Fixed wall-clock budget shared by every step of one export."""

    def __init__(self, timeout_in_seconds: float, clock: Optional[Callable[[], float]] = None):
        """Start the deadline now.

        Args:
            timeout_in_seconds: Overall budget
            clock: Monotonic clock in seconds (``time.monotonic`` by default)
        """
        self.timeout_in_seconds = timeout_in_seconds
        self._clock = clock or time.monotonic
        self.started_at = self._clock()
        self.expires_at = self.started_at + timeout_in_seconds

    @property
    def budget_ms(self) -> float:
        return self.timeout_in_seconds * 1000

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def remaining_ms(self) -> float:
        """Milliseconds left before the deadline (never negative)."""
        return max(0.0, (self.expires_at - self._clock()) * 1000)

    def elapsed_ms(self) -> float:
        return (self._clock() - self.started_at) * 1000

    @property
    def timeout_message(self) -> str:
        return (
            f"Failed to perform the export under the given timeout of "
            f"{self.timeout_in_seconds:g} seconds."
        )

    def timeout_error(self) -> ExportTimeoutError:
        return ExportTimeoutError(self.timeout_message, timeout_ms=self.budget_ms)

    async def guard(self, awaitable: Awaitable[T], error_message: Optional[str] = None) -> T:
        """Race an awaitable against the remaining budget."""
        return await guard(
            awaitable,
            self.remaining_ms(),
            error_message or self.timeout_message,
        )

    def __repr__(self) -> str:
        return f"Deadline(budget={self.timeout_in_seconds}s, remaining={self.remaining_ms():.0f}ms)"
