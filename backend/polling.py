"""Fixed-interval, bounded polling.

Used for both payment confirmation and video job status. Every attempt,
including one that raised, counts toward ``max_attempts``; there is no
backoff.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollStatus(str, Enum):
    DONE = "done"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class PollOutcome(Generic[T]):
    """How a poll loop ended, with the last value or error seen."""

    status: PollStatus
    value: T | None = None
    attempts: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is PollStatus.DONE


async def poll(
    operation: Callable[[], Awaitable[T]],
    *,
    interval: float,
    max_attempts: int,
    is_done: Callable[[T], bool],
    cancel: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "poll",
) -> PollOutcome[T]:
    """Run *operation* until *is_done* accepts its result.

    Stops after *max_attempts* calls (``TIMEOUT``) or as soon as *cancel* is
    set (``CANCELLED``).
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    value: T | None = None
    error: str | None = None

    for attempt in range(1, max_attempts + 1):
        if cancel is not None and cancel.is_set():
            logger.info("%s cancelled after %d attempts", label, attempt - 1)
            return PollOutcome(PollStatus.CANCELLED, value, attempt - 1, error)

        try:
            value = await operation()
            error = None
        except Exception as e:
            logger.warning("%s attempt %d/%d failed: %s", label, attempt, max_attempts, e)
            error = str(e) or type(e).__name__
        else:
            if is_done(value):
                return PollOutcome(PollStatus.DONE, value, attempt)
            logger.debug("%s attempt %d/%d: not done yet", label, attempt, max_attempts)

        if attempt < max_attempts:
            await sleep(interval)

    logger.warning("%s timed out after %d attempts", label, max_attempts)
    return PollOutcome(PollStatus.TIMEOUT, value, max_attempts, error)
