from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

LOGGER = logging.getLogger("streamshelf.retry")

T = TypeVar("T")

SleepFunction = Callable[[float], Awaitable[None]]

# Per call-site retry budgets: (max_retries, base_delay_seconds).
LIST_REQUEST_RETRY = (3, 1.0)
PAGE_REQUEST_RETRY = (2, 1.0)
DETAIL_BATCH_RETRY = (2, 1.0)
DETAIL_SINGLE_RETRY = (1, 0.5)
VIDEO_LOOKUP_RETRY = (3, 1.0)
NEXT_PAGE_PROBE_RETRY = (0, 0.5)


def backoff_delay(attempt_index: int, base_delay: float) -> float:
    return max(0.0, base_delay) * (2 ** max(0, attempt_index))


class RetryExecutor:
    """
    Run one async operation with bounded exponential backoff.

    The operation is attempted at most `max_retries + 1` times. The error of
    the final attempt is re-raised as-is; callers decide how to degrade.
    """

    def __init__(self, *, sleep: SleepFunction = asyncio.sleep) -> None:
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int,
        base_delay: float,
        *,
        label: str = "operation",
    ) -> T:
        attempts = max(0, max_retries) + 1
        for attempt_index in range(attempts):
            try:
                return await operation()
            except Exception as exc:
                if attempt_index == attempts - 1:
                    LOGGER.warning(
                        "retry budget exhausted label=%s attempts=%s error_type=%s error=%s",
                        label,
                        attempts,
                        type(exc).__name__,
                        exc,
                    )
                    raise
                delay = backoff_delay(attempt_index, base_delay)
                LOGGER.info(
                    "retrying label=%s attempt=%s/%s delay_seconds=%.2f error_type=%s",
                    label,
                    attempt_index + 1,
                    attempts,
                    delay,
                    type(exc).__name__,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable: retry loop always returns or raises")
