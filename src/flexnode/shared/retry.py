"""Retry and polling combinators.

Both wait with an injectable ``sleep`` (``asyncio.sleep`` by default) so a
cancelled task stops promptly in the middle of a backoff or poll interval.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from ..errors import PollTimeoutError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class BackoffSchedule:
    """Capped exponential backoff.

    Attempt 1 runs immediately; the delay before attempt k (k >= 2) is
    min(initial_delay * 2 ** (k - 2), max_delay).
    """

    max_attempts: int = 5
    initial_delay: float = 5.0
    max_delay: float = 30.0

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before the given 1-based attempt."""
        if attempt <= 1:
            return 0.0
        return min(self.initial_delay * (2 ** (attempt - 2)), self.max_delay)

    def delays(self) -> list[float]:
        """All waits a fully exhausted run would perform."""
        return [self.delay_before(k) for k in range(2, self.max_attempts + 1)]


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    is_retriable: Callable[[Exception], bool],
    schedule: BackoffSchedule | None = None,
    sleep: Sleep = asyncio.sleep,
    on_retry: Callable[[int, float, Exception], None] | None = None,
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, retrying retriable failures.

    Non-retriable exceptions propagate immediately. Once the attempt budget
    is spent the last retriable error is wrapped in RetryExhaustedError.

    Args:
        operation: Zero-argument coroutine function to call per attempt
        is_retriable: Classifier for exceptions raised by ``operation``
        schedule: Backoff schedule (default: 5 attempts, 5s doubling to 30s)
        sleep: Awaitable sleep used between attempts
        on_retry: Optional callback (next_attempt, delay, last_error)
        description: Used in the exhaustion error message

    Returns:
        Whatever ``operation`` returns on its first success.
    """
    schedule = schedule or BackoffSchedule()
    last_error: Exception | None = None

    for attempt in range(1, schedule.max_attempts + 1):
        if attempt > 1:
            delay = schedule.delay_before(attempt)
            if on_retry and last_error is not None:
                on_retry(attempt, delay, last_error)
            await sleep(delay)

        try:
            return await operation()
        except Exception as e:
            if not is_retriable(e):
                raise
            last_error = e
            logger.debug(
                "%s attempt %d/%d failed with retriable error: %s",
                description,
                attempt,
                schedule.max_attempts,
                e,
            )

    raise RetryExhaustedError(
        message=f"{description} failed after {schedule.max_attempts} attempts: {last_error}",
        attempts=schedule.max_attempts,
    ) from last_error


async def poll_until(
    predicate: Callable[[], Awaitable[bool]],
    *,
    interval: float,
    timeout: float,
    sleep: Sleep = asyncio.sleep,
    clock: Clock | None = None,
    on_pending: Callable[[int], None] | None = None,
    description: str = "condition",
) -> int:
    """Poll ``predicate`` every ``interval`` seconds until it returns True.

    The first check happens one interval after the call. An exception from
    the predicate counts as "not yet" and polling continues.

    Returns:
        Number of polls issued, including the successful one.

    Raises:
        PollTimeoutError: The deadline passed before the predicate held.
    """
    if clock is None:
        clock = asyncio.get_running_loop().time
    deadline = clock() + timeout
    polls = 0

    while True:
        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeoutError(
                message=f"timed out after {timeout:g}s waiting for {description}",
                timeout_seconds=timeout,
                polls=polls,
            )
        await sleep(min(interval, remaining))
        if clock() >= deadline:
            continue

        polls += 1
        try:
            if await predicate():
                return polls
        except Exception as e:
            logger.warning("Error while checking %s: %s", description, e)

        if on_pending:
            on_pending(polls)
