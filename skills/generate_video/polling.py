"""
Bounded polling for long-running operations.

poll_until_done never raises for a timeout; it returns a tagged PollResult
so callers decide what a timeout means. Refresh failures are logged and the
last known operation is kept, matching how flaky status endpoints behave.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PollOutcome(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class PollResult:
    outcome: PollOutcome
    value: Any
    attempts: int
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.outcome is PollOutcome.COMPLETED


async def poll_until_done(
    operation: Any,
    refresh: Callable[[Any], Awaitable[Any]],
    is_done: Callable[[Any], bool],
    interval: float,
    max_attempts: int,
    get_error: Callable[[Any], Optional[str]] = None,
    backoff: float = 1.0,
    max_interval: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_attempt: Callable[[int, float], None] = None,
) -> PollResult:
    """
    Refresh `operation` until `is_done`, at most `max_attempts` times.

    Args:
        operation: Initial operation handle
        refresh: Coroutine returning the latest operation
        is_done: Completion test
        interval: Seconds to wait before each refresh
        max_attempts: Refresh budget
        get_error: Returns an error message for a finished-but-failed operation
        backoff: Interval multiplier per attempt (1.0 = fixed interval)
        max_interval: Upper bound for the interval when backing off
        sleep: Injected for tests
        on_attempt: Called with (attempt, elapsed_seconds) before each wait

    Returns:
        PollResult tagged completed / timed_out / failed
    """
    attempts = 0
    elapsed = 0.0
    delay = interval

    while not is_done(operation) and attempts < max_attempts:
        if on_attempt:
            on_attempt(attempts, elapsed)
        await sleep(delay)
        elapsed += delay

        try:
            operation = await refresh(operation)
        except Exception as e:
            logger.warning(f"[Polling] Status refresh {attempts + 1} failed, keeping last state: {e}")

        attempts += 1
        delay = delay * backoff
        if max_interval is not None:
            delay = min(delay, max_interval)

    if not is_done(operation):
        return PollResult(PollOutcome.TIMED_OUT, operation, attempts)

    error = get_error(operation) if get_error else None
    if error:
        return PollResult(PollOutcome.FAILED, operation, attempts, error=error)

    return PollResult(PollOutcome.COMPLETED, operation, attempts)
