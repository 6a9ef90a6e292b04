"""
Cosmetic progress animation for long provider calls.

Providers don't report real progress, so the steps animate a bar that
never passes SIMULATED_PROGRESS_CAP until the call actually finishes.
"""

import asyncio
import logging
from typing import Callable, Optional

from config import (
    ENHANCE_PROGRESS_STEP,
    SIMULATED_PROGRESS_CAP,
    GENERATE_PROGRESS_START,
    GENERATE_PROGRESS_DURATION_SECONDS,
)

logger = logging.getLogger(__name__)


def step_progress(tick: int, step: float = ENHANCE_PROGRESS_STEP, cap: float = SIMULATED_PROGRESS_CAP) -> float:
    """Linear: +step per tick, capped."""
    return min(tick * step, cap)


def ease_in_out_quad(t: float) -> float:
    t = max(0.0, min(1.0, t))
    if t < 0.5:
        return 2 * t * t
    return -1 + (4 - 2 * t) * t


def eased_progress(
    elapsed: float,
    duration: float = GENERATE_PROGRESS_DURATION_SECONDS,
    start: float = GENERATE_PROGRESS_START,
    end: float = SIMULATED_PROGRESS_CAP,
) -> float:
    """Ease-in-out from start to end over duration seconds, then hold at end."""
    if duration <= 0:
        return end
    return start + (end - start) * ease_in_out_quad(elapsed / duration)


class ProgressTicker:
    """
    Calls on_progress(value) every `interval` seconds until stopped.

    compute(tick, elapsed) gives the value; it is clamped to `cap`.
    stop() cancels the pending tick, so nothing is reported after it returns.
    """

    def __init__(
        self,
        interval: float,
        compute: Callable[[int, float], float],
        on_progress: Callable[[float], None],
        cap: float = SIMULATED_PROGRESS_CAP,
    ):
        self.interval = interval
        self.compute = compute
        self.on_progress = on_progress
        self.cap = cap
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        tick = 0
        while True:
            await asyncio.sleep(self.interval)
            tick += 1
            value = min(self.compute(tick, loop.time() - started), self.cap)
            self.on_progress(value)
