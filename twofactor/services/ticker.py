"""Countdown ticker for code displays.

Read-only with respect to core state: each tick only reports how long the
current code stays valid. Codes are always recomputed from ``now``.
"""
import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..core.clock import SystemClock, remaining_seconds, to_unix_seconds
from ..core.logging import get_logger

logger = get_logger(__name__)

TICK_INTERVAL_SECONDS = 1.0


@dataclass(frozen=True)
class TickSnapshot:
    timestamp: datetime
    period: int
    remaining: int
    time_step: int

    @property
    def rolled_over(self) -> bool:
        """True on the first second of a new time step."""
        return self.remaining == self.period


def snapshot(now: datetime, period: int = 30) -> TickSnapshot:
    return TickSnapshot(
        timestamp=now,
        period=period,
        remaining=remaining_seconds(now, period),
        time_step=to_unix_seconds(now) // period,
    )


class CountdownTicker:
    """Calls ``on_tick`` once per interval from a single asyncio task."""

    def __init__(
        self,
        on_tick: Callable[[TickSnapshot], object],
        period: int = 30,
        clock=None,
        interval: float = TICK_INTERVAL_SECONDS,
    ):
        if period <= 0:
            raise ValueError("period must be positive")
        self.on_tick = on_tick
        self.period = period
        self.clock = clock or SystemClock()
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.is_running:
            return self._task
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            tick = snapshot(self.clock.now(), self.period)
            try:
                result = self.on_tick(tick)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Tick callback failed: {str(e)}")
            await asyncio.sleep(self.interval)
