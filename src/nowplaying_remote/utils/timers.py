"""Cancellable timer scheduling on the controller's event loop.

Components that need delayed or periodic callbacks take a `Scheduler` so tests
can drive time by hand instead of sleeping.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Protocol

logger = logging.getLogger(__name__)

WallClock = Callable[[], float]


def wall_clock() -> float:
    """Seconds since the epoch."""
    return time.time()


class TimerHandle(Protocol):
    def cancel(self) -> object: ...


class Scheduler(Protocol):
    """Creates one-shot and repeating timers that can be cancelled."""

    def call_later(
        self, delay_s: float, callback: Callable[[], None]
    ) -> TimerHandle: ...

    def call_every(
        self, period_s: float, callback: Callable[[], None]
    ) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay_s), callback)

    def call_every(self, period_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.create_task(_ticker_loop(period_s, callback))


async def _ticker_loop(period_s: float, callback: Callable[[], None]) -> None:
    with suppress(asyncio.CancelledError):
        while True:
            await asyncio.sleep(period_s)
            try:
                callback()
            except Exception:  # pragma: no cover - callback safety net
                logger.exception("Periodic timer callback failed")
