"""Test configuration."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from nowplaying_remote.services import command_dispatcher  # noqa: E402


class FakeClock:
    """Settable wall clock in epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class ManualTimer:
    def __init__(
        self, due: float, callback: Callable[[], None], period: float | None
    ) -> None:
        self.due = due
        self.callback = callback
        self.period = period
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test advances time."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.timers: list[ManualTimer] = []

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.clock.now + delay_s, callback, None)
        self.timers.append(timer)
        return timer

    def call_every(self, period_s: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.clock.now + period_s, callback, period_s)
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [timer for timer in self.active if timer.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda item: item.due)
            self.clock.now = max(self.clock.now, timer.due)
            if timer.period is None:
                timer.cancelled = True
            else:
                timer.due += timer.period
            timer.callback()
        self.clock.now = target


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manual_scheduler(fake_clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(fake_clock)


@pytest.fixture(autouse=True)
def run_blocking_inline(monkeypatch: pytest.MonkeyPatch):
    """Run worker-pool adapters inline so command tests stay deterministic."""

    async def _inline(func, /, *args, **kwargs):
        return func(*args, **kwargs)

    def _submit_inline(func, /, *args, **kwargs):
        return func(*args, **kwargs)

    monkeypatch.setattr(command_dispatcher, "run_blocking", _inline)
    monkeypatch.setattr(command_dispatcher, "submit_detached", _submit_inline)
