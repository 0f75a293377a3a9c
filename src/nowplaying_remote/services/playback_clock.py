"""Elapsed-time extrapolation between discrete track updates.

The backend only reports elapsed time when something changes, so while a track
is playing the clock re-derives the position from an anchor every tick:
`elapsed(now) = anchor.base_elapsed_s + (now - anchor.base_wall_clock_s)`.
Scrubbing updates observers immediately and collapses rapid seeks into one
backend command.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..runtime_config import DEFAULT_SEEK_DEBOUNCE_S, DEFAULT_TICK_INTERVAL_S
from ..utils.timers import Scheduler, TimerHandle, WallClock, wall_clock
from .track_state import TrackState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackAnchor:
    """Elapsed time sampled at a wall-clock instant, both in seconds."""

    base_elapsed_s: float
    base_wall_clock_s: float

    def elapsed_at(self, now_s: float) -> float:
        return self.base_elapsed_s + (now_s - self.base_wall_clock_s)


class PlaybackClock:
    """Owns the extrapolation anchor, the tick timer and the seek debounce."""

    def __init__(
        self,
        *,
        on_time: Callable[[float], None],
        seek: Callable[[float], None],
        scheduler: Scheduler,
        clock: WallClock = wall_clock,
        tick_interval_s: float = DEFAULT_TICK_INTERVAL_S,
        seek_debounce_s: float = DEFAULT_SEEK_DEBOUNCE_S,
    ) -> None:
        self._on_time = on_time
        self._seek = seek
        self._scheduler = scheduler
        self._clock = clock
        self._tick_interval_s = tick_interval_s
        self._seek_debounce_s = seek_debounce_s
        self._anchor: PlaybackAnchor | None = None
        self._tracked_identifier: str | None = None
        self._is_playing = False
        self._tick_timer: TimerHandle | None = None
        self._seek_timer: TimerHandle | None = None

    @property
    def anchor(self) -> PlaybackAnchor | None:
        return self._anchor

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def tracked_identifier(self) -> str | None:
        return self._tracked_identifier

    @property
    def is_extrapolating(self) -> bool:
        return self._tick_timer is not None

    @property
    def seek_pending(self) -> bool:
        return self._seek_timer is not None

    def apply(self, state: TrackState) -> None:
        """Reconcile a decoded track update into the extrapolation state."""
        if state.unique_identifier != self._tracked_identifier:
            self._tracked_identifier = state.unique_identifier
            self._on_time(0.0)

        self._cancel_tick()
        self._is_playing = bool(state.is_playing)

        elapsed_s = state.elapsed_seconds
        timestamp_s = state.timestamp_seconds
        if not self._is_playing or elapsed_s is None or timestamp_s is None:
            self._anchor = None
            if elapsed_s is not None:
                self._on_time(elapsed_s)
            return

        self._anchor = PlaybackAnchor(
            base_elapsed_s=elapsed_s, base_wall_clock_s=timestamp_s
        )
        self._start_tick()

    def set_time(self, seconds: float) -> None:
        """Optimistically scrub to `seconds`; the seek itself is debounced."""
        seconds = float(seconds)
        if self._seek_timer is not None:
            self._seek_timer.cancel()
            self._seek_timer = None

        self._on_time(seconds)
        if self._is_playing:
            self._anchor = PlaybackAnchor(
                base_elapsed_s=seconds, base_wall_clock_s=self._clock()
            )
            if self._tick_timer is None:
                self._start_tick()

        self._seek_timer = self._scheduler.call_later(
            self._seek_debounce_s, lambda: self._fire_seek(seconds)
        )

    def halt(self) -> None:
        """Stop extrapolating; used when the stream stops or the backend exits."""
        self._cancel_tick()
        self._anchor = None
        self._is_playing = False

    def close(self) -> None:
        """Cancel every timer, including a seek that has not been sent yet."""
        self.halt()
        if self._seek_timer is not None:
            self._seek_timer.cancel()
            self._seek_timer = None

    def _start_tick(self) -> None:
        self._tick_timer = self._scheduler.call_every(
            self._tick_interval_s, self._handle_tick
        )

    def _cancel_tick(self) -> None:
        if self._tick_timer is not None:
            self._tick_timer.cancel()
            self._tick_timer = None

    def _handle_tick(self) -> None:
        anchor = self._anchor
        if anchor is None:
            return
        self._on_time(anchor.elapsed_at(self._clock()))

    def _fire_seek(self, seconds: float) -> None:
        self._seek_timer = None
        logger.debug("Sending debounced seek to %.3fs", seconds)
        self._seek(seconds)
