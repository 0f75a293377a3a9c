"""Controller facade between observers and the media backend.

`MediaController` wires the streaming supervisor, the playback clock and the
one-shot command dispatcher together. All observer callbacks run on the event
loop that called `start()`; control methods return immediately and queries are
awaited.
"""

from __future__ import annotations

from collections.abc import Callable

from ..events import (
    DecodingFailed,
    EventChannel,
    ListenerTerminated,
    PlaybackTimeUpdated,
    TrackInfoReceived,
)
from ..runtime_config import BackendConfig, ControllerSettings
from ..utils.timers import LoopScheduler, Scheduler, WallClock, wall_clock
from .command_dispatcher import CommandDispatcher
from .playback_clock import PlaybackClock
from .process_supervisor import ProcessSupervisor
from .track_state import BundleInfo, RepeatMode, ShuffleMode, TrackState


class MediaController:
    """Now-playing stream plus playback controls for the focused media app."""

    def __init__(
        self,
        config: BackendConfig | None,
        *,
        settings: ControllerSettings | None = None,
        scheduler: Scheduler | None = None,
        clock: WallClock = wall_clock,
        dispatcher: CommandDispatcher | None = None,
        channel: EventChannel | None = None,
    ) -> None:
        self._settings = settings or ControllerSettings()
        self._channel = channel or EventChannel()
        self._scheduler = scheduler or LoopScheduler()
        self._dispatcher = dispatcher or CommandDispatcher(
            config, bundle_identifier=self._settings.bundle_identifier
        )
        self._clock = PlaybackClock(
            on_time=self._emit_playback_time,
            seek=self._dispatcher.set_time,
            scheduler=self._scheduler,
            clock=clock,
            tick_interval_s=self._settings.tick_interval_s,
            seek_debounce_s=self._settings.seek_debounce_s,
        )
        self._supervisor = ProcessSupervisor(
            config,
            settings=self._settings,
            clock=self._clock,
            scheduler=self._scheduler,
            emit=self._channel.emit,
        )

    @property
    def settings(self) -> ControllerSettings:
        return self._settings

    @property
    def events(self) -> EventChannel:
        return self._channel

    @property
    def playback_clock(self) -> PlaybackClock:
        return self._clock

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    @property
    def is_listening(self) -> bool:
        return self._supervisor.is_running

    def on_track_info(self, handler: Callable[[TrackState | None], None]) -> None:
        """Register for track updates; None means no media is active."""
        self._channel.subscribe(TrackInfoReceived, lambda event: handler(event.track))

    def on_decoding_error(self, handler: Callable[[Exception, bytes], None]) -> None:
        self._channel.subscribe(
            DecodingFailed, lambda event: handler(event.error, event.raw)
        )

    def on_listener_terminated(self, handler: Callable[[], None]) -> None:
        self._channel.subscribe(ListenerTerminated, lambda _event: handler())

    def on_playback_time(self, handler: Callable[[float], None]) -> None:
        self._channel.subscribe(
            PlaybackTimeUpdated, lambda event: handler(event.seconds)
        )

    async def start(self) -> None:
        await self._supervisor.start()

    async def stop(self) -> None:
        await self._supervisor.stop()

    async def close(self) -> None:
        """Stop listening and drop any seek that has not been sent yet."""
        await self._supervisor.stop()
        self._clock.close()

    def play(self) -> None:
        self._dispatcher.play()

    def pause(self) -> None:
        self._dispatcher.pause()

    def toggle_play_pause(self) -> None:
        self._dispatcher.toggle_play_pause()

    def next_track(self) -> None:
        self._dispatcher.next_track()

    def previous_track(self) -> None:
        self._dispatcher.previous_track()

    def stop_playback(self) -> None:
        """Send the backend `stop` transport command."""
        self._dispatcher.stop()

    def enable_app_override(self, enabled: bool) -> None:
        self._dispatcher.set_override_enabled(enabled)

    def set_overriding_app(self, bundle_identifier: str) -> None:
        self._dispatcher.set_overridden_app(bundle_identifier)

    def retroactive_pause(self, bundle_identifier: str) -> None:
        self._dispatcher.retroactive_pause(bundle_identifier)

    def switch_app(self, bundle_identifier: str) -> None:
        self._dispatcher.switch_app(bundle_identifier)

    def set_shuffle_mode(self, mode: ShuffleMode) -> None:
        self._dispatcher.set_shuffle_mode(mode)

    def set_repeat_mode(self, mode: RepeatMode) -> None:
        self._dispatcher.set_repeat_mode(mode)

    def set_time(self, seconds: float) -> None:
        """Scrub: observers see `seconds` now, the backend seek is debounced."""
        self._clock.set_time(seconds)

    async def get_active_bundles(self) -> list[BundleInfo]:
        return await self._dispatcher.get_active_bundles()

    async def get_pickable_routes(self) -> list[str]:
        return await self._dispatcher.get_pickable_routes()

    async def get_track_info(self) -> TrackState | None:
        return await self._dispatcher.get_track_info()

    def _emit_playback_time(self, seconds: float) -> None:
        self._channel.emit(PlaybackTimeUpdated(seconds))
