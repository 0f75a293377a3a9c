"""Tests for the streaming backend supervisor against real child processes."""

from __future__ import annotations

import asyncio
import json
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

from nowplaying_remote.events import (
    ControllerEvent,
    DecodingFailed,
    ListenerTerminated,
    TrackInfoReceived,
)
from nowplaying_remote.runtime_config import BackendConfig, ControllerSettings
from nowplaying_remote.services.playback_clock import PlaybackClock
from nowplaying_remote.services.process_supervisor import ProcessSupervisor
from nowplaying_remote.utils.timers import LoopScheduler, Scheduler

TRACK_LINE = json.dumps(
    {
        "title": "Song",
        "uniqueIdentifier": "item-1",
        "isPlaying": False,
        "elapsedTimeMicros": 1_000_000,
    }
)


def _write_backend(tmp_path: Path, body: str) -> BackendConfig:
    script = tmp_path / "backend.py"
    header = "import json, os, sys, time\n"
    script.write_text(header + textwrap.dedent(body), encoding="utf-8")
    return BackendConfig(
        helper_argv=(sys.executable, str(script)),
        library_path=str(tmp_path / "marker"),
    )


def _build(
    config: BackendConfig | None,
    events: list[ControllerEvent],
    *,
    scheduler: Scheduler | None = None,
    **settings_kwargs,
) -> tuple[ProcessSupervisor, PlaybackClock, list[float]]:
    settings = ControllerSettings(**settings_kwargs)
    scheduler = scheduler or LoopScheduler()
    times: list[float] = []
    clock = PlaybackClock(
        on_time=times.append, seek=lambda _s: None, scheduler=scheduler
    )
    supervisor = ProcessSupervisor(
        config,
        settings=settings,
        clock=clock,
        scheduler=scheduler,
        emit=events.append,
    )
    return supervisor, clock, times


async def _wait_for(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def _tracks(events: list[ControllerEvent]) -> list[TrackInfoReceived]:
    return [event for event in events if isinstance(event, TrackInfoReceived)]


def _terminations(events: list[ControllerEvent]) -> list[ListenerTerminated]:
    return [event for event in events if isinstance(event, ListenerTerminated)]


def test_stream_events_are_classified_and_delivered(tmp_path) -> None:
    config = _write_backend(
        tmp_path,
        f"""
        print("NIL", flush=True)
        print({TRACK_LINE!r}, flush=True)
        print("garbage", flush=True)
        time.sleep(60)
        """,
    )
    events: list[ControllerEvent] = []

    async def run() -> list[float]:
        supervisor, _clock, times = _build(config, events)
        await supervisor.start()
        try:
            await _wait_for(lambda: len(events) >= 3)
            assert supervisor.event_count == 1
        finally:
            await supervisor.stop()
        assert not supervisor.is_running
        return times

    times = asyncio.run(run())

    assert events[0] == TrackInfoReceived(None)
    assert isinstance(events[1], TrackInfoReceived)
    assert events[1].track is not None
    assert events[1].track.title == "Song"
    assert isinstance(events[2], DecodingFailed)
    assert events[2].raw == b"garbage"
    assert _terminations(events) == []
    assert times == [0.0, 1.0]


def test_start_while_running_keeps_single_process(tmp_path) -> None:
    config = _write_backend(tmp_path, "time.sleep(60)\n")
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(config, events)
        await supervisor.start()
        try:
            first_pid = supervisor.pid
            assert first_pid is not None
            await supervisor.start()
            assert supervisor.pid == first_pid
        finally:
            await supervisor.stop()

    asyncio.run(run())
    assert events == []


def test_threshold_recycles_backend_without_reporting_termination(
    tmp_path,
) -> None:
    config = _write_backend(
        tmp_path,
        f"""
        marker = sys.argv[-2]
        if not os.path.exists(marker):
            open(marker, "w").close()
            for _ in range(3):
                print({TRACK_LINE!r}, flush=True)
        time.sleep(60)
        """,
    )
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(
            config, events, restart_threshold=3, restart_settle_s=0.0
        )
        await supervisor.start()
        first_pid = supervisor.pid
        try:
            await _wait_for(
                lambda: supervisor.pid is not None and supervisor.pid != first_pid
            )
            assert supervisor.event_count == 0
            assert supervisor.is_running
            await asyncio.sleep(0.2)
        finally:
            await supervisor.stop()

    asyncio.run(run())
    assert len(_tracks(events)) == 2
    assert _terminations(events) == []


def test_unexpected_exit_after_tracks_is_reported(tmp_path) -> None:
    config = _write_backend(
        tmp_path,
        f"""
        print({TRACK_LINE!r}, flush=True)
        sys.exit(3)
        """,
    )
    events: list[ControllerEvent] = []

    async def run() -> bool:
        supervisor, _clock, _times = _build(config, events)
        await supervisor.start()
        await _wait_for(lambda: bool(_terminations(events)))
        running = supervisor.is_running
        await supervisor.stop()
        return running

    still_running = asyncio.run(run())
    assert not still_running
    assert _terminations(events) == [ListenerTerminated(returncode=3)]
    assert len(_tracks(events)) == 1


def test_exit_before_any_track_is_silent(tmp_path) -> None:
    config = _write_backend(
        tmp_path,
        """
        print("NIL", flush=True)
        """,
    )
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(config, events)
        await supervisor.start()
        await _wait_for(lambda: not supervisor.is_running)

    asyncio.run(run())
    assert events == [TrackInfoReceived(None)]


def test_spawn_failure_leaves_supervisor_stopped(tmp_path) -> None:
    config = BackendConfig(
        helper_argv=(str(tmp_path / "missing-helper"),), library_path="lib"
    )
    events: list[ControllerEvent] = []

    async def run() -> bool:
        supervisor, _clock, _times = _build(config, events)
        await supervisor.start()
        return supervisor.is_running

    assert asyncio.run(run()) is False
    assert events == []


def test_unconfigured_supervisor_does_nothing() -> None:
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(None, events)
        await supervisor.start()
        assert not supervisor.is_running
        await supervisor.stop()

    asyncio.run(run())
    assert events == []


def test_stop_is_idempotent(tmp_path) -> None:
    config = _write_backend(tmp_path, "time.sleep(60)\n")
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(config, events)
        await supervisor.stop()
        await supervisor.start()
        await supervisor.stop()
        await supervisor.stop()
        assert supervisor.pid is None
        assert not supervisor.is_running

    asyncio.run(run())
    assert events == []


def test_stream_argv_carries_scope_and_mode(tmp_path) -> None:
    config = _write_backend(
        tmp_path,
        """
        print(json.dumps({"title": " ".join(sys.argv[1:])}), flush=True)
        time.sleep(60)
        """,
    )
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(
            config, events, debounce=False, bundle_identifier="com.example.Music"
        )
        await supervisor.start()
        try:
            await _wait_for(lambda: bool(events))
        finally:
            await supervisor.stop()

    asyncio.run(run())
    track = _tracks(events)[0].track
    assert track is not None
    assert track.title == (
        f"--id com.example.Music {tmp_path / 'marker'} loop_no_debounce"
    )


def test_nul_in_argv_is_a_spawn_failure() -> None:
    config = BackendConfig(helper_argv=(sys.executable,), library_path="lib\x00x")
    events: list[ControllerEvent] = []

    async def run() -> bool:
        supervisor, _clock, _times = _build(config, events)
        await supervisor.start()
        return supervisor.is_running

    assert asyncio.run(run()) is False
    assert events == []


RECYCLING_BACKEND = f"""
marker = sys.argv[-2]
if not os.path.exists(marker):
    open(marker, "w").close()
    for _ in range(3):
        print({TRACK_LINE!r}, flush=True)
time.sleep(60)
"""


def _other_tasks() -> set[asyncio.Task]:
    current = asyncio.current_task()
    return {task for task in asyncio.all_tasks() if task is not current}


def test_respawn_waits_for_settle_delay(tmp_path, manual_scheduler) -> None:
    config = _write_backend(tmp_path, RECYCLING_BACKEND)
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(
            config,
            events,
            scheduler=manual_scheduler,
            restart_threshold=3,
            restart_settle_s=0.5,
        )
        await supervisor.start()
        try:
            await _wait_for(lambda: supervisor.pid is None)
            assert supervisor.is_running
            assert supervisor.event_count == 0

            await asyncio.sleep(0.3)
            manual_scheduler.advance(0.25)
            await asyncio.sleep(0.1)
            assert supervisor.pid is None
            assert supervisor.is_running

            manual_scheduler.advance(0.5)
            await _wait_for(lambda: supervisor.pid is not None)
        finally:
            await supervisor.stop()
        assert _other_tasks() == set()

    asyncio.run(run())
    assert len(_tracks(events)) == 2
    assert _terminations(events) == []


def test_stop_during_settle_delay_cancels_respawn(tmp_path, manual_scheduler) -> None:
    config = _write_backend(tmp_path, RECYCLING_BACKEND)
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, _clock, _times = _build(
            config,
            events,
            scheduler=manual_scheduler,
            restart_threshold=3,
            restart_settle_s=0.5,
        )
        await supervisor.start()
        await _wait_for(lambda: supervisor.pid is None)
        await supervisor.stop()
        assert not supervisor.is_running
        assert manual_scheduler.active == []

        manual_scheduler.advance(1.0)
        await asyncio.sleep(0.1)
        assert supervisor.pid is None
        assert _other_tasks() == set()

    asyncio.run(run())
    assert _terminations(events) == []


def test_stop_halts_playback_extrapolation(tmp_path, manual_scheduler) -> None:
    config = _write_backend(
        tmp_path,
        """
        print(json.dumps({
            "uniqueIdentifier": "item-1",
            "isPlaying": True,
            "elapsedTimeMicros": 5_000_000,
            "timestampEpochMicros": time.time() * 1_000_000,
        }), flush=True)
        time.sleep(60)
        """,
    )
    events: list[ControllerEvent] = []

    async def run() -> None:
        supervisor, clock, _times = _build(
            config, events, scheduler=manual_scheduler
        )
        await supervisor.start()
        try:
            await _wait_for(lambda: clock.is_extrapolating)
            assert clock.anchor is not None
        finally:
            await supervisor.stop()
        assert not clock.is_extrapolating
        assert clock.anchor is None
        assert manual_scheduler.active == []

    asyncio.run(run())
    assert len(_tracks(events)) == 1
