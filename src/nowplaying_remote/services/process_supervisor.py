"""Supervision of the long-running streaming backend process.

The supervisor owns at most one backend process. Its stdout is read by a task
on the event loop, split into frames, classified, and routed to observers and
the playback clock. After `restart_threshold` decoded track events the backend
is recycled to bound its resource growth.

Termination policy: an exit that was not requested is reported only when at
least one track event was processed since the last (re)start. An exit with a
zero counter is indistinguishable from the tail of a maintenance restart and
stays silent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress

from ..events import (
    ControllerEvent,
    DecodingFailed,
    ListenerTerminated,
    TrackInfoReceived,
)
from ..runtime_config import BackendConfig, ControllerSettings
from ..utils.timers import Scheduler, TimerHandle
from .playback_clock import PlaybackClock
from .stream_protocol import FrameSplitter, decode_frame
from .track_state import DecodeFailure, NoActiveMedia, StreamEvent, TrackDecoded

logger = logging.getLogger(__name__)

_TERMINATE_GRACE_S = 2.0
_PREVIEW_BYTES = 120


class ProcessSupervisor:
    """Starts, stops and recycles the streaming backend."""

    def __init__(
        self,
        config: BackendConfig | None,
        *,
        settings: ControllerSettings,
        clock: PlaybackClock,
        scheduler: Scheduler,
        emit: Callable[[ControllerEvent], None],
    ) -> None:
        self._config = config
        self._settings = settings
        self._clock = clock
        self._scheduler = scheduler
        self._emit = emit
        self._lock = asyncio.Lock()
        self._splitter = FrameSplitter()
        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._event_count = 0
        self._restart_pending = False
        self._restart_handle: TimerHandle | None = None
        self._respawn_task: asyncio.Task[None] | None = None
        self._draining_tasks: set[asyncio.Task[None]] = set()

    @property
    def is_running(self) -> bool:
        """True while a process is live or a maintenance restart is pending."""
        return self._process is not None or self._restart_pending

    @property
    def event_count(self) -> int:
        return self._event_count

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def pending_bytes(self) -> bytes:
        return self._splitter.pending

    async def start(self) -> None:
        """Spawn the streaming backend unless one is already active."""
        async with self._lock:
            if self.is_running:
                return
            self._event_count = 0
            await self._spawn()

    async def stop(self) -> None:
        """Terminate the backend and cancel extrapolation. Idempotent."""
        async with self._lock:
            self._restart_pending = False
            if self._restart_handle is not None:
                self._restart_handle.cancel()
                self._restart_handle = None
            proc = self._process
            tasks = [self._reader_task, self._respawn_task]
            draining = list(self._draining_tasks)
            self._process = None
            self._reader_task = None
            self._respawn_task = None
            self._draining_tasks.clear()
            self._splitter.clear()
            self._clock.halt()
        current = asyncio.current_task()
        draining = [task for task in draining if task is not current]
        if draining:
            # Readers of recycled processes finish once those processes are reaped.
            _done, stuck = await asyncio.wait(draining, timeout=_TERMINATE_GRACE_S)
            tasks.extend(stuck)
        pending = [task for task in tasks if task is not None and task is not current]
        for task in pending:
            task.cancel()
        for task in pending:
            with suppress(asyncio.CancelledError):
                await task
        if proc is not None:
            await _terminate(proc)
            logger.info("Stopped listening process (pid=%s)", proc.pid)

    async def _spawn(self) -> None:
        if self._config is None:
            logger.warning("Cannot start listening: backend is not configured")
            return
        argv = self._config.stream_argv(
            self._settings.stream_mode, self._settings.bundle_identifier
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (OSError, ValueError) as exc:
            logger.warning("Failed to start listening process: %s", exc)
            return
        self._process = proc
        self._reader_task = asyncio.create_task(self._pump(proc))
        logger.info("Started listening process (pid=%s): %s", proc.pid, argv)

    async def _pump(self, proc: asyncio.subprocess.Process) -> None:
        stdout = proc.stdout
        if stdout is None:  # pragma: no cover - always piped
            return
        try:
            while True:
                chunk = await stdout.read(self._settings.read_chunk_bytes)
                if not chunk:
                    break
                self._handle_bytes(proc, chunk)
                if proc is not self._process:
                    break
        except Exception as exc:  # pragma: no cover - reader safety net
            logger.exception("Stream reader failed: %s", exc)
        returncode = await proc.wait()
        if proc is self._process:
            self._handle_exit(returncode)

    def _handle_bytes(self, proc: asyncio.subprocess.Process, chunk: bytes) -> None:
        for frame in self._splitter.feed(chunk):
            if proc is not self._process:
                return
            self._dispatch(decode_frame(frame))

    def _dispatch(self, event: StreamEvent) -> None:
        if isinstance(event, NoActiveMedia):
            self._emit(TrackInfoReceived(None))
            return
        if isinstance(event, DecodeFailure):
            logger.debug(
                "Failed to decode stream frame: %s",
                event.error,
                extra={"frame_preview": event.raw[:_PREVIEW_BYTES]},
            )
            self._emit(DecodingFailed(error=event.error, raw=event.raw))
            return
        if isinstance(event, TrackDecoded):
            self._event_count += 1
            if self._event_count >= self._settings.restart_threshold:
                self._begin_maintenance_restart()
                return
            self._emit(TrackInfoReceived(event.state))
            self._clock.apply(event.state)

    def _begin_maintenance_restart(self) -> None:
        proc = self._process
        reader = self._reader_task
        self._process = None
        self._reader_task = None
        if reader is not None:
            # The old reader keeps running until the old process is reaped.
            self._draining_tasks.add(reader)
            reader.add_done_callback(self._draining_tasks.discard)
        if proc is not None:
            with suppress(ProcessLookupError):
                proc.terminate()
        self._splitter.clear()
        self._event_count = 0
        self._restart_pending = True
        logger.info(
            "Recycling listening process after %s events",
            self._settings.restart_threshold,
        )
        self._restart_handle = self._scheduler.call_later(
            self._settings.restart_settle_s, self._schedule_respawn
        )

    def _schedule_respawn(self) -> None:
        self._restart_handle = None
        self._respawn_task = asyncio.get_running_loop().create_task(self._respawn())

    async def _respawn(self) -> None:
        async with self._lock:
            if not self._restart_pending:
                return
            self._restart_pending = False
            if self._process is None:
                await self._spawn()

    def _handle_exit(self, returncode: int) -> None:
        self._process = None
        self._reader_task = None
        self._splitter.clear()
        self._clock.halt()
        if self._event_count != 0:
            logger.warning(
                "Listening process terminated unexpectedly (returncode=%s)",
                returncode,
            )
            self._emit(ListenerTerminated(returncode=returncode))
        else:
            logger.info(
                "Listening process exited before any events (returncode=%s)",
                returncode,
            )


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with suppress(ProcessLookupError):
            proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_S)
    except asyncio.TimeoutError:
        logger.warning("Listening process (pid=%s) ignored terminate", proc.pid)
        with suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
