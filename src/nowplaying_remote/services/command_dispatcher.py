"""One-shot backend invocations for playback controls and queries.

Each command is an independent backend process. Controls are fire-and-forget
on a thread of their own, so a hung invocation never holds up later ones.
Queries are awaited on the IO worker pool and degrade to an empty result on
any failure instead of raising.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass

from ..runtime_config import BackendConfig
from ..utils.async_utils import run_blocking, submit_detached
from .bundle_info import BundleInfoParseError, parse_bundle_info
from .stream_protocol import NIL_SENTINEL, TrackStateDecodeError, parse_track_state
from .track_state import BundleInfo, RepeatMode, ShuffleMode, TrackState

logger = logging.getLogger(__name__)

CMD_PLAY = "play"
CMD_PAUSE = "pause"
CMD_TOGGLE_PLAY_PAUSE = "toggle_play_pause"
CMD_NEXT_TRACK = "next_track"
CMD_PREVIOUS_TRACK = "previous_track"
CMD_STOP = "stop"
CMD_SET_OVERRIDE_ENABLED = "set_override_enabled"
CMD_SET_OVERRIDDEN_APP = "set_overridden_app"
CMD_RETROACTIVE_PAUSE = "retroactive_pause"
CMD_SWITCH_APP = "switch_app"
CMD_SET_TIME = "set_time"
CMD_SET_SHUFFLE_MODE = "set_shuffle_mode"
CMD_SET_REPEAT_MODE = "set_repeat_mode"
CMD_GET = "get"
CMD_GET_ACTIVE_BUNDLE_IDS = "get_active_bids"
CMD_GET_PICKABLE_ROUTES = "get_pickable_routes"


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one backend invocation.

    `output` is stripped UTF-8 stdout, or None when nothing usable was read.
    `returncode` is -1 when the backend could not be launched.
    """

    output: str | None
    error: str | None
    returncode: int


class CommandDispatcher:
    """Builds and runs one-shot backend command lines."""

    def __init__(
        self,
        config: BackendConfig | None,
        *,
        bundle_identifier: str | None = None,
    ) -> None:
        self._config = config
        self._bundle_identifier = bundle_identifier

    @property
    def config(self) -> BackendConfig | None:
        return self._config

    def run_command(
        self, command: str, *args: str, scoped: bool = False
    ) -> CommandResult:
        """Invoke the backend once and block until it exits."""
        if self._config is None:
            return CommandResult(
                output=None, error="backend not configured", returncode=-1
            )
        argv = self._config.command_argv(
            command,
            *args,
            bundle_identifier=self._bundle_identifier if scoped else None,
        )
        try:
            proc = subprocess.run(argv, capture_output=True, check=False)
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            logger.debug("Backend command %s failed to launch: %s", command, exc)
            return CommandResult(output=None, error=str(exc), returncode=-1)

        try:
            output: str | None = proc.stdout.decode("utf-8").strip()
        except UnicodeDecodeError:
            output = None
        error = proc.stderr.decode("utf-8", errors="replace").strip() or None
        if proc.returncode != 0:
            logger.debug(
                "Backend command %s exited with %s: %s",
                command,
                proc.returncode,
                error,
            )
        return CommandResult(output=output, error=error, returncode=proc.returncode)

    def send(self, command: str, *args: str) -> None:
        """Dispatch a control command without waiting for its outcome."""
        logger.debug("Dispatching backend command %s %s", command, list(args))
        submit_detached(self.run_command, command, *args)

    def play(self) -> None:
        self.send(CMD_PLAY)

    def pause(self) -> None:
        self.send(CMD_PAUSE)

    def toggle_play_pause(self) -> None:
        self.send(CMD_TOGGLE_PLAY_PAUSE)

    def next_track(self) -> None:
        self.send(CMD_NEXT_TRACK)

    def previous_track(self) -> None:
        self.send(CMD_PREVIOUS_TRACK)

    def stop(self) -> None:
        self.send(CMD_STOP)

    def set_override_enabled(self, enabled: bool) -> None:
        self.send(CMD_SET_OVERRIDE_ENABLED, "1" if enabled else "0")

    def set_overridden_app(self, bundle_identifier: str) -> None:
        self.send(CMD_SET_OVERRIDDEN_APP, bundle_identifier)

    def retroactive_pause(self, bundle_identifier: str) -> None:
        self.send(CMD_RETROACTIVE_PAUSE, bundle_identifier)

    def switch_app(self, bundle_identifier: str) -> None:
        self.send(CMD_SWITCH_APP, bundle_identifier)

    def set_time(self, seconds: float) -> None:
        self.send(CMD_SET_TIME, str(float(seconds)))

    def set_shuffle_mode(self, mode: ShuffleMode) -> None:
        self.send(CMD_SET_SHUFFLE_MODE, str(int(mode)))

    def set_repeat_mode(self, mode: RepeatMode) -> None:
        self.send(CMD_SET_REPEAT_MODE, str(int(mode)))

    async def get_active_bundles(self) -> list[BundleInfo]:
        return await run_blocking(self.fetch_active_bundles)

    async def get_pickable_routes(self) -> list[str]:
        return await run_blocking(self.fetch_pickable_routes)

    async def get_track_info(self) -> TrackState | None:
        return await run_blocking(self.fetch_track_info)

    def fetch_active_bundles(self) -> list[BundleInfo]:
        """Return active applications; one malformed entry empties the result."""
        entries = self._query_string_list(CMD_GET_ACTIVE_BUNDLE_IDS)
        if entries is None:
            return []
        try:
            return [parse_bundle_info(entry) for entry in entries]
        except BundleInfoParseError as exc:
            logger.debug("Discarding active bundle list: %s", exc)
            return []

    def fetch_pickable_routes(self) -> list[str]:
        entries = self._query_string_list(CMD_GET_PICKABLE_ROUTES)
        return entries if entries is not None else []

    def fetch_track_info(self) -> TrackState | None:
        """One-shot snapshot of the current track, independent of the stream."""
        result = self.run_command(CMD_GET, scoped=True)
        if not result.output:
            return None
        line = result.output.splitlines()[0].encode("utf-8")
        if line == NIL_SENTINEL:
            return None
        try:
            return parse_track_state(line)
        except TrackStateDecodeError as exc:
            logger.debug("Discarding track snapshot: %s", exc)
            return None

    def _query_string_list(self, command: str) -> list[str] | None:
        result = self.run_command(command)
        if not result.output:
            logger.debug("Backend query %s returned no output", command)
            return None
        try:
            payload = json.loads(result.output)
        except json.JSONDecodeError as exc:
            logger.debug("Backend query %s returned invalid JSON: %s", command, exc)
            return None
        if not isinstance(payload, list) or not all(
            isinstance(item, str) for item in payload
        ):
            logger.debug("Backend query %s did not return a string list", command)
            return None
        return payload
