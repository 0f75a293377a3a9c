"""Runtime configuration normalization helpers.

These helpers keep CLI flag and environment interpretation deterministic
across entrypoints.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass

HELPER_CMD_ENV = "NOWPLAYING_REMOTE_HELPER_CMD"
LIBRARY_PATH_ENV = "NOWPLAYING_REMOTE_LIBRARY_PATH"

DEFAULT_RESTART_THRESHOLD = 100
DEFAULT_TICK_INTERVAL_S = 0.25
DEFAULT_SEEK_DEBOUNCE_S = 0.05
DEFAULT_RESTART_SETTLE_S = 0.2
DEFAULT_READ_CHUNK_BYTES = 65_536


@dataclass(frozen=True)
class BackendConfig:
    """Resolved backend invocation settings.

    `helper_argv` is the launcher prefix (for example an interpreter plus its
    script), `library_path` is passed as the first positional argument after
    the optional `--id` scope.
    """

    helper_argv: tuple[str, ...]
    library_path: str

    def stream_argv(
        self, mode: str, bundle_identifier: str | None = None
    ) -> list[str]:
        """Build argv for a long-running streaming invocation."""
        return [
            *self.helper_argv,
            *_scope_args(bundle_identifier),
            self.library_path,
            mode,
        ]

    def command_argv(
        self,
        command: str,
        *args: str,
        bundle_identifier: str | None = None,
    ) -> list[str]:
        """Build argv for a one-shot command invocation."""
        return [
            *self.helper_argv,
            *_scope_args(bundle_identifier),
            self.library_path,
            command,
            *args,
        ]


@dataclass(frozen=True)
class ControllerSettings:
    """Tunables for stream supervision and playback-time extrapolation."""

    debounce: bool = True
    bundle_identifier: str | None = None
    restart_threshold: int = DEFAULT_RESTART_THRESHOLD
    tick_interval_s: float = DEFAULT_TICK_INTERVAL_S
    seek_debounce_s: float = DEFAULT_SEEK_DEBOUNCE_S
    restart_settle_s: float = DEFAULT_RESTART_SETTLE_S
    read_chunk_bytes: int = DEFAULT_READ_CHUNK_BYTES

    def __post_init__(self) -> None:
        _set = object.__setattr__
        _set(self, "restart_threshold", max(1, int(self.restart_threshold)))
        _set(self, "tick_interval_s", max(0.01, float(self.tick_interval_s)))
        _set(self, "seek_debounce_s", max(0.0, float(self.seek_debounce_s)))
        _set(self, "restart_settle_s", max(0.0, float(self.restart_settle_s)))
        _set(self, "read_chunk_bytes", max(1, int(self.read_chunk_bytes)))

    @property
    def stream_mode(self) -> str:
        return "loop" if self.debounce else "loop_no_debounce"


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def get_backend_config(
    env: Mapping[str, str] | None = None,
    *,
    helper_cmd: str | None = None,
    library_path: str | None = None,
) -> BackendConfig | None:
    """Return backend config from explicit overrides or the environment.

    Explicit values win over environment variables. Returns None when either
    the helper command or the library path is missing or unparseable.
    """
    values = os.environ if env is None else env
    raw_cmd = helper_cmd if helper_cmd is not None else values.get(HELPER_CMD_ENV, "")
    raw_library = (
        library_path if library_path is not None else values.get(LIBRARY_PATH_ENV, "")
    )
    raw_cmd = raw_cmd.strip()
    raw_library = raw_library.strip()
    if not raw_cmd or not raw_library:
        return None
    try:
        argv = tuple(shlex.split(raw_cmd, posix=(os.name != "nt")))
    except ValueError:
        return None
    if not argv:
        return None
    return BackendConfig(helper_argv=argv, library_path=raw_library)


def _scope_args(bundle_identifier: str | None) -> list[str]:
    if not bundle_identifier:
        return []
    return ["--id", bundle_identifier]
