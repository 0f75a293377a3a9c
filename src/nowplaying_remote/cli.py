"""Command-line interface for nowplaying-remote."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.text import Text

from . import __version__
from .doctor import render_report, run_doctor
from .logging_utils import setup_logging
from .paths import log_dir
from .runtime_config import (
    BackendConfig,
    ControllerSettings,
    get_backend_config,
    resolve_log_level,
)
from .services.command_dispatcher import CommandDispatcher
from .services.media_controller import MediaController
from .services.track_state import TrackState
from .utils.time_format import format_position, format_seconds
from .version import build_help_epilog

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nowplaying-remote",
        description="Watch and control the app that owns system media focus.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=build_help_epilog(),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument("--helper-cmd", help="Backend launcher command line.")
    parser.add_argument("--library-path", help="Backend library path.")
    parser.add_argument(
        "--bundle-id", help="Only follow the app with this bundle identifier."
    )
    parser.add_argument(
        "--no-debounce",
        action="store_true",
        help="Stream every backend update without debouncing.",
    )
    subparsers = parser.add_subparsers(dest="command")
    watch = subparsers.add_parser("watch", help="Stream now-playing updates.")
    watch.add_argument(
        "--progress",
        action="store_true",
        help="Also print the extrapolated playback position every second.",
    )
    subparsers.add_parser("bundles", help="List apps registered for media focus.")
    subparsers.add_parser("routes", help="List pickable output routes.")
    subparsers.add_parser("doctor", help="Check backend readiness.")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console()
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        config = get_backend_config(
            helper_cmd=args.helper_cmd, library_path=args.library_path
        )
        command = args.command or "watch"
        logger.info("Starting nowplaying-remote %s", command)
        if command == "doctor":
            report = run_doctor(config)
            print(render_report(report))
            return report.exit_code
        if config is None:
            print(
                "Backend not configured. Run `nowplaying-remote doctor` for details.",
                file=sys.stderr,
            )
            return 2
        if command == "bundles":
            return _print_bundles(config, console)
        if command == "routes":
            return _print_routes(config, console)
        settings = ControllerSettings(
            debounce=not args.no_debounce, bundle_identifier=args.bundle_id
        )
        progress = bool(getattr(args, "progress", False))
        return asyncio.run(_watch(config, settings, console, progress=progress))
    except KeyboardInterrupt:
        return 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


def format_track(track: TrackState | None) -> Text:
    """Render one track update as a single styled line."""
    if track is None:
        return Text("No active media", style="dim")
    app = track.application_name or track.bundle_identifier or "<unknown app>"
    state = "playing" if track.is_playing else "paused"
    style = "green" if track.is_playing else "yellow"
    line = Text()
    line.append(f"[{app}] ", style="cyan")
    line.append(track.title or "<no title>", style="bold")
    if track.artist:
        line.append(f" - {track.artist}")
    line.append(f" ({state}", style=style)
    if track.elapsed_seconds is not None:
        line.append(
            f", {format_position(track.elapsed_seconds, track.duration_seconds)}",
            style=style,
        )
    line.append(")", style=style)
    return line


async def _watch(
    config: BackendConfig,
    settings: ControllerSettings,
    console: Console,
    *,
    progress: bool,
) -> int:
    controller = MediaController(config, settings=settings)
    terminated = asyncio.Event()
    last_second: list[int] = [-1]

    def on_time(seconds: float) -> None:
        whole = int(seconds)
        if not progress or whole == last_second[0]:
            return
        last_second[0] = whole
        console.print(Text(f"  {format_seconds(seconds)}", style="dim"))

    def on_decoding_error(error: Exception, raw: bytes) -> None:
        console.print(Text(f"Undecodable update: {error}", style="red"))

    controller.on_track_info(lambda track: console.print(format_track(track)))
    controller.on_decoding_error(on_decoding_error)
    controller.on_playback_time(on_time)
    controller.on_listener_terminated(terminated.set)

    await controller.start()
    if not controller.is_listening:
        print("Failed to start the backend listener.", file=sys.stderr)
        return 1
    try:
        await terminated.wait()
        print("Backend listener terminated.", file=sys.stderr)
        return 1
    finally:
        await controller.close()


def _print_bundles(config: BackendConfig, console: Console) -> int:
    bundles = CommandDispatcher(config).fetch_active_bundles()
    if not bundles:
        console.print("No active bundles")
        return 0
    for index, bundle in enumerate(bundles, start=1):
        console.print(
            f"{index}) {bundle.display_name} - {bundle.bundle_identifier}",
            markup=False,
        )
    return 0


def _print_routes(config: BackendConfig, console: Console) -> int:
    routes = CommandDispatcher(config).fetch_pickable_routes()
    if not routes:
        console.print("No pickable routes")
        return 0
    for index, route in enumerate(routes, start=1):
        console.print(f"{index}) {route}", markup=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
