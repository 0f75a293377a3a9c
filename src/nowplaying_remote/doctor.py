"""Runtime diagnostics for backend readiness."""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .runtime_config import HELPER_CMD_ENV, LIBRARY_PATH_ENV, BackendConfig

DoctorStatus = Literal["ok", "missing", "error"]


@dataclass(frozen=True)
class DoctorCheck:
    """One environment/tooling readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    """Collection of doctor checks and derived process exit contract."""

    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return non-zero when any required check failed or is missing."""
        for check in self.checks:
            if check.required and check.status != "ok":
                return 2
        return 0


def run_doctor(config: BackendConfig | None) -> DoctorReport:
    """Run diagnostics for the resolved backend configuration."""
    checks = [probe_platform(), probe_config(config)]
    if config is not None:
        checks.append(probe_helper(config))
        checks.append(probe_library(config))
    return DoctorReport(checks=checks)


def render_report(report: DoctorReport) -> str:
    """Render terminal-friendly diagnostics report text."""
    lines = ["nowplaying-remote doctor", ""]
    for check in report.checks:
        state = _status_token(check.status)
        req = "required" if check.required else "optional"
        lines.append(f"{state} {check.name:<9} [{req}] {check.detail}")
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_platform() -> DoctorCheck:
    """Report whether the host OS exposes a system-wide now-playing service."""
    if sys.platform == "darwin":
        return DoctorCheck(
            name="platform", status="ok", required=False, detail=sys.platform
        )
    return DoctorCheck(
        name="platform",
        status="missing",
        required=False,
        detail=f"{sys.platform} (backend targets macOS)",
    )


def probe_config(config: BackendConfig | None) -> DoctorCheck:
    if config is None:
        return DoctorCheck(
            name="config",
            status="missing",
            required=True,
            detail="backend helper command or library path not set",
            hint=f"Set {HELPER_CMD_ENV} and {LIBRARY_PATH_ENV}, "
            "or pass --helper-cmd/--library-path.",
        )
    return DoctorCheck(
        name="config",
        status="ok",
        required=True,
        detail=" ".join(config.helper_argv),
    )


def probe_helper(config: BackendConfig) -> DoctorCheck:
    """Verify the helper launcher resolves to an executable."""
    launcher = config.helper_argv[0]
    resolved = shutil.which(launcher)
    if resolved is None:
        return DoctorCheck(
            name="helper",
            status="missing",
            required=True,
            detail=f"{launcher} not found or not executable",
            hint="Check the helper command and PATH.",
        )
    for extra in config.helper_argv[1:2]:
        if not extra.startswith("-") and not Path(extra).exists():
            return DoctorCheck(
                name="helper",
                status="error",
                required=True,
                detail=f"{resolved}; script {extra} not found",
                hint="Point the helper command at the bundled backend script.",
            )
    return DoctorCheck(name="helper", status="ok", required=True, detail=resolved)


def probe_library(config: BackendConfig) -> DoctorCheck:
    path = Path(config.library_path)
    if not path.exists():
        return DoctorCheck(
            name="library",
            status="missing",
            required=True,
            detail=f"{path} does not exist",
            hint="Point the library path at the built backend library.",
        )
    if not os.access(path, os.R_OK):
        return DoctorCheck(
            name="library",
            status="error",
            required=True,
            detail=f"{path} is not readable",
        )
    return DoctorCheck(name="library", status="ok", required=True, detail=str(path))


def _status_token(status: DoctorStatus) -> str:
    """Map doctor status to compact display token."""
    if status == "ok":
        return "[OK]"
    if status == "missing":
        return "[MISS]"
    return "[ERR]"
