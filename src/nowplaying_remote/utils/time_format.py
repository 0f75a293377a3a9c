"""Time formatting helpers for terminal output."""

from __future__ import annotations

import math


def format_seconds(seconds: float | None) -> str:
    """Format seconds as MM:SS, or H:MM:SS when needed."""
    total = _coerce_seconds(seconds)
    hours = total // 3600
    if hours > 0:
        minutes = (total // 60) % 60
        return f"{hours}:{minutes:02d}:{total % 60:02d}"
    return f"{total // 60:02d}:{total % 60:02d}"


def format_position(position_s: float | None, duration_s: float | None) -> str:
    """Format `position / duration`, with a placeholder for unknown duration."""
    position = format_seconds(position_s)
    if duration_s is None or _coerce_seconds(duration_s) <= 0:
        return f"{position} / --:--"
    return f"{position} / {format_seconds(duration_s)}"


def _coerce_seconds(value: float | None) -> int:
    if value is None:
        return 0
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(numeric):
        return 0
    return max(0, int(numeric))
