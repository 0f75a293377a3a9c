"""Line-oriented backend stream protocol: framing and payload decoding.

Each newline-terminated line is either the literal `NIL` (nothing owns media
focus) or one JSON object describing the now-playing track. The object may
also arrive wrapped in an envelope under a `payload` key.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from .track_state import (
    DecodeFailure,
    NoActiveMedia,
    RepeatMode,
    ShuffleMode,
    StreamEvent,
    TrackDecoded,
    TrackState,
)

NIL_SENTINEL = b"NIL"
_NEWLINE = b"\n"


class TrackStateDecodeError(ValueError):
    """Frame bytes do not describe a track state."""


class FrameSplitter:
    """Splits an append-only byte stream into newline-delimited frames.

    Bytes after the last newline stay buffered until a later `feed` completes
    them. The buffer is not bounded here; the backend emits short lines.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Buffered bytes that do not yet form a complete frame."""
        return bytes(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        self._buffer.extend(data)
        frames: list[bytes] = []
        while True:
            index = self._buffer.find(_NEWLINE)
            if index < 0:
                break
            frames.append(bytes(self._buffer[:index]))
            del self._buffer[: index + 1]
        return frames

    def clear(self) -> None:
        self._buffer.clear()


def decode_frame(frame: bytes) -> StreamEvent:
    """Classify one frame. Never raises and never drops a frame."""
    if frame == NIL_SENTINEL:
        return NoActiveMedia()
    try:
        return TrackDecoded(parse_track_state(frame))
    except TrackStateDecodeError as exc:
        return DecodeFailure(error=exc, raw=frame)


def parse_track_state(frame: bytes) -> TrackState:
    try:
        payload = json.loads(frame.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise TrackStateDecodeError(f"frame is not valid UTF-8: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise TrackStateDecodeError(f"frame is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise TrackStateDecodeError(
            f"expected a JSON object, got {type(payload).__name__}"
        )
    envelope = payload.get("payload")
    if isinstance(envelope, dict):
        payload = envelope
    return TrackState(
        application_name=_field(payload, "applicationName", _as_str),
        bundle_identifier=_field(payload, "bundleIdentifier", _as_str),
        title=_field(payload, "title", _as_str),
        artist=_field(payload, "artist", _as_str),
        album=_field(payload, "album", _as_str),
        is_playing=_field(payload, "isPlaying", _as_bool),
        duration_micros=_field(payload, "durationMicros", _as_number),
        elapsed_time_micros=_field(payload, "elapsedTimeMicros", _as_number),
        timestamp_epoch_micros=_field(payload, "timestampEpochMicros", _as_number),
        unique_identifier=_field(payload, "uniqueIdentifier", _as_str),
        shuffle_mode=_field(payload, "shuffleMode", _enum(ShuffleMode)),
        repeat_mode=_field(payload, "repeatMode", _enum(RepeatMode)),
        playback_rate=_field(payload, "playbackRate", _as_number),
        process_id=_field(payload, "PID", _as_int),
        artwork_data_base64=_field(payload, "artworkDataBase64", _as_str),
        artwork_mime_type=_field(payload, "artworkMimeType", _as_str),
    )


def _field(payload: dict[str, Any], key: str, convert: Callable[[Any], Any]) -> Any:
    # JSON null is treated the same as an absent key.
    value = payload.get(key)
    if value is None:
        return None
    try:
        return convert(value)
    except (TypeError, ValueError) as exc:
        raise TrackStateDecodeError(f"field {key!r}: {exc}") from exc


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected boolean, got {type(value).__name__}")
    return value


def _as_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected number, got {type(value).__name__}")
    return value


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected integer, got {type(value).__name__}")
    return value


def _enum(enum_type: type[ShuffleMode] | type[RepeatMode]) -> Callable[[Any], Any]:
    def convert(value: Any) -> ShuffleMode | RepeatMode:
        return enum_type(_as_int(value))

    return convert
