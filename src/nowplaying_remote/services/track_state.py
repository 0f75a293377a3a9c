"""Now-playing data model shared by the stream decoder and the controller.

Every `TrackState` field is optional: the backend omits whatever the focused
application does not report, and an absent field stays `None` rather than
being replaced by a default.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import IntEnum

MICROS_PER_SECOND = 1_000_000


class ShuffleMode(IntEnum):
    """Shuffle mode as encoded on the wire."""

    UNKNOWN = 0
    OFF = 1
    ALBUMS = 2
    TRACKS = 3


class RepeatMode(IntEnum):
    """Repeat mode as encoded on the wire."""

    UNKNOWN = 0
    OFF = 1
    ONE = 2
    ALL = 3


@dataclass(frozen=True)
class TrackState:
    """Snapshot of the focused media application's now-playing info."""

    application_name: str | None = None
    bundle_identifier: str | None = None
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    is_playing: bool | None = None
    duration_micros: float | None = None
    elapsed_time_micros: float | None = None
    timestamp_epoch_micros: float | None = None
    unique_identifier: str | None = None
    shuffle_mode: ShuffleMode | None = None
    repeat_mode: RepeatMode | None = None
    playback_rate: float | None = None
    process_id: int | None = None
    artwork_data_base64: str | None = None
    artwork_mime_type: str | None = None

    @property
    def elapsed_seconds(self) -> float | None:
        return _micros_to_seconds(self.elapsed_time_micros)

    @property
    def duration_seconds(self) -> float | None:
        return _micros_to_seconds(self.duration_micros)

    @property
    def timestamp_seconds(self) -> float | None:
        return _micros_to_seconds(self.timestamp_epoch_micros)

    def artwork_bytes(self) -> bytes | None:
        """Decode artwork payload; None when absent or not valid base64."""
        if not self.artwork_data_base64:
            return None
        try:
            return base64.b64decode(self.artwork_data_base64, validate=True)
        except (binascii.Error, ValueError):
            return None


@dataclass(frozen=True)
class BundleInfo:
    """Identity of an application registered with the media subsystem."""

    bundle_identifier: str
    display_name: str


@dataclass(frozen=True)
class StreamEvent:
    """Marker base type for one classified stream frame."""

    pass


@dataclass(frozen=True)
class NoActiveMedia(StreamEvent):
    """No application currently owns media focus."""

    pass


@dataclass(frozen=True)
class TrackDecoded(StreamEvent):
    """Frame decoded into a track state."""

    state: TrackState


@dataclass(frozen=True)
class DecodeFailure(StreamEvent):
    """Frame could not be decoded; the raw bytes are kept for diagnosis."""

    error: Exception
    raw: bytes


def _micros_to_seconds(value: float | None) -> float | None:
    if value is None:
        return None
    return value / MICROS_PER_SECOND
