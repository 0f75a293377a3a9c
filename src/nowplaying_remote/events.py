"""Observer-facing events and the channel that delivers them.

Events are delivered synchronously on the controller's event loop, so
subscribers see one ordered, single-threaded sequence of updates.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .services.track_state import TrackState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControllerEvent:
    """Marker base type for controller-originated events."""

    pass


@dataclass(frozen=True)
class TrackInfoReceived(ControllerEvent):
    """Track stream update; `track` is None when no media is active."""

    track: TrackState | None


@dataclass(frozen=True)
class DecodingFailed(ControllerEvent):
    """A stream frame could not be decoded."""

    error: Exception
    raw: bytes


@dataclass(frozen=True)
class ListenerTerminated(ControllerEvent):
    """The streaming backend exited without being stopped."""

    returncode: int | None = None


@dataclass(frozen=True)
class PlaybackTimeUpdated(ControllerEvent):
    """Current elapsed playback time in seconds."""

    seconds: float


E = TypeVar("E", bound=ControllerEvent)
_Handler = Callable[[Any], None]


class EventChannel:
    """Routes each event to the handlers subscribed to its exact type."""

    def __init__(self) -> None:
        self._handlers: dict[type[ControllerEvent], list[_Handler]] = defaultdict(
            list
        )

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: ControllerEvent) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", type(event).__name__)
