"""Playback collaborator interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)


class PlaybackState(str, Enum):
    """Playback state of a single stream."""

    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


class Subscription:
    """Handle returned by Signal.subscribe; releases the callback once."""

    def __init__(self, signal: "Signal", callback: Callable[..., Any]):
        self._signal = signal
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._signal._remove(self._callback)
            self.active = False


class Signal:
    """
    A named event a player emits.

    Callbacks run synchronously, in subscription order, on the emitting
    thread.
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: list[Callable[..., Any]] = []

    def subscribe(self, callback: Callable[..., Any]) -> Subscription:
        self._callbacks.append(callback)
        return Subscription(self, callback)

    def emit(self, *args: Any) -> None:
        # Copy so callbacks may unsubscribe while being notified
        for callback in list(self._callbacks):
            callback(*args)

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def _remove(self, callback: Callable[..., Any]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            logger.debug("Callback already removed", signal=self.name)


class PlaybackCollaborator(ABC):
    """
    A player for one stream.

    The engine drives players through this interface and listens to their
    ``ended`` and ``metadata_loaded`` signals. It never manages the
    underlying media resource.
    """

    def __init__(self) -> None:
        self.ended = Signal("ended")
        # Emitted with the duration in seconds
        self.metadata_loaded = Signal("metadata_loaded")

    @abstractmethod
    def play(self) -> None:
        """Start or resume playback."""
        pass

    @abstractmethod
    def pause(self) -> None:
        """Pause playback."""
        pass

    @property
    @abstractmethod
    def current_time(self) -> float:
        """Playhead position in seconds."""
        pass

    @current_time.setter
    @abstractmethod
    def current_time(self, seconds: float) -> None:
        pass

    @property
    @abstractmethod
    def duration(self) -> float:
        """Total length in seconds, 0 while unknown."""
        pass

    @property
    @abstractmethod
    def state(self) -> PlaybackState:
        pass
