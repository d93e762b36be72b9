"""In-memory player used for simulation and tests."""

from __future__ import annotations

from typing import Optional

import structlog

from anglesync.playback.base import PlaybackCollaborator, PlaybackState

logger = structlog.get_logger(__name__)


class SimulatedPlayer(PlaybackCollaborator):
    """
    A player whose clock only moves when ``advance`` is called.

    Reaching the end while playing switches to ENDED and emits ``ended``,
    like a media element firing its native ended event.
    """

    def __init__(self, name: str = "", duration: Optional[float] = None, position: float = 0.0):
        super().__init__()
        self.name = name
        self._duration = 0.0
        self._position = max(0.0, position)
        self._state = PlaybackState.PAUSED

        # Call counters, handy for inspecting what the engine issued
        self.play_calls = 0
        self.pause_calls = 0
        self.seek_calls = 0

        if duration is not None:
            self._duration = duration

    def load_metadata(self, duration: float) -> None:
        """Make the duration known and emit ``metadata_loaded``."""
        self._duration = duration
        self._position = min(self._position, duration)
        self.metadata_loaded.emit(duration)

    def play(self) -> None:
        self.play_calls += 1
        if self._duration > 0 and self._position >= self._duration:
            # Restart like a media element played after ending
            self._position = 0.0
        self._state = PlaybackState.PLAYING

    def pause(self) -> None:
        self.pause_calls += 1
        if self._state == PlaybackState.PLAYING:
            self._state = PlaybackState.PAUSED

    @property
    def current_time(self) -> float:
        return self._position

    @current_time.setter
    def current_time(self, seconds: float) -> None:
        self.seek_calls += 1
        upper = self._duration if self._duration > 0 else seconds
        self._position = max(0.0, min(upper, seconds))
        if self._state == PlaybackState.ENDED and self._position < self._duration:
            self._state = PlaybackState.PAUSED

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def state(self) -> PlaybackState:
        return self._state

    def advance(self, seconds: float) -> None:
        """Move the clock forward; emits ``ended`` when the end is reached."""
        if self._state != PlaybackState.PLAYING:
            return

        self._position += seconds
        if self._duration > 0 and self._position >= self._duration:
            self._position = self._duration
            self._state = PlaybackState.ENDED
            logger.debug("Stream ended", player=self.name)
            self.ended.emit()
