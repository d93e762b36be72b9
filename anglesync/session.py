"""Session manifest used by the command line.

The manifest lists the stream sources in slot order with their known
duration and last playhead, so successive CLI invocations can rebuild the
player group. Alignment state itself lives in the SyncStateStore.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from anglesync.playback.simulated import SimulatedPlayer

logger = structlog.get_logger(__name__)


class SourceEntry(BaseModel):
    """One stream source in the session."""

    path: str
    duration: float = Field(default=0.0, ge=0.0)
    position: float = Field(default=0.0, ge=0.0)


class Session(BaseModel):
    """Ordered stream sources of a sync session."""

    sources: list[SourceEntry] = Field(default_factory=list)

    @classmethod
    def load(cls, path: Path) -> "Session":
        """Load a manifest; a missing file is an empty session."""
        if not path.exists():
            return cls()
        try:
            return cls.model_validate_json(path.read_text())
        except ValidationError as e:
            raise ValueError(f"Invalid session file {path}: {e}") from e

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2))

    def build_players(self) -> list[SimulatedPlayer]:
        return [
            SimulatedPlayer(
                name=Path(source.path).name,
                duration=source.duration or None,
                position=source.position,
            )
            for source in self.sources
        ]

    def capture_positions(self, players: list[SimulatedPlayer]) -> None:
        """Copy the players' playheads back into the manifest."""
        for source, player in zip(self.sources, players):
            source.position = player.current_time


def read_capture_metadata(path: Path) -> Optional[float]:
    """
    Duration in seconds from a capture sidecar (``*.metadata.json``).

    The capture screen writes ``durationMs``; when it is missing the
    duration is derived from ``startEpochMs``/``endEpochMs``.
    """
    try:
        meta = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Unreadable capture metadata", path=str(path), error=str(e))
        return None

    if not isinstance(meta, dict):
        return None

    duration_ms = meta.get("durationMs")
    if duration_ms is None:
        start = meta.get("startEpochMs")
        end = meta.get("endEpochMs")
        if isinstance(start, (int, float)) and isinstance(end, (int, float)):
            duration_ms = end - start

    if not isinstance(duration_ms, (int, float)) or duration_ms <= 0:
        return None

    return duration_ms / 1000.0


def sidecar_for(media_path: Path) -> Path:
    """``capture_x.webm`` -> ``capture_x.metadata.json``"""
    return media_path.with_name(f"{media_path.stem}.metadata.json")
