"""
Operator commands.

Button presses and keyboard shortcuts are translated into these commands
outside the engine; ``SyncEngine.dispatch`` consumes them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from anglesync.models.state import EndPolicy


@dataclass(frozen=True)
class Mark:
    """Mark stream ``index`` at its current playhead."""

    index: int


@dataclass(frozen=True)
class SetReference:
    index: int


@dataclass(frozen=True)
class Nudge:
    """Move stream ``index`` by ``delta`` seconds (config step when None)."""

    index: int
    delta: Optional[float] = None


@dataclass(frozen=True)
class StartAlignment:
    pass


@dataclass(frozen=True)
class SetEndPolicy:
    policy: EndPolicy


@dataclass(frozen=True)
class Save:
    pass


@dataclass(frozen=True)
class Clear:
    """Remove both saved sync slots."""
    pass


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class PlayAll:
    pass


@dataclass(frozen=True)
class PauseAll:
    pass


@dataclass(frozen=True)
class ValidateTimestamps:
    pass


Command = (
    Mark
    | SetReference
    | Nudge
    | StartAlignment
    | SetEndPolicy
    | Save
    | Clear
    | Reset
    | PlayAll
    | PauseAll
    | ValidateTimestamps
)
