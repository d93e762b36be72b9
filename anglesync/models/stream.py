"""Stream descriptors and registry snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class StreamDescriptor:
    """
    One camera slot in the stream group.

    The index is the stream's identity; there is no reorder operation.
    """

    index: int

    # Total playable length in seconds, 0 while unknown
    duration: float = 0.0

    # Operator-chosen instant in the stream's own timeline
    mark: Optional[float] = None

    @property
    def has_mark(self) -> bool:
        return self.mark is not None

    @property
    def duration_known(self) -> bool:
        return self.duration > 0


@dataclass(frozen=True)
class RegistrySnapshot:
    """
    Immutable view of the registry at one instant.

    The selector and planner functions only ever read snapshots so a
    recomputation can never observe a half-applied mutation.
    """

    durations: tuple[float, ...] = ()
    marks: tuple[Optional[float], ...] = ()
    reference_index: int = 0

    @property
    def stream_count(self) -> int:
        return len(self.marks)

    @property
    def marked_indices(self) -> list[int]:
        return [i for i, m in enumerate(self.marks) if m is not None]

    @property
    def marked_count(self) -> int:
        return len(self.marked_indices)

    def duration_known(self, index: int) -> bool:
        return self.durations[index] > 0
