"""
Seek planning and offset reporting.

Aligning the group means seeking every marked stream so that all marks
are reached at the same instant once playback resumes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import structlog

from anglesync.alignment.overlap import select_best_reference
from anglesync.alignment.registry import StreamRegistry
from anglesync.errors import InsufficientMarks
from anglesync.models.stream import RegistrySnapshot

logger = structlog.get_logger(__name__)

# Offsets closer than this are reported as in sync
DEFAULT_IN_SYNC_TOLERANCE = 0.05


class OffsetStatus(str, Enum):
    """How a stream's mark sits relative to the reference mark."""

    IN_SYNC = "in_sync"
    AHEAD = "ahead"
    BEHIND = "behind"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SeekInstruction:
    """Move one stream's playhead to target seconds."""

    stream_index: int
    target: float


@dataclass
class AlignmentPlan:
    """Result of planning an alignment."""

    reference_index: int
    previous_reference_index: int
    seeks: list[SeekInstruction] = field(default_factory=list)

    @property
    def reference_changed(self) -> bool:
        return self.reference_index != self.previous_reference_index

    def target_for(self, stream_index: int) -> Optional[float]:
        for seek in self.seeks:
            if seek.stream_index == stream_index:
                return seek.target
        return None


@dataclass(frozen=True)
class StreamOffset:
    """Signed offset of a stream's mark against the reference mark."""

    stream_index: int
    offset: Optional[float]
    status: OffsetStatus

    @property
    def label(self) -> str:
        if self.offset is None:
            return "—"
        sign = "+" if self.offset >= 0 else ""
        return f"{sign}{self.offset:.2f}s"


class AlignmentPlanner:
    """
    Computes the seek targets that line up every marked stream.

    The plan resolves the reference to the best one reported by the
    overlap selector and commits it to the registry.
    """

    def __init__(self, registry: StreamRegistry, min_marks: int = 2):
        self.registry = registry
        self.min_marks = min_marks

    def plan(self) -> AlignmentPlan:
        """
        Plan the alignment.

        Raises:
            InsufficientMarks: fewer than two streams are marked. Nothing is
                mutated in that case.
        """
        marked = self.registry.marked_count
        if marked < self.min_marks:
            raise InsufficientMarks(marked, self.min_marks)

        previous = self.registry.reference_index
        best = select_best_reference(self.registry.snapshot())
        if best != previous:
            self.registry.set_reference(best)

        marks = self.registry.marks
        base = marks[best]

        seeks = [
            SeekInstruction(stream_index=i, target=max(0.0, mark - base))
            for i, mark in enumerate(marks)
            if mark is not None
        ]

        logger.info(
            "Alignment planned",
            reference_index=best,
            previous_reference_index=previous,
            seeks=len(seeks),
        )

        return AlignmentPlan(
            reference_index=best,
            previous_reference_index=previous,
            seeks=seeks,
        )


def stream_offsets(
    snapshot: RegistrySnapshot,
    tolerance: float = DEFAULT_IN_SYNC_TOLERANCE,
) -> list[StreamOffset]:
    """Offsets of every stream's mark against the committed reference mark."""
    marks = snapshot.marks
    reference_mark = marks[snapshot.reference_index] if marks else None

    offsets = []
    for i, mark in enumerate(marks):
        if reference_mark is None or mark is None:
            offsets.append(StreamOffset(i, None, OffsetStatus.UNKNOWN))
            continue

        diff = mark - reference_mark
        if abs(diff) < tolerance:
            status = OffsetStatus.IN_SYNC
        elif diff > 0:
            status = OffsetStatus.AHEAD
        else:
            status = OffsetStatus.BEHIND
        offsets.append(StreamOffset(i, diff, status))

    return offsets
