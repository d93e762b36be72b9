"""
Reference stream selection.

For a candidate reference, every marked stream with a known duration is
placed on a global timeline where the candidate starts at time zero and all
marks coincide. The candidate whose placement leaves the longest window in
which every such stream has footage is the best reference.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import structlog

from anglesync.models.stream import RegistrySnapshot

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OverlapWindow:
    """Common playable window for one candidate reference, in its timeline."""

    reference_index: int
    start: float
    end: float

    @property
    def overlap(self) -> float:
        return max(0.0, self.end - self.start)


def overlap_window(snapshot: RegistrySnapshot, reference_index: int) -> Optional[OverlapWindow]:
    """
    Compute the common window for a candidate reference.

    Returns None when the candidate has no mark or when no stream has both a
    mark and a known duration (the window would be unbounded).
    """
    marks = snapshot.marks
    if not 0 <= reference_index < len(marks) or marks[reference_index] is None:
        return None

    base = marks[reference_index]
    start = -math.inf
    end = math.inf

    for i, mark in enumerate(marks):
        if mark is None or not snapshot.duration_known(i):
            continue
        delta = mark - base
        start = max(start, -delta)
        end = min(end, snapshot.durations[i] - delta)

    if not (math.isfinite(start) and math.isfinite(end)):
        return None

    return OverlapWindow(reference_index=reference_index, start=start, end=end)


def select_best_reference(snapshot: RegistrySnapshot) -> int:
    """
    Pick the marked stream whose use as reference maximizes the overlap.

    With fewer than two marks the current reference is returned unchanged.
    Ties keep the lowest index; candidates without a finite window are
    skipped. If none has one the current reference is kept when it is
    marked, otherwise the lowest marked index is used.
    """
    if snapshot.marked_count < 2:
        return snapshot.reference_index

    best_index = snapshot.reference_index
    best_overlap = -math.inf

    for candidate in snapshot.marked_indices:
        window = overlap_window(snapshot, candidate)
        if window is None:
            continue
        if window.overlap > best_overlap:
            best_index = candidate
            best_overlap = window.overlap

    if not math.isfinite(best_overlap) and snapshot.marks[best_index] is None:
        best_index = snapshot.marked_indices[0]

    logger.debug(
        "Best reference computed",
        best_index=best_index,
        overlap=best_overlap if math.isfinite(best_overlap) else None,
    )
    return best_index
