"""
Per-stream marks and durations.

The registry is the only mutable store of alignment inputs. It keeps the
marks and durations arrays the same length as the stream group and the
committed reference index valid for that length.
"""

from __future__ import annotations

import math
from typing import Optional

import structlog

from anglesync.errors import IndexOutOfRange
from anglesync.models.stream import RegistrySnapshot, StreamDescriptor

logger = structlog.get_logger(__name__)


class StreamRegistry:
    """
    Ordered collection of stream marks and durations.

    Per-stream operations addressing an index outside the group are ignored:
    the stream count can change under queued operator actions.
    """

    def __init__(self, stream_count: int = 0):
        self._durations: list[float] = []
        self._marks: list[Optional[float]] = []
        self._reference_index = 0
        self.set_stream_count(stream_count)

    @property
    def stream_count(self) -> int:
        return len(self._marks)

    @property
    def durations(self) -> list[float]:
        return list(self._durations)

    @property
    def marks(self) -> list[Optional[float]]:
        return list(self._marks)

    @property
    def reference_index(self) -> int:
        return self._reference_index

    @property
    def marked_count(self) -> int:
        return sum(1 for m in self._marks if m is not None)

    def in_range(self, index: int) -> bool:
        return 0 <= index < self.stream_count

    def require_index(self, index: int) -> None:
        """Raise IndexOutOfRange unless index addresses a stream."""
        if not self.in_range(index):
            raise IndexOutOfRange(index, self.stream_count)

    def has_mark(self, index: int) -> bool:
        return self.in_range(index) and self._marks[index] is not None

    def duration_known(self, index: int) -> bool:
        return self.in_range(index) and self._durations[index] > 0

    def set_stream_count(self, count: int) -> None:
        """
        Resize the group.

        Values below min(old, new) are preserved, new slots start with an
        unknown duration and no mark, and the reference index is re-clamped.
        """
        if count < 0:
            raise ValueError(f"Stream count cannot be negative: {count}")

        keep = min(self.stream_count, count)
        self._durations = self._durations[:keep] + [0.0] * (count - keep)
        self._marks = self._marks[:keep] + [None] * (count - keep)
        self._reference_index = max(0, min(self._reference_index, count - 1))

        logger.debug("Stream count set", stream_count=count)

    def set_duration(self, index: int, value: float) -> None:
        """
        Record a stream's total length once its metadata is known.

        Non-finite or negative lengths are stored as unknown. A mark set
        before the duration was known is clamped now.
        """
        if not self.in_range(index):
            logger.debug("Ignoring duration for missing stream", index=index)
            return

        if not math.isfinite(value) or value < 0:
            value = 0.0

        self._durations[index] = float(value)

        mark = self._marks[index]
        if mark is not None:
            self._marks[index] = self._clamp(index, mark)

    def set_mark(self, index: int, value: float) -> None:
        """Set a stream's mark, clamped to [0, duration] when the duration is known."""
        if not self.in_range(index):
            logger.debug("Ignoring mark for missing stream", index=index)
            return

        if not math.isfinite(value):
            logger.debug("Ignoring non-finite mark", index=index, value=value)
            return

        self._marks[index] = self._clamp(index, float(value))

    def clear_mark(self, index: int) -> None:
        if self.in_range(index):
            self._marks[index] = None

    def clear_all_marks(self) -> None:
        self._marks = [None] * self.stream_count

    def set_reference(self, index: int) -> None:
        if not self.in_range(index):
            logger.debug("Ignoring reference for missing stream", index=index)
            return
        self._reference_index = index

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(
            durations=tuple(self._durations),
            marks=tuple(self._marks),
            reference_index=self._reference_index,
        )

    def streams(self) -> list[StreamDescriptor]:
        return [
            StreamDescriptor(index=i, duration=d, mark=m)
            for i, (d, m) in enumerate(zip(self._durations, self._marks))
        ]

    def _clamp(self, index: int, value: float) -> float:
        duration = self._durations[index]
        if duration > 0:
            return max(0.0, min(duration, value))
        # Pending until the duration is known
        return value
