"""
Temporal alignment of independently timestamped streams.

Streams are aligned on operator-placed marks:
- the registry tracks marks and durations
- the overlap selector picks the reference with the longest common window
- the planner turns marks into per-stream seek targets
"""

from anglesync.alignment.registry import StreamRegistry
from anglesync.alignment.overlap import (
    OverlapWindow,
    overlap_window,
    select_best_reference,
)
from anglesync.alignment.planner import (
    AlignmentPlanner,
    AlignmentPlan,
    SeekInstruction,
    StreamOffset,
    OffsetStatus,
    stream_offsets,
)

__all__ = [
    "StreamRegistry",
    "OverlapWindow",
    "overlap_window",
    "select_best_reference",
    "AlignmentPlanner",
    "AlignmentPlan",
    "SeekInstruction",
    "StreamOffset",
    "OffsetStatus",
    "stream_offsets",
]
