"""Error taxonomy for the alignment engine.

Every condition here is recoverable: the engine handles it at the boundary
where it occurs and reports it through its status message.
"""

from __future__ import annotations


class SyncEngineError(Exception):
    """Base class for alignment engine conditions."""


class InsufficientMarks(SyncEngineError):
    """Alignment requested with fewer than two marked streams."""

    def __init__(self, marked: int, required: int = 2):
        self.marked = marked
        self.required = required
        super().__init__(
            f"At least {required} marked streams are required, got {marked}"
        )


class IndexOutOfRange(SyncEngineError):
    """A per-stream operation addressed an index outside the group."""

    def __init__(self, index: int, stream_count: int):
        self.index = index
        self.stream_count = stream_count
        super().__init__(f"Stream index {index} out of range for {stream_count} streams")


class PersistenceError(SyncEngineError):
    """Base class for persistence conditions."""


class PersistenceWriteFailed(PersistenceError):
    """Writing a sync state slot failed (unavailable storage, quota...)."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to write '{key}': {reason}")


class PersistenceCorrupt(PersistenceError):
    """A stored payload could not be parsed as a sync state."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt sync state in '{key}': {reason}")
