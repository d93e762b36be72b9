"""Persistence of the alignment state."""

from anglesync.persistence.backends import (
    KeyValueStore,
    MemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from anglesync.persistence.store import SyncStateStore, AUTOSAVE_KEY, MANUAL_KEY

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "SyncStateStore",
    "AUTOSAVE_KEY",
    "MANUAL_KEY",
]
