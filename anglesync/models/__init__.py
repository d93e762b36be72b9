"""Core data models for the alignment engine."""

from anglesync.models.stream import StreamDescriptor, RegistrySnapshot
from anglesync.models.state import EndPolicy, SaveSlot, PersistedSyncState

__all__ = [
    # Streams
    "StreamDescriptor",
    "RegistrySnapshot",
    # State
    "EndPolicy",
    "SaveSlot",
    "PersistedSyncState",
]
