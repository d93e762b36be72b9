"""
Multi-angle sync

Aligns independently timestamped camera streams on a shared timeline
using operator-placed reference marks.
"""

from anglesync.engine import SyncEngine
from anglesync.config import EngineConfig
from anglesync.models.state import EndPolicy, SaveSlot, PersistedSyncState
from anglesync.alignment.registry import StreamRegistry
from anglesync.alignment.overlap import select_best_reference
from anglesync.alignment.planner import AlignmentPlanner
from anglesync.playback.policy import EndPolicyController
from anglesync.persistence.store import SyncStateStore

__version__ = "0.1.0"

__all__ = [
    # Core
    "SyncEngine",
    "EngineConfig",
    # Models
    "EndPolicy",
    "SaveSlot",
    "PersistedSyncState",
    # Alignment
    "StreamRegistry",
    "select_best_reference",
    "AlignmentPlanner",
    # Playback
    "EndPolicyController",
    # Persistence
    "SyncStateStore",
]
