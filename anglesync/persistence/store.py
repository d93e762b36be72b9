"""
Sync state persistence.

Two slots hold independent snapshots of the alignment state: ``autosave``
is rewritten on every committed change, ``manual`` only on an explicit
save. The manual slot takes priority when the engine starts.
"""

from __future__ import annotations

import json
from typing import Optional

import structlog

from anglesync.errors import PersistenceCorrupt, PersistenceError, PersistenceWriteFailed
from anglesync.models.state import PersistedSyncState, SaveSlot
from anglesync.persistence.backends import KeyValueStore

logger = structlog.get_logger(__name__)

AUTOSAVE_KEY = "multiAngleSyncState_auto_v1"
MANUAL_KEY = "multiAngleSyncState_saved_v1"


class SyncStateStore:
    """Reads and writes PersistedSyncState snapshots in a KeyValueStore."""

    def __init__(
        self,
        backend: KeyValueStore,
        autosave_key: str = AUTOSAVE_KEY,
        manual_key: str = MANUAL_KEY,
    ):
        self.backend = backend
        self.keys = {
            SaveSlot.AUTOSAVE: autosave_key,
            SaveSlot.MANUAL: manual_key,
        }

    def key_for(self, slot: SaveSlot | str) -> str:
        return self.keys[SaveSlot(slot)]

    def save(self, slot: SaveSlot | str, state: PersistedSyncState) -> None:
        """
        Write a state to a slot.

        Raises:
            PersistenceWriteFailed: the backend refused the write. The caller
                keeps its in-memory state; nothing is retried.
        """
        key = self.key_for(slot)
        payload = json.dumps(state.to_payload())
        try:
            self.backend.set(key, payload)
        except (OSError, PersistenceError) as e:
            logger.warning("Failed to save sync state", key=key, error=str(e))
            raise PersistenceWriteFailed(key, str(e)) from e

        logger.debug("Sync state saved", key=key)

    def read(self, slot: SaveSlot | str) -> Optional[PersistedSyncState]:
        """
        Read a slot.

        Returns None when the slot is empty.

        Raises:
            PersistenceCorrupt: the payload cannot be read or is not a JSON
                object.
        """
        key = self.key_for(slot)
        try:
            raw = self.backend.get(key)
        except (OSError, PersistenceError) as e:
            raise PersistenceCorrupt(key, f"unreadable: {e}") from e

        if not raw:
            return None

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceCorrupt(key, f"invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise PersistenceCorrupt(key, f"expected an object, got {type(payload).__name__}")

        return PersistedSyncState.from_payload(payload)

    def load(self, slot: SaveSlot | str) -> Optional[PersistedSyncState]:
        """Read a slot, reporting a corrupt payload as absent."""
        try:
            return self.read(slot)
        except PersistenceCorrupt as e:
            logger.warning("Ignoring corrupt sync state", key=e.key, reason=e.reason)
            return None

    def clear(self) -> None:
        """Remove both slots."""
        for key in self.keys.values():
            try:
                self.backend.remove(key)
            except (OSError, PersistenceError) as e:
                logger.warning("Failed to clear sync state", key=key, error=str(e))

    def load_initial(self) -> tuple[Optional[SaveSlot], Optional[PersistedSyncState]]:
        """
        State to apply when the engine starts.

        The manual slot wins; the autosave slot is only used when there is
        no manual save.
        """
        for slot in (SaveSlot.MANUAL, SaveSlot.AUTOSAVE):
            state = self.load(slot)
            if state is not None:
                logger.info("Restoring sync state", slot=slot.value)
                return slot, state
        return None, None
