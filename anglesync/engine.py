"""Multi-stream alignment engine."""

from __future__ import annotations

import math
import threading
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

import structlog

from anglesync import commands
from anglesync.alignment.overlap import OverlapWindow, overlap_window, select_best_reference
from anglesync.alignment.planner import AlignmentPlan, AlignmentPlanner, StreamOffset, stream_offsets
from anglesync.alignment.registry import StreamRegistry
from anglesync.config import EngineConfig
from anglesync.errors import InsufficientMarks, PersistenceWriteFailed
from anglesync.models.state import EndPolicy, PersistedSyncState, SaveSlot
from anglesync.persistence.backends import MemoryKeyValueStore
from anglesync.persistence.store import SyncStateStore
from anglesync.playback.base import PlaybackCollaborator, Subscription
from anglesync.playback.policy import EndPolicyController

logger = structlog.get_logger(__name__)

STATUS_IDLE = "Idle"
STATUS_INSUFFICIENT_MARKS = "Cannot sync yet – set marks on at least two cameras first."
STATUS_SYNCED = "Synced. Use Play All to review the alignment."
STATUS_SAVED = "Sync state saved. It will be restored on reload."
STATUS_SAVE_FAILED = "Failed to save sync state."
STATUS_AUTOSAVE_FAILED = "Autosave failed; changes are kept in memory only."
STATUS_CLEARED = "Saved sync cleared. Reload to start from a blank state."
STATUS_VALIDATED = "Timestamps logged."


class SyncEngine:
    """
    Main interface for aligning a group of streams.

    Wires the stream registry, the overlap selector, the alignment planner,
    the end policy controller and the state store together. Every public
    operation is one atomic step: it mutates the registry, recomputes the
    best reference and autosaves under a single lock.

    Example:
        ```python
        players = [SimulatedPlayer("cam1", 10.0), SimulatedPlayer("cam2", 10.0)]
        engine = SyncEngine(players, store=SyncStateStore(JsonFileKeyValueStore("state.json")))

        engine.set_mark(0, 2.0)
        engine.set_mark(1, 5.0)
        plan = engine.start_alignment()  # seeks cam1 to 0.0, cam2 to 3.0
        engine.play_all()
        ```
    """

    def __init__(
        self,
        players: Sequence[PlaybackCollaborator] = (),
        store: Optional[SyncStateStore] = None,
        config: Optional[EngineConfig] = None,
        restore: bool = True,
    ):
        """
        Initialize the engine.

        Args:
            players: One playback collaborator per stream, in slot order
            store: Sync state store (defaults to an in-memory one)
            config: Engine configuration
            restore: Apply the saved state right away; when False, call
                ``restore`` later. Nothing is autosaved before that.
        """
        self.config = config or EngineConfig()
        self.store = store or SyncStateStore(
            MemoryKeyValueStore(),
            autosave_key=self.config.autosave_key,
            manual_key=self.config.manual_key,
        )

        self._lock = threading.RLock()

        self.registry = StreamRegistry()
        self.planner = AlignmentPlanner(self.registry)
        self.end_controller = EndPolicyController(self.config.default_end_policy, lock=self._lock)

        self.status = STATUS_IDLE
        self.last_saved_at: Optional[datetime] = None

        self._players: list[PlaybackCollaborator] = []
        self._metadata_subscriptions: list[Subscription] = []
        self._best_reference_index = 0
        self._initialized = False
        self._last_autosaved: Optional[PersistedSyncState] = None

        self.set_players(players)

        if restore:
            self.restore()

    # ----- State -----

    @property
    def players(self) -> list[PlaybackCollaborator]:
        return list(self._players)

    @property
    def stream_count(self) -> int:
        return self.registry.stream_count

    @property
    def marks(self) -> list[Optional[float]]:
        return self.registry.marks

    @property
    def durations(self) -> list[float]:
        return self.registry.durations

    @property
    def reference_index(self) -> int:
        return self.registry.reference_index

    @property
    def best_reference_index(self) -> int:
        return self._best_reference_index

    @property
    def end_policy(self) -> EndPolicy:
        return self.end_controller.policy

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def sync_tip(self) -> str:
        """Hint about what is missing before an alignment can start."""
        marked = self.registry.marked_count
        if marked == 0:
            return "Set a mark on at least two cameras to enable Start Sync."
        if marked == 1:
            return "Set one more mark on another camera to enable Start Sync."
        return ""

    @property
    def can_align(self) -> bool:
        return self.registry.marked_count >= self.planner.min_marks

    def status_line(self) -> str:
        parts = [f"Status: {self.status}"]
        if self.sync_tip:
            parts.append(self.sync_tip)
        if self._best_reference_index != self.reference_index:
            parts.append(f"(Auto-picked best reference: Camera {self._best_reference_index + 1})")
        if self.last_saved_at:
            parts.append(f"Saved at {self.last_saved_at.strftime('%H:%M:%S')}")
        return " · ".join(parts)

    def persisted_state(self) -> PersistedSyncState:
        return PersistedSyncState(
            reference_index=self.reference_index,
            end_policy=self.end_policy,
            marks=self.registry.marks,
        )

    def offsets(self) -> list[StreamOffset]:
        return stream_offsets(self.registry.snapshot(), self.config.in_sync_tolerance)

    def overlap(self) -> Optional[OverlapWindow]:
        """Common window for the committed reference."""
        return overlap_window(self.registry.snapshot(), self.reference_index)

    # ----- Stream group -----

    def set_players(self, players: Sequence[PlaybackCollaborator], reset: bool = False) -> None:
        """
        Configure the stream group.

        Resizing keeps the marks and durations of surviving slots; with
        ``reset`` the alignment state is torn down first. Durations already
        known to the players are recorded immediately.
        """
        with self._lock:
            for subscription in self._metadata_subscriptions:
                subscription.unsubscribe()
            self._metadata_subscriptions = []

            if reset:
                self.registry.set_stream_count(0)

            self._players = list(players)
            self.registry.set_stream_count(len(self._players))

            for index, player in enumerate(self._players):
                self._metadata_subscriptions.append(
                    player.metadata_loaded.subscribe(self._make_metadata_handler(index))
                )
                if player.duration > 0:
                    self.registry.set_duration(index, player.duration)

            self.end_controller.bind(self._players)

            logger.info("Stream group configured", streams=len(self._players), reset=reset)
            self._commit()

    def close(self) -> None:
        """Release every signal subscription."""
        with self._lock:
            for subscription in self._metadata_subscriptions:
                subscription.unsubscribe()
            self._metadata_subscriptions = []
            self.end_controller.unbind()

    def set_duration(self, index: int, duration: float) -> None:
        with self._lock:
            self.registry.set_duration(index, duration)
            self._commit()

    # ----- Marks and reference -----

    def mark(self, index: int) -> None:
        """Mark a stream at its current playhead."""
        with self._lock:
            player = self._player(index)
            if player is None:
                return
            self.registry.set_mark(index, player.current_time)
            self._commit()

    def set_mark(self, index: int, seconds: float) -> None:
        with self._lock:
            self.registry.set_mark(index, seconds)
            self._commit()

    def clear_mark(self, index: int) -> None:
        with self._lock:
            self.registry.clear_mark(index)
            self._commit()

    def set_reference(self, index: int) -> None:
        with self._lock:
            self.registry.set_reference(index)
            self._commit()

    def nudge(self, index: int, delta: Optional[float] = None) -> None:
        """
        Move a stream's playhead by ``delta`` seconds and mark it there.

        The mark follows the playhead so the nudge refines the alignment.
        """
        with self._lock:
            player = self._player(index)
            if player is None:
                return
            if delta is None:
                delta = self.config.nudge_step

            upper = player.duration if player.duration > 0 else math.inf
            position = max(0.0, min(upper, player.current_time + delta))
            player.current_time = position
            self.registry.set_mark(index, position)
            self._commit()

    # ----- Alignment -----

    def start_alignment(self) -> Optional[AlignmentPlan]:
        """
        Align every marked stream on the best reference.

        Returns the applied plan, or None when fewer than two streams are
        marked (the status message says so and nothing changes).
        """
        with self._lock:
            try:
                plan = self.planner.plan()
            except InsufficientMarks as e:
                logger.info("Alignment skipped", marked=e.marked, required=e.required)
                self.status = STATUS_INSUFFICIENT_MARKS
                return None

            for seek in plan.seeks:
                player = self._player(seek.stream_index)
                if player is not None:
                    player.current_time = seek.target

            self.status = STATUS_SYNCED
            self._commit()
            return plan

    # ----- Playback -----

    def play_all(self) -> None:
        with self._lock:
            for player in self._players:
                player.play()

    def pause_all(self) -> None:
        with self._lock:
            for player in self._players:
                player.pause()

    def set_end_policy(self, policy: EndPolicy | str) -> None:
        with self._lock:
            self.end_controller.set_policy(EndPolicy(policy), self._players)
            self._commit()

    def reset(self) -> None:
        """Stop and rewind every stream and clear all marks."""
        with self._lock:
            for player in self._players:
                player.pause()
                player.current_time = 0.0
            self.registry.clear_all_marks()
            self.status = STATUS_IDLE
            self._commit()

    def validate_timestamps(self) -> list[dict[str, Any]]:
        """Log and return the playhead, duration and mark of every stream."""
        with self._lock:
            rows = []
            for stream in self.registry.streams():
                player = self._player(stream.index)
                row = {
                    "index": stream.index,
                    "current": round(player.current_time, 3) if player else None,
                    "duration": round(stream.duration, 3) if stream.duration_known else None,
                    "mark": stream.mark,
                }
                logger.info("Stream timestamps", **row)
                rows.append(row)

            self.status = STATUS_VALIDATED
            return rows

    # ----- Persistence -----

    def restore(self) -> Optional[SaveSlot]:
        """
        Apply the saved state (manual slot first, then autosave).

        Marks the engine as initialized whether or not a state was found;
        autosaving starts from here.
        """
        with self._lock:
            slot, state = self.store.load_initial()
            if state is not None:
                self._apply_state(state)

            self._initialized = True
            self._last_autosaved = self.persisted_state()
            self._commit()
            return slot

    def save(self) -> bool:
        """Write the current state to the manual and autosave slots."""
        with self._lock:
            state = self.persisted_state()
            try:
                self.store.save(SaveSlot.MANUAL, state)
                self.store.save(SaveSlot.AUTOSAVE, state)
            except PersistenceWriteFailed:
                self.status = STATUS_SAVE_FAILED
                return False

            self._last_autosaved = state
            self.last_saved_at = datetime.now()
            self.status = STATUS_SAVED
            return True

    def clear_saved(self) -> None:
        """Remove both saved slots; the in-memory state is kept."""
        with self._lock:
            self.store.clear()
            self.status = STATUS_CLEARED

    # ----- Commands -----

    def dispatch(self, command: commands.Command) -> Any:
        """Route an operator command to the matching operation."""
        handlers: dict[type, Callable[[Any], Any]] = {
            commands.Mark: lambda c: self.mark(c.index),
            commands.SetReference: lambda c: self.set_reference(c.index),
            commands.Nudge: lambda c: self.nudge(c.index, c.delta),
            commands.StartAlignment: lambda c: self.start_alignment(),
            commands.SetEndPolicy: lambda c: self.set_end_policy(c.policy),
            commands.Save: lambda c: self.save(),
            commands.Clear: lambda c: self.clear_saved(),
            commands.Reset: lambda c: self.reset(),
            commands.PlayAll: lambda c: self.play_all(),
            commands.PauseAll: lambda c: self.pause_all(),
            commands.ValidateTimestamps: lambda c: self.validate_timestamps(),
        }

        handler = handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported command: {command!r}")

        logger.debug("Dispatching command", command=type(command).__name__)
        return handler(command)

    # ----- Internals -----

    def _player(self, index: int) -> Optional[PlaybackCollaborator]:
        if 0 <= index < len(self._players):
            return self._players[index]
        logger.debug("Ignoring operation on missing stream", index=index)
        return None

    def _make_metadata_handler(self, index: int):
        def on_metadata_loaded(duration: float) -> None:
            self.set_duration(index, duration)
        return on_metadata_loaded

    def _apply_state(self, state: PersistedSyncState) -> None:
        if state.end_policy is not None:
            self.end_controller.set_policy(state.end_policy, self._players)

        if state.marks is not None:
            for index in range(self.registry.stream_count):
                value = state.marks[index] if index < len(state.marks) else None
                if value is None:
                    self.registry.clear_mark(index)
                else:
                    self.registry.set_mark(index, value)

        if state.reference_index is not None:
            if self.registry.in_range(state.reference_index):
                self.registry.set_reference(state.reference_index)
            else:
                logger.info("Ignoring saved reference out of range", reference_index=state.reference_index)

    def _commit(self) -> None:
        self._best_reference_index = select_best_reference(self.registry.snapshot())
        self._autosave()

    def _autosave(self) -> None:
        # Writing before restore would clobber the saved state with defaults
        if not self._initialized:
            return

        state = self.persisted_state()
        if state == self._last_autosaved:
            return

        try:
            self.store.save(SaveSlot.AUTOSAVE, state)
        except PersistenceWriteFailed:
            self.status = STATUS_AUTOSAVE_FAILED
        self._last_autosaved = state
