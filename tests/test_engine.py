"""
Tests for the SyncEngine facade.
"""

import json

import pytest

from anglesync import commands
from anglesync.config import EngineConfig
from anglesync.engine import (
    STATUS_AUTOSAVE_FAILED,
    STATUS_IDLE,
    STATUS_INSUFFICIENT_MARKS,
    STATUS_SAVE_FAILED,
    STATUS_SAVED,
    STATUS_SYNCED,
    SyncEngine,
)
from anglesync.models.state import EndPolicy, SaveSlot
from anglesync.persistence.backends import JsonFileKeyValueStore, MemoryKeyValueStore
from anglesync.persistence.store import AUTOSAVE_KEY, MANUAL_KEY, SyncStateStore
from anglesync.playback.base import PlaybackState
from anglesync.playback.simulated import SimulatedPlayer


class RecordingStore(MemoryKeyValueStore):
    """Memory backend that records every write."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.writes = []

    def set(self, key, value):
        self.writes.append(key)
        super().set(key, value)


class FailingStore(MemoryKeyValueStore):
    def set(self, key, value):
        raise OSError("quota exceeded")


def make_engine(*durations, backend=None, **kwargs):
    players = [SimulatedPlayer(f"cam{i + 1}", duration=d) for i, d in enumerate(durations)]
    backend = backend if backend is not None else RecordingStore()
    engine = SyncEngine(players, store=SyncStateStore(backend), **kwargs)
    return engine, players, backend


def saved(backend, key):
    return json.loads(backend.data[key])


class TestEngineSetup:
    """Tests for engine construction and stream group changes."""

    def test_engine_creation(self):
        """Test a fresh engine."""
        engine, players, _ = make_engine(10.0, 12.0)

        assert engine.initialized
        assert engine.stream_count == 2
        assert engine.durations == [10.0, 12.0]
        assert engine.marks == [None, None]
        assert engine.end_policy == EndPolicy.STOP_ALL_AT_FIRST_END
        assert engine.status == STATUS_IDLE

    def test_metadata_signal_records_duration(self):
        """Test durations arrive through the metadata signal."""
        engine, players, _ = make_engine(None, None)

        players[1].load_metadata(30.0)

        assert engine.durations == [0.0, 30.0]

    def test_resize_keeps_marks(self):
        """Test adding a stream keeps existing marks."""
        engine, players, _ = make_engine(10.0, 10.0)
        engine.set_mark(0, 1.0)

        engine.set_players(players + [SimulatedPlayer("cam3", duration=5.0)])

        assert engine.marks == [1.0, None, None]
        assert engine.durations == [10.0, 10.0, 5.0]

    def test_replace_resets_state(self):
        """Test replacing the group wholesale tears the state down."""
        engine, players, _ = make_engine(10.0, 10.0)
        engine.set_mark(0, 1.0)
        engine.set_reference(1)

        engine.set_players([SimulatedPlayer("new", duration=4.0)], reset=True)

        assert engine.marks == [None]
        assert engine.reference_index == 0

    def test_removed_players_released(self):
        """Test players dropped from the group lose every listener."""
        engine, players, _ = make_engine(10.0, 10.0)

        engine.set_players(players[:1])

        assert players[1].ended.subscriber_count == 0
        assert players[1].metadata_loaded.subscriber_count == 0

    def test_empty_group(self):
        """Test an engine without streams."""
        engine, _, _ = make_engine()

        assert engine.marks == []
        assert engine.durations == []
        assert engine.reference_index == 0
        assert engine.start_alignment() is None
        assert engine.status == STATUS_INSUFFICIENT_MARKS


class TestMarksAndAlignment:
    """Tests for marking, nudging and aligning."""

    def test_mark_at_playhead(self):
        """Test marking uses the player's current time."""
        engine, players, _ = make_engine(10.0, 10.0)
        players[1].current_time = 4.25

        engine.mark(1)

        assert engine.marks == [None, 4.25]

    def test_mark_missing_stream(self):
        """Test marking a missing stream is ignored."""
        engine, _, _ = make_engine(10.0)

        engine.mark(3)
        engine.set_mark(-1, 2.0)

        assert engine.marks == [None]

    def test_nudge_moves_mark(self):
        """Test a nudge moves both playhead and mark."""
        engine, players, _ = make_engine(10.0)
        players[0].current_time = 2.0

        engine.nudge(0)
        assert players[0].current_time == pytest.approx(2.1)
        assert engine.marks[0] == pytest.approx(2.1)

        engine.nudge(0, -5.0)
        assert players[0].current_time == 0.0
        assert engine.marks[0] == 0.0

    def test_nudge_step_from_config(self):
        """Test the default nudge step is configurable."""
        engine, players, _ = make_engine(10.0, config=EngineConfig(nudge_step=0.5))

        engine.nudge(0)

        assert engine.marks[0] == pytest.approx(0.5)

    def test_start_alignment(self):
        """Test alignment seeks every marked stream."""
        engine, players, _ = make_engine(10.0, 10.0, 10.0)
        engine.set_mark(0, 2.0)
        engine.set_mark(1, 5.0)
        players[2].current_time = 6.0

        plan = engine.start_alignment()

        assert plan is not None
        assert plan.reference_index == 0
        assert players[0].current_time == 0.0
        assert players[1].current_time == pytest.approx(3.0)
        assert players[2].current_time == 6.0
        assert engine.status == STATUS_SYNCED

    def test_alignment_without_durations(self):
        """Test alignment with no known durations and an unmarked reference."""
        engine, players, _ = make_engine(None, None, None)
        engine.set_mark(1, 1.0)
        engine.set_mark(2, 3.0)
        players[0].current_time = 4.0

        plan = engine.start_alignment()

        assert plan is not None
        assert engine.reference_index == 1
        assert players[0].current_time == 4.0
        assert players[1].current_time == 0.0
        assert players[2].current_time == pytest.approx(2.0)
        assert engine.status == STATUS_SYNCED

    def test_insufficient_marks(self):
        """Test alignment with one mark reports and changes nothing."""
        engine, players, backend = make_engine(10.0, 10.0)
        engine.set_mark(0, 2.0)
        players[0].current_time = 7.0
        writes_before = len(backend.writes)

        assert engine.start_alignment() is None

        assert engine.status == STATUS_INSUFFICIENT_MARKS
        assert players[0].current_time == 7.0
        assert len(backend.writes) == writes_before

    def test_best_reference_not_auto_applied(self):
        """Test the best reference is only committed by alignment."""
        engine, _, _ = make_engine(10.0, 10.0, 10.0)
        engine.set_reference(2)
        engine.set_mark(0, 2.0)
        engine.set_mark(1, 5.0)

        assert engine.best_reference_index == 0
        assert engine.reference_index == 2
        assert "Auto-picked best reference: Camera 1" in engine.status_line()

        engine.start_alignment()
        assert engine.reference_index == 0

    def test_sync_tip(self):
        """Test the hint follows the number of marks."""
        engine, _, _ = make_engine(10.0, 10.0)
        assert "at least two" in engine.sync_tip

        engine.set_mark(0, 1.0)
        assert "one more" in engine.sync_tip

        engine.set_mark(1, 1.0)
        assert engine.sync_tip == ""
        assert engine.can_align

    def test_offsets_and_overlap(self):
        """Test offset reporting against the committed reference."""
        engine, _, _ = make_engine(10.0, 10.0)
        engine.set_mark(0, 2.0)
        engine.set_mark(1, 5.0)

        offsets = engine.offsets()

        assert offsets[1].label == "+3.00s"
        assert engine.overlap().overlap == pytest.approx(7.0)

    def test_reset(self):
        """Test reset rewinds, pauses and clears marks."""
        engine, players, _ = make_engine(10.0, 10.0)
        engine.set_mark(0, 2.0)
        engine.play_all()
        players[1].advance(3.0)

        engine.reset()

        assert engine.marks == [None, None]
        assert all(p.current_time == 0.0 for p in players)
        assert all(p.state == PlaybackState.PAUSED for p in players)
        assert engine.status == STATUS_IDLE

    def test_validate_timestamps(self):
        """Test timestamp rows."""
        engine, players, _ = make_engine(10.0, None)
        engine.set_mark(0, 1.5)
        players[0].current_time = 2.0

        rows = engine.validate_timestamps()

        assert rows == [
            {"index": 0, "current": 2.0, "duration": 10.0, "mark": 1.5},
            {"index": 1, "current": 0.0, "duration": None, "mark": None},
        ]


class TestEndPolicy:
    """Tests for end policy handling through the engine."""

    def test_stop_all_at_first_end(self):
        """Test the group stops when the shortest stream ends."""
        engine, players, _ = make_engine(3.0, 10.0, 10.0)

        engine.play_all()
        for player in players:
            player.advance(3.0)

        assert [p.pause_calls for p in players] == [1, 1, 1]

    def test_set_end_policy(self):
        """Test changing the policy rebinds without duplicates."""
        engine, players, _ = make_engine(3.0, 10.0)

        engine.set_end_policy(EndPolicy.LOOP_FINISHED)
        engine.set_end_policy("loopFinished")

        engine.play_all()
        players[0].advance(3.0)

        assert engine.end_policy == EndPolicy.LOOP_FINISHED
        assert players[0].ended.subscriber_count == 1
        assert players[0].state == PlaybackState.PLAYING
        assert players[0].current_time == 0.0


class TestPersistence:
    """Tests for restore, autosave and manual save."""

    def test_no_autosave_before_restore(self):
        """Test nothing is written until the saved state is applied."""
        backend = RecordingStore({
            MANUAL_KEY: json.dumps({"referenceIndex": 1, "marks": [1.0, 2.0]}),
        })
        engine, _, _ = make_engine(10.0, 10.0, backend=backend, restore=False)

        engine.set_mark(0, 4.0)
        assert backend.writes == []
        assert not engine.initialized

        engine.restore()
        assert engine.initialized
        assert engine.marks == [1.0, 2.0]

    def test_restore_manual_first(self):
        """Test the manual slot wins over autosave."""
        backend = RecordingStore({
            AUTOSAVE_KEY: json.dumps({"referenceIndex": 0, "endPolicy": "freezeFinished", "marks": [1.0, None]}),
            MANUAL_KEY: json.dumps({"referenceIndex": 1, "endPolicy": "loopFinished", "marks": [3.0, 4.0]}),
        })

        engine, _, _ = make_engine(10.0, 10.0, backend=backend)

        assert engine.marks == [3.0, 4.0]
        assert engine.reference_index == 1
        assert engine.end_policy == EndPolicy.LOOP_FINISHED

    def test_restore_autosave(self):
        """Test autosave is used without a manual save."""
        backend = RecordingStore({
            AUTOSAVE_KEY: json.dumps({"endPolicy": "freezeFinished", "marks": [1.0, None]}),
        })

        engine, _, _ = make_engine(10.0, 10.0, backend=backend)

        assert engine.marks == [1.0, None]
        assert engine.end_policy == EndPolicy.FREEZE_FINISHED

    def test_restore_corrupt_uses_defaults(self):
        """Test corrupt state never prevents start-up."""
        backend = RecordingStore({MANUAL_KEY: "}{", AUTOSAVE_KEY: "null"})

        engine, _, _ = make_engine(10.0, 10.0, backend=backend)

        assert engine.initialized
        assert engine.marks == [None, None]

    def test_restore_undecodable_state_file(self, tmp_path):
        """Test a state file that is not UTF-8 never prevents start-up."""
        path = tmp_path / "state.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        players = [SimulatedPlayer("cam1", duration=10.0), SimulatedPlayer("cam2", duration=10.0)]

        engine = SyncEngine(players, store=SyncStateStore(JsonFileKeyValueStore(path)))

        assert engine.initialized
        assert engine.marks == [None, None]
        assert engine.end_policy == EndPolicy.STOP_ALL_AT_FIRST_END

    def test_restore_fits_marks_to_group(self):
        """Test saved marks are truncated, padded and clamped."""
        backend = RecordingStore({
            MANUAL_KEY: json.dumps({"referenceIndex": 5, "marks": [20.0, 1.0, 2.0, 3.0]}),
        })

        engine, _, _ = make_engine(10.0, 10.0, 10.0, backend=backend)
        assert engine.marks == [10.0, 1.0, 2.0]
        assert engine.reference_index == 0

        backend.data[MANUAL_KEY] = json.dumps({"marks": [1.0]})
        engine, _, _ = make_engine(10.0, 10.0, backend=backend)
        assert engine.marks == [1.0, None]

    def test_restore_ignores_bad_fields(self):
        """Test a bad field keeps its default while others apply."""
        backend = RecordingStore({
            MANUAL_KEY: json.dumps({"referenceIndex": "x", "endPolicy": 3, "marks": [2.0, 5.0]}),
        })

        engine, _, _ = make_engine(10.0, 10.0, backend=backend)

        assert engine.marks == [2.0, 5.0]
        assert engine.reference_index == 0
        assert engine.end_policy == EndPolicy.STOP_ALL_AT_FIRST_END

    def test_autosave_on_change(self):
        """Test committed changes are autosaved."""
        engine, _, backend = make_engine(10.0, 10.0)
        assert backend.writes == []

        engine.set_mark(0, 2.0)
        engine.set_reference(1)
        engine.set_end_policy(EndPolicy.FREEZE_FINISHED)

        assert backend.writes == [AUTOSAVE_KEY] * 3
        assert saved(backend, AUTOSAVE_KEY) == {
            "referenceIndex": 1,
            "endPolicy": "freezeFinished",
            "marks": [2.0, None],
        }

    def test_no_autosave_without_change(self):
        """Test operations that leave the state alone do not write."""
        engine, _, backend = make_engine(10.0, 10.0)

        engine.play_all()
        engine.pause_all()
        engine.set_reference(0)
        engine.set_duration(0, 10.0)

        assert backend.writes == []

    def test_autosave_failure_is_not_fatal(self):
        """Test a failing backend keeps the in-memory state."""
        engine, _, _ = make_engine(10.0, 10.0, backend=FailingStore())

        engine.set_mark(0, 2.0)

        assert engine.marks == [2.0, None]
        assert engine.status == STATUS_AUTOSAVE_FAILED

    def test_manual_save(self):
        """Test an explicit save writes both slots."""
        engine, _, backend = make_engine(10.0, 10.0)
        engine.set_mark(1, 4.0)

        assert engine.save()

        assert engine.status == STATUS_SAVED
        assert engine.last_saved_at is not None
        assert saved(backend, MANUAL_KEY) == saved(backend, AUTOSAVE_KEY)
        assert engine.store.load(SaveSlot.MANUAL) == engine.persisted_state()

    def test_manual_save_failure(self):
        """Test a failed save is reported."""
        engine, _, _ = make_engine(10.0, backend=FailingStore())

        assert not engine.save()
        assert engine.status == STATUS_SAVE_FAILED
        assert engine.last_saved_at is None

    def test_clear_saved(self):
        """Test clearing removes both slots but keeps marks."""
        engine, _, backend = make_engine(10.0, 10.0)
        engine.set_mark(0, 1.0)
        engine.save()

        engine.clear_saved()

        assert MANUAL_KEY not in backend.data
        assert AUTOSAVE_KEY not in backend.data
        assert engine.marks == [1.0, None]


class TestDispatch:
    """Tests for the command interface."""

    def test_dispatch_commands(self):
        """Test a full operator session through commands."""
        engine, players, backend = make_engine(10.0, 10.0)
        players[0].current_time = 2.0
        players[1].current_time = 5.0

        engine.dispatch(commands.Mark(0))
        engine.dispatch(commands.Mark(1))
        engine.dispatch(commands.Nudge(1, 0.5))
        engine.dispatch(commands.SetReference(1))
        plan = engine.dispatch(commands.StartAlignment())
        engine.dispatch(commands.SetEndPolicy(EndPolicy.FREEZE_FINISHED))
        assert engine.dispatch(commands.Save())

        assert plan.reference_index == 0
        assert plan.target_for(1) == pytest.approx(3.5)
        assert saved(backend, MANUAL_KEY)["endPolicy"] == "freezeFinished"

        engine.dispatch(commands.PlayAll())
        assert all(p.state == PlaybackState.PLAYING for p in players)
        engine.dispatch(commands.PauseAll())
        assert engine.dispatch(commands.ValidateTimestamps())[1]["mark"] == pytest.approx(5.5)

        engine.dispatch(commands.Clear())
        engine.dispatch(commands.Reset())
        assert engine.marks == [None, None]
        assert MANUAL_KEY not in backend.data

    def test_unknown_command(self):
        """Test unknown commands are rejected."""
        engine, _, _ = make_engine(10.0)

        with pytest.raises(TypeError):
            engine.dispatch("mark")


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self):
        """Test default configuration."""
        config = EngineConfig()

        assert config.nudge_step == 0.1
        assert config.in_sync_tolerance == 0.05
        assert config.autosave_key == AUTOSAVE_KEY

    def test_from_env(self, monkeypatch, tmp_path):
        """Test ANGLESYNC_* variables override defaults."""
        monkeypatch.setenv("ANGLESYNC_NUDGE_STEP", "0.25")
        monkeypatch.setenv("ANGLESYNC_END_POLICY", "loopFinished")
        monkeypatch.setenv("ANGLESYNC_STATE_FILE", str(tmp_path / "s.json"))

        config = EngineConfig.from_env(str(tmp_path / "missing.env"))

        assert config.nudge_step == 0.25
        assert config.default_end_policy == EndPolicy.LOOP_FINISHED
        assert config.state_file == tmp_path / "s.json"

    def test_default_policy_applied(self):
        """Test the configured policy is the engine's starting policy."""
        engine, _, _ = make_engine(
            10.0,
            config=EngineConfig(default_end_policy=EndPolicy.FREEZE_FINISHED),
        )

        assert engine.end_policy == EndPolicy.FREEZE_FINISHED
