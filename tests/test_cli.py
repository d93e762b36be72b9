"""
Tests for the command line interface.
"""

import json

import pytest
from typer.testing import CliRunner

from anglesync.cli.main import app
from anglesync.persistence.store import AUTOSAVE_KEY, MANUAL_KEY


runner = CliRunner()


@pytest.fixture
def files(tmp_path):
    state_file = tmp_path / "state.json"
    session_file = tmp_path / "session.json"

    def invoke(*args):
        return runner.invoke(
            app,
            ["--state-file", str(state_file), "--session-file", str(session_file), *args],
        )

    return invoke, state_file, session_file


def add_cameras(invoke, *durations):
    for i, duration in enumerate(durations):
        result = invoke("add", f"cam{i + 1}.webm", "--duration", str(duration))
        assert result.exit_code == 0, result.output


class TestCli:
    """Tests for the anglesync CLI."""

    def test_version(self, files):
        """Test the version command."""
        invoke, _, _ = files

        result = invoke("version")

        assert result.exit_code == 0
        assert "anglesync v" in result.output

    def test_add_and_status(self, files):
        """Test adding cameras builds the session."""
        invoke, _, session_file = files

        add_cameras(invoke, 10.0, 12.0)
        result = invoke("status")

        assert result.exit_code == 0
        assert "cam2.webm" in result.output
        sources = json.loads(session_file.read_text())["sources"]
        assert [s["duration"] for s in sources] == [10.0, 12.0]

    def test_add_reads_capture_sidecar(self, files, tmp_path):
        """Test the duration comes from the capture metadata sidecar."""
        invoke, _, session_file = files
        media = tmp_path / "capture_1.webm"
        (tmp_path / "capture_1.metadata.json").write_text(
            json.dumps({"startEpochMs": 1000, "endEpochMs": 9000, "durationMs": 8000})
        )

        result = invoke("add", str(media))

        assert result.exit_code == 0
        assert json.loads(session_file.read_text())["sources"][0]["duration"] == 8.0

    def test_mark_and_sync(self, files):
        """Test marking two cameras and aligning them."""
        invoke, state_file, session_file = files
        add_cameras(invoke, 10.0, 10.0)

        assert invoke("mark", "1", "--at", "2").exit_code == 0
        assert invoke("seek", "2", "5").exit_code == 0
        assert invoke("mark", "2").exit_code == 0

        result = invoke("sync")

        assert result.exit_code == 0, result.output
        assert "Synced" in result.output
        sources = json.loads(session_file.read_text())["sources"]
        assert [s["position"] for s in sources] == [0.0, 3.0]

        autosave = json.loads(json.loads(state_file.read_text())[AUTOSAVE_KEY])
        assert autosave["marks"] == [2.0, 5.0]

    def test_sync_needs_two_marks(self, files):
        """Test sync fails cleanly with one mark."""
        invoke, _, _ = files
        add_cameras(invoke, 10.0, 10.0)
        invoke("mark", "1", "--at", "2")

        result = invoke("sync")

        assert result.exit_code == 1
        assert "Cannot sync yet" in result.output

    def test_unknown_camera(self, files):
        """Test addressing a camera outside the session."""
        invoke, _, _ = files
        add_cameras(invoke, 10.0)

        result = invoke("mark", "3")

        assert result.exit_code == 1
        assert "No camera 3" in result.output

    def test_save_and_clear(self, files):
        """Test manual save and clearing the saved state."""
        invoke, state_file, _ = files
        add_cameras(invoke, 10.0, 10.0)
        invoke("mark", "1", "--at", "1.5")

        result = invoke("save")
        assert result.exit_code == 0
        assert MANUAL_KEY in json.loads(state_file.read_text())

        result = invoke("clear")
        assert result.exit_code == 0
        assert json.loads(state_file.read_text()) == {}

    def test_policy_and_simulate(self, files):
        """Test simulating playback under the stop-all policy."""
        invoke, _, session_file = files
        add_cameras(invoke, 2.0, 10.0)

        assert invoke("policy", "stopAllAtFirstEnd").exit_code == 0
        result = invoke("simulate", "5", "--step", "0.5")

        assert result.exit_code == 0, result.output
        assert "camera 1 ended" in result.output
        positions = [s["position"] for s in json.loads(session_file.read_text())["sources"]]
        # Camera 2 is paused within the tick where camera 1 ends
        assert positions == [2.0, 1.5]

    def test_nudge_and_reset(self, files):
        """Test nudging moves the mark, reset clears it."""
        invoke, state_file, _ = files
        add_cameras(invoke, 10.0)
        invoke("seek", "1", "4")

        result = invoke("nudge", "1", "--delta", "0.5")
        assert result.exit_code == 0
        assert "4.50s" in result.output

        assert invoke("reset").exit_code == 0
        autosave = json.loads(json.loads(state_file.read_text())[AUTOSAVE_KEY])
        assert autosave["marks"] == [None]
