"""
Smoke tests for the learnstate CLI commands.
"""

import pytest
from typer.testing import CliRunner

from learnstate.cli.main import app
from learnstate.delivery.json_telemetry import JSONTelemetryRecorder
from learnstate.delivery.telemetry import INTERVENTION, SNAPSHOT

runner = CliRunner()


class TestDifficultyCommands:

    def test_matrix(self):
        result = runner.invoke(app, ["matrix"])
        assert result.exit_code == 0
        assert "Difficulty Matrix" in result.output

    def test_recommend_json(self):
        result = runner.invoke(
            app, ["recommend", "--grade", "6th", "--tier", "elite", "--accuracy", "0.9", "--json"]
        )
        assert result.exit_code == 0
        assert '"value": 9.5' in result.output

    def test_recommend_flags_fourth_elite(self):
        result = runner.invoke(app, ["recommend", "-g", "4th", "-t", "elite", "--json"])
        assert result.exit_code == 0
        assert '"advisory": "not_recommended"' in result.output

    def test_recommend_rejects_unknown_grade(self):
        result = runner.invoke(app, ["recommend", "--grade", "9th", "--tier", "elite"])
        assert result.exit_code != 0

    def test_recommend_panel(self):
        result = runner.invoke(app, ["recommend", "-g", "5th", "-t", "standard"])
        assert result.exit_code == 0
        assert "Difficulty" in result.output


class TestPlanCommand:

    def test_plan_json(self):
        result = runner.invoke(
            app, ["plan", "--grade", "5th", "--tier", "advanced", "--weeks", "1", "--json"]
        )
        assert result.exit_code == 0
        assert '"step_id": "foundation-1"' in result.output
        assert '"success_probability"' in result.output

    def test_plan_table(self):
        result = runner.invoke(app, ["plan", "-g", "5th", "-t", "standard", "--weeks", "1"])
        assert result.exit_code == 0
        assert "Forecast" in result.output

    def test_invalid_profile_exits(self):
        result = runner.invoke(
            app,
            ["plan", "-g", "5th", "-t", "standard", "--daily-minutes", "20", "--session-minutes", "45"],
        )
        assert result.exit_code == 1


class TestSessionCommands:

    def test_simulate(self):
        result = runner.invoke(app, ["simulate", "--events", "5"])
        assert result.exit_code == 0
        assert "Simulated session" in result.output

    def test_replay_missing_file(self, tmp_path):
        result = runner.invoke(app, ["replay", str(tmp_path / "missing.jsonl")])
        assert result.exit_code == 1

    @pytest.fixture
    def session_file(self, tmp_path):
        recorder = JSONTelemetryRecorder(log_dir=tmp_path)
        recorder.emit(SNAPSHOT, {"fatigue": 0.5, "accuracy": 0.75, "is_default": False}, "abc")
        recorder.emit(INTERVENTION, {"kind": "warning"}, "abc")
        recorder.close()
        return recorder.session_file("abc")

    def test_replay_json(self, session_file):
        result = runner.invoke(app, ["replay", str(session_file), "--json"])
        assert result.exit_code == 0
        assert '"records": 2' in result.output
        assert '"warning": 1' in result.output
