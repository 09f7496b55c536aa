"""Tests for the ``flotilla`` command line."""

from __future__ import annotations

import json

import pytest

from flotilla.__main__ import main


pytestmark = pytest.mark.unit


SNAPSHOT = {
    "width": 80,
    "height": 60,
    "player_id": 0,
    "agents": [
        {"id": 1, "x": 20.0, "y": 20.0, "side": 0},
        {"id": 2, "x": 24.0, "y": 20.0, "side": 0},
        {"id": 3, "x": 60.0, "y": 40.0, "side": 1},
    ],
    "obstacles": [{"id": 100, "x": 40.0, "y": 30.0, "radius": 3.0}],
    "requests": [
        {"agent_id": 1, "target": [30.0, 20.0]},
        {"agent_id": 2, "target": [14.0, 20.0], "preference": "avoid_enemies"},
    ],
}


class TestResolveCommand:

    def test_prints_commands(self, tmp_path, capsys):
        path = tmp_path / "step.json"
        path.write_text(json.dumps(SNAPSHOT))
        assert main(["resolve", str(path), "--log-level", "warning"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert len(out["commands"]) + len(out["frozen"]) == 2
        for command in out["commands"]:
            assert 0 <= command["thrust"] <= 7
            assert 0 <= command["heading"] < 360

    def test_time_budget_flag(self, tmp_path, capsys):
        path = tmp_path / "step.json"
        path.write_text(json.dumps(SNAPSHOT))
        assert main(["resolve", str(path), "--time-budget", "0"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["degraded"] is True

    def test_malformed_snapshot_exits_2(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[]")
        assert main(["resolve", str(path)]) == 2

    def test_missing_snapshot_exits_2(self, tmp_path):
        assert main(["resolve", str(tmp_path / "missing.json")]) == 2

    def test_enemy_request_exits_2(self, tmp_path):
        path = tmp_path / "step.json"
        path.write_text(json.dumps(dict(SNAPSHOT, requests=[{"agent_id": 3, "target": [1, 1]}])))
        assert main(["resolve", str(path)]) == 2

    def test_oversized_field_exits_2(self, tmp_path, capsys):
        path = tmp_path / "step.json"
        path.write_text(json.dumps(dict(SNAPSHOT, width=1000)))
        assert main(["resolve", str(path)]) == 2
        assert capsys.readouterr().out == ""

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            main([])
