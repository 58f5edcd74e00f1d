"""Tests for the greentwin command line."""

import json
import sys

import pytest

from greentwin import cli
from greentwin.config import reload_config


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    (tmp_path / "config.py").write_text(
        f"DATA_DIR = {str(tmp_path / 'data')!r}\nUSER_ID = 'cli'\n"
    )
    monkeypatch.chdir(tmp_path)
    reload_config()
    yield tmp_path
    monkeypatch.undo()
    reload_config()


def run(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["greentwin", *argv])
    return cli.main()


class TestScenarioLoading:
    def test_skips_blank_lines_and_comments(self, tmp_path):
        path = tmp_path / "s.jsonl"
        path.write_text('# warm up\n\n{"type": "get_stats"}\n{"advance": 60}\n')
        assert cli._load_scenario(path) == [{"type": "get_stats"}, {"advance": 60}]

    def test_bad_line_reports_line_number(self, tmp_path):
        path = tmp_path / "s.jsonl"
        path.write_text('{"type": "get_stats"}\n{nope\n')
        with pytest.raises(ValueError, match=r"s.jsonl:2"):
            cli._load_scenario(path)


class TestCommands:
    def test_replay_then_stats(self, workdir, monkeypatch, capsys):
        scenario = workdir / "scenario.jsonl"
        scenario.write_text("\n".join(json.dumps(step) for step in [
            {"type": "report_action", "payload": {
                "kind": "product_view", "title": "Laptop", "price_usd": 1200, "est_kg": 80,
            }},
            {"advance": 3600, "type": "track_activity"},
            {"type": "bogus"},
        ]))

        assert run(monkeypatch, "replay", str(scenario), "--start", "2024-01-01T12:00:00") == 0
        out = capsys.readouterr().out
        assert "show_nudge" in out
        assert "unknown_message_type" in out
        assert "Processed 3 steps" in out

        assert run(monkeypatch, "stats", "--json") == 0
        stats = json.loads(capsys.readouterr().out)
        assert stats["totals"]["views"] == 1
        assert stats["profile"]["total_interactions"] == 1

    def test_replay_missing_file(self, workdir, monkeypatch, capsys):
        assert run(monkeypatch, "replay", "nope.jsonl") == 1
        assert "not found" in capsys.readouterr().out

    def test_queue_and_delays_listing(self, workdir, monkeypatch, capsys):
        assert run(monkeypatch, "queue") == 0
        assert "Offline queue" in capsys.readouterr().out
        assert run(monkeypatch, "delays", "--all") == 0

    def test_config_reports_source(self, workdir, monkeypatch, capsys):
        assert run(monkeypatch, "config") == 0
        assert "USER_ID" in capsys.readouterr().out
