"""
Tests for the command-line interface.
"""

import json
import logging

import pytest

from bandwidth_inspector import cli


@pytest.fixture(autouse=True)
def keep_log_handlers(monkeypatch):
    # basicConfig(force=True) would drop pytest's capture handlers.
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: None)


class TestParseArgs:
    def test_analyze_is_the_default_command(self):
        args = cli.parse_args(["project.json", "--exclude", "about", "--exclude", "blog"])
        assert args.command == "analyze"
        assert args.exclude == ["about", "blog"]
        assert args.timeout == 5.0
        assert not args.json

    def test_monthly_command(self):
        args = cli.parse_args(["monthly", "1000", "50", "--no-optimization"])
        assert args.command == "monthly"
        assert args.bytes == 1000.0
        assert args.no_optimization


class TestMonthly:
    def test_output(self, capsys):
        cli.main(["monthly", "1048576", "1000"])
        assert capsys.readouterr().out == "Realistic: 500 MB\nWorst case: 1000 MB\n"

    def test_source_mode(self, capsys):
        cli.main(["monthly", "1048576", "1000", "--no-optimization"])
        assert capsys.readouterr().out.startswith("Realistic: 700 MB\n")


class TestAnalyze:
    def test_markdown_report(self, snapshot_path, capsys):
        cli.main([str(snapshot_path)])
        out = capsys.readouterr().out
        assert "# Bandwidth report" in out
        assert "- Pages analyzed: 2" in out

    def test_json_report(self, snapshot_path, capsys):
        cli.main(["analyze", str(snapshot_path), "--json", "--exclude", "about", "--visits", "500"])
        data = json.loads(capsys.readouterr().out)
        assert data["total_pages"] == 1
        assert "monthly_bandwidth" in data

    def test_manual_file(self, snapshot_path, tmp_path, capsys):
        manual = tmp_path / "manual.json"
        manual.write_text(
            json.dumps([{"collectionName": "Gallery", "imageCount": 4, "avgWidth": 800, "avgHeight": 600}]),
            encoding="utf-8",
        )
        cli.main([str(snapshot_path), "--manual", str(manual), "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["has_manual_estimates"] is True

    def test_missing_snapshot_exits_with_error(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="bandwidth_inspector.cli"):
            with pytest.raises(SystemExit) as excinfo:
                cli.main([str(tmp_path / "absent.json")])
        assert excinfo.value.code == 1
        assert "NOT_FOUND" in caplog.text
