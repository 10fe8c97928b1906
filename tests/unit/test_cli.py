"""
Unit tests for backend/cli.py
"""

import json
from unittest.mock import patch

import pytest

from backend.cli import build_parser, main
from backend.settings import Settings


@pytest.fixture
def local_settings():
    settings = Settings(
        environment="test",
        supabase_url=None,
        supabase_anon_key=None,
        connectivity_probe_url=None,
        _env_file=None,
    )
    with patch("backend.cli.get_settings", return_value=settings):
        yield settings


@pytest.mark.unit
class TestParser:

    def test_status_command(self):
        args = build_parser().parse_args(["status"])
        assert args.command == "status"
        assert args.db is None
        assert args.verbose is False

    def test_retry_takes_sequence(self):
        args = build_parser().parse_args(["--db", "/tmp/sync.db", "retry", "42"])
        assert args.command == "retry"
        assert args.sequence == 42
        assert args.db == "/tmp/sync.db"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_sequence_must_be_integer(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["discard", "abc"])


@pytest.mark.unit
class TestMain:

    def test_status_prints_json(self, local_settings, capsys):
        assert main(["--db", ":memory:", "status"]) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["local_only"] is True
        assert status["pending_count"] == 0

    def test_flush_in_local_only_mode_is_skipped(self, local_settings, capsys):
        assert main(["--db", ":memory:", "flush"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["skipped"] == "local_only"

    def test_failed_lists_nothing(self, local_settings, capsys):
        assert main(["--db", ":memory:", "failed"]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_unknown_entry_returns_error_code(self, local_settings, capsys):
        assert main(["--db", ":memory:", "retry", "42"]) == 1
        assert "Queue entry 42 not found" in capsys.readouterr().err

    def test_migrate_without_backend(self, local_settings, capsys):
        assert main(["--db", ":memory:", "migrate"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["success"] is False
        assert result["error"] == "Remote backend not configured"
