"""Tests for the command line entry point."""

import json
import logging

import pytest

from coppermind_sync.main import main, parse_args
from coppermind_sync.models.db_models import init_local_db
from coppermind_sync.observability import ROOT_LOGGER_NAME
from coppermind_sync.storage.adapters import SqlStore
from tests.helpers import fetch_row, insert_row, note


@pytest.fixture(autouse=True)
def _restore_log_handlers():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    saved = list(root.handlers)
    saved_level = root.level
    yield
    for handler in root.handlers:
        if handler not in saved:
            handler.close()
    root.handlers = saved
    root.setLevel(saved_level)


@pytest.fixture
def local_db(test_config):
    """Local database file at the configured path, opened for arranging rows."""
    store = SqlStore(init_local_db(test_config.get_local_db_url()), "local")
    yield store
    store.dispose()


class TestParseArgs:
    """Tests for argument parsing."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_delete_arguments(self):
        args = parse_args(["--log-level", "DEBUG", "delete", "notes", "n1"])
        assert (args.command, args.table, args.row_id) == ("delete", "notes", "n1")
        assert args.log_level == "DEBUG"


class TestDeleteCommand:
    """Tests for `coppermind-sync delete`."""

    def test_deletes_row_and_records_tombstone(self, local_db, capsys):
        insert_row(local_db, "notes", **note("n1", 100))

        assert main(["delete", "notes", "n1"]) == 0

        assert "Deleted notes/n1" in capsys.readouterr().out
        assert fetch_row(local_db, "notes", "n1") is None
        assert local_db.query("SELECT table_name FROM deleted_items WHERE id = ?", ("n1",)) == [
            {"table_name": "notes"}
        ]

    def test_unknown_table(self, test_config):
        assert main(["delete", "settings", "x"]) == 1


class TestSyncCommand:
    """Tests for `coppermind-sync sync`."""

    def test_disabled_without_remote(self, test_config, capsys):
        assert main(["sync"]) == 0
        assert "[info] Sync disabled" in capsys.readouterr().out

    def test_syncs_with_remote(self, test_config, local_db, tmp_path, capsys, monkeypatch):
        remote_path = tmp_path / "remote.db"
        monkeypatch.setattr(test_config, "remote_url", f"sqlite:///{remote_path}")
        insert_row(local_db, "notes", **note("n1", 100))

        assert main(["sync"]) == 0

        assert "[success] Sync complete" in capsys.readouterr().out
        remote = SqlStore(init_local_db(f"sqlite:///{remote_path}"), "remote")
        assert fetch_row(remote, "notes", "n1")["updated_at"] == 100
        remote.dispose()

    def test_unreachable_remote_exits_nonzero(self, test_config, tmp_path, capsys, monkeypatch):
        url = f"sqlite:///{tmp_path / 'missing' / 'remote.db'}"
        monkeypatch.setattr(test_config, "remote_url", url)

        assert main(["sync"]) == 1
        assert "[error] Sync failed" in capsys.readouterr().out

    def test_local_db_override(self, test_config, tmp_path):
        target = tmp_path / "elsewhere" / "coppermind.db"
        assert main(["--local-db", str(target), "sync"]) == 0
        assert target.exists()


class TestStatusAndWatch:
    """Tests for `status` and `watch`."""

    def test_status_reports_json(self, test_config, capsys):
        assert main(["status"]) == 0

        status = json.loads(capsys.readouterr().out)
        assert status["enabled"] is False
        assert status["state"] == "unconfigured"
        assert status["local_db"].endswith("local.db")
        assert status["tombstone_retention_days"] == 30
        assert "total_operations" in status["metrics"]

    def test_watch_requires_remote(self, test_config):
        assert main(["watch"]) == 1
