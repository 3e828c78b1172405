"""Tests for full sync passes across every table."""

from coppermind_sync.models.schema import get_table
from coppermind_sync.models.sync_result import (SyncOutcome, SyncSummary,
                                                TableResult)
from coppermind_sync.observability import metrics
from coppermind_sync.services.soft_delete import soft_delete
from coppermind_sync.services.sync_orchestrator import SyncOrchestrator
from tests.conftest import fixed_clock
from tests.helpers import (fetch_all, fetch_row, fetch_tombstone, insert_row,
                           insert_tombstone, note)


class TestSyncPass:
    """Tests for the pass-level behavior."""

    def test_push_and_pull_scenario(self, orchestrator, local_store, remote_store):
        insert_row(local_store, "notes", **note("n1", 100))

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.COMPLETE
        assert fetch_row(remote_store, "notes", "n1")["updated_at"] == 100

        remote_store.execute("UPDATE notes SET updated_at = ? WHERE id = ?", (200, "n1"))
        summary = orchestrator.run_pass()

        assert summary.total_pulled == 1
        assert fetch_row(local_store, "notes", "n1")["updated_at"] == 200

    def test_update_after_deletion_survives(self, orchestrator, local_store, remote_store):
        insert_tombstone(local_store, "n2", "notes", 500)
        insert_row(remote_store, "notes", **note("n2", 600))

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.COMPLETE
        assert fetch_row(local_store, "notes", "n2")["updated_at"] == 600
        assert fetch_row(remote_store, "notes", "n2")["updated_at"] == 600
        assert fetch_tombstone(local_store, "n2") is None
        assert fetch_tombstone(remote_store, "n2") is None
        notes_result = summary.tables[0]
        assert notes_result.table == "notes"
        assert notes_result.resurrected == 1

    def test_deletion_after_update_propagates(self, orchestrator, local_store, remote_store):
        insert_row(local_store, "notes", **note("n3", 400))
        insert_row(remote_store, "notes", **note("n3", 400))
        soft_delete(local_store, "notes", "n3", deleted_at=500)

        summary = orchestrator.run_pass()

        assert summary.total_deleted == 1
        assert fetch_row(local_store, "notes", "n3") is None
        assert fetch_row(remote_store, "notes", "n3") is None
        assert fetch_tombstone(local_store, "n3")["deleted_at"] == 500
        assert fetch_tombstone(remote_store, "n3")["deleted_at"] == 500

    def test_every_table_synchronized(self, orchestrator, local_store, remote_store):
        insert_row(local_store, "todos", id="t1", text="buy milk", completed=0)
        insert_row(local_store, "sticky_notes", id="s1", note_id="n1", x=1.5, y=2.5, updated_at=10)
        insert_row(remote_store, "nodes", id="a", type="text", data='{"label":"A"}', updated_at=10)
        insert_row(remote_store, "edges", id="e1", source="a", target="b", updated_at=10)
        insert_row(
            local_store, "journal_entries",
            id="j1", date="2026-01-01", expected_schedule_image="", actual_schedule_image="",
            reflection_text="ok", created_at=1, updated_at=10,
        )

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.COMPLETE
        assert (summary.total_pushed, summary.total_pulled) == (3, 2)
        for table in ("todos", "sticky_notes", "nodes", "edges", "journal_entries"):
            assert fetch_all(local_store, table) == fetch_all(remote_store, table)

    def test_second_pass_does_nothing(self, orchestrator, local_store, remote_store):
        insert_row(local_store, "notes", **note("n1", 100))
        insert_row(remote_store, "notes", **note("n2", 100))
        insert_tombstone(local_store, "n9", "notes", 50)
        orchestrator.run_pass()

        summary = orchestrator.run_pass()

        assert (summary.total_pulled, summary.total_pushed, summary.total_deleted) == (0, 0, 0)
        assert sum(t.tombstones_pushed + t.tombstones_pulled for t in summary.tables) == 0

    def test_journal_deletion_only_covers_deleted_id(self, orchestrator, local_store, remote_store):
        # Entries pair by date but tombstones carry only the id, so another
        # device's entry for the same date is still pulled after a delete.
        insert_row(local_store, "journal_entries", id="j-a", date="2026-01-01", created_at=1, updated_at=100)
        insert_row(remote_store, "journal_entries", id="j-b", date="2026-01-01", created_at=1, updated_at=100)
        soft_delete(local_store, "journal_entries", "j-a", deleted_at=500)

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.COMPLETE
        assert [r["id"] for r in fetch_all(local_store, "journal_entries")] == ["j-b"]
        assert [r["id"] for r in fetch_all(remote_store, "journal_entries")] == ["j-b"]
        assert fetch_tombstone(remote_store, "j-a")["deleted_at"] == 500

    def test_tables_run_in_registry_order(self, orchestrator):
        summary = orchestrator.run_pass()
        assert [t.table for t in summary.tables] == [
            "notes", "todos", "sticky_notes", "nodes", "edges", "journal_entries",
        ]
        assert summary.sweep.table == "deleted_items"
        assert summary.sweep.ok

    def test_table_subset(self, local_store, remote_store):
        insert_row(local_store, "notes", **note("n1", 100))
        insert_row(local_store, "edges", id="e1", updated_at=1)
        orchestrator = SyncOrchestrator(
            local_store, remote_store, tables=[get_table("edges")], clock=fixed_clock
        )

        orchestrator.run_pass()

        assert fetch_row(remote_store, "edges", "e1") is not None
        assert fetch_row(remote_store, "notes", "n1") is None


class TestFailureIsolation:
    """Tests for per-table failure handling."""

    def test_failing_table_does_not_stop_pass(self, orchestrator, local_store, remote_store):
        remote_store.execute("DROP TABLE edges")
        insert_row(local_store, "edges", id="e1", updated_at=1)
        insert_row(local_store, "journal_entries", id="j1", date="2026-01-01", created_at=1, updated_at=1)

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.PARTIAL
        assert [t.table for t in summary.failed_tables] == ["edges"]
        assert "[SYNC_TABLE_FAILED] Failed to sync edges" in summary.failed_tables[0].error
        assert "operation=rows" in summary.failed_tables[0].error
        assert fetch_row(remote_store, "journal_entries", "j1") is not None
        level, title, _ = summary.notification()
        assert (level, title) == ("warning", "Partial sync")

    def test_work_before_failure_is_counted(self, orchestrator, local_store, remote_store):
        remote_store.execute("DROP TABLE notes")
        remote_store.execute(
            "CREATE TABLE notes (id TEXT PRIMARY KEY, title TEXT, content TEXT, "
            "created_at BIGINT, updated_at BIGINT, parent_id TEXT, position INTEGER, "
            "source_urls TEXT, CHECK (id <> 'bad'))"
        )
        insert_row(local_store, "notes", id="a-good", updated_at=1)
        insert_row(local_store, "notes", id="bad", updated_at=1)

        summary = orchestrator.run_pass()

        notes_result = summary.tables[0]
        assert not notes_result.ok
        assert notes_result.pushed == 1
        assert fetch_row(remote_store, "notes", "a-good") is not None

    def test_all_tables_failing(self, orchestrator, remote_store):
        for table in (
            "notes", "todos", "sticky_notes", "nodes", "edges",
            "journal_entries", "deleted_items",
        ):
            remote_store.execute(f"DROP TABLE {table}")

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.FAILED
        assert summary.error.startswith("[SYNC_TOMBSTONE_FAILED] Failed to sync notes")
        assert "SYNC_SWEEP_FAILED" in summary.sweep.error
        assert summary.notification()[:2] == ("error", "Sync failed")

    def test_all_registry_tables_failing_with_healthy_sweep(self, orchestrator, remote_store):
        for table in ("notes", "todos", "sticky_notes", "nodes", "edges", "journal_entries"):
            remote_store.execute(f"DROP TABLE {table}")

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.FAILED
        assert summary.sweep.ok
        assert len(summary.failed_tables) == 6
        assert summary.error.startswith("[SYNC_TABLE_FAILED] Failed to sync notes")
        assert summary.notification()[:2] == ("error", "Sync failed")

    def test_partial_counts_registry_tables_only(self, orchestrator, remote_store):
        remote_store.execute("DROP TABLE edges")

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.PARTIAL
        assert summary.notification()[2].startswith("5/6 tables synced")

    def test_failed_sweep_makes_pass_partial(self, orchestrator, local_store, remote_store, monkeypatch):
        per_table_sweep = orchestrator.tombstones.sweep

        def sweep(table_name=None):
            if table_name is None:
                raise RuntimeError("disk I/O error")
            return per_table_sweep(table_name=table_name)

        monkeypatch.setattr(orchestrator.tombstones, "sweep", sweep)
        insert_row(local_store, "notes", **note("n1", 100))

        summary = orchestrator.run_pass()

        assert summary.outcome is SyncOutcome.PARTIAL
        assert summary.failed_tables == []
        assert "[SYNC_SWEEP_FAILED]" in summary.sweep.error
        assert fetch_row(remote_store, "notes", "n1") is not None
        assert summary.notification()[:2] == ("warning", "Partial sync")

    def test_metrics_recorded(self, orchestrator, remote_store):
        remote_store.execute("DROP TABLE edges")

        orchestrator.run_pass()

        recorded = metrics.get_metrics()
        assert recorded["sync_pass"]["count"] == 1
        assert recorded["sync_table:notes"]["success_count"] == 1
        assert recorded["sync_table:edges"]["error_count"] == 1
        assert recorded["sweep_tombstones"]["count"] == 1


class TestSyncSummary:
    """Tests for outcome derivation and notification text."""

    def test_complete(self):
        summary = SyncSummary.from_tables(
            [TableResult(table="notes", pulled=2, pushed=1)], elapsed_ms=12.4
        )
        assert summary.outcome is SyncOutcome.COMPLETE
        assert summary.notification() == (
            "success", "Sync complete", "↓2 pulled, ↑1 pushed (12ms)"
        )

    def test_partial(self):
        summary = SyncSummary.from_tables(
            [TableResult(table="notes"), TableResult(table="edges", error="boom")],
            elapsed_ms=5,
        )
        assert summary.outcome is SyncOutcome.PARTIAL
        assert summary.error is None
        assert summary.notification()[2] == "1/2 tables synced (↓0 ↑0, 5ms)"

    def test_failed_carries_first_error(self):
        summary = SyncSummary.from_tables(
            [TableResult(table="notes", error="first"), TableResult(table="edges", error="second")],
            elapsed_ms=1,
        )
        assert summary.outcome is SyncOutcome.FAILED
        assert summary.notification() == ("error", "Sync failed", "first")

    def test_failed_sweep_degrades_complete_to_partial(self):
        summary = SyncSummary.from_tables(
            [TableResult(table="notes", pulled=1), TableResult(table="edges")],
            elapsed_ms=3,
            sweep=TableResult(table="deleted_items", error="[SYNC_SWEEP_FAILED] boom"),
        )
        assert summary.outcome is SyncOutcome.PARTIAL
        assert summary.error is None
        assert summary.notification()[2] == "2/2 tables synced (↓1 ↑0, 3ms)"

    def test_healthy_sweep_does_not_hide_total_failure(self):
        summary = SyncSummary.from_tables(
            [TableResult(table="notes", error="first"), TableResult(table="edges", error="second")],
            elapsed_ms=1,
            sweep=TableResult(table="deleted_items", purged=4),
        )
        assert summary.outcome is SyncOutcome.FAILED
        assert summary.error == "first"
        assert summary.purged == 4

    def test_disabled_and_skipped(self):
        assert SyncSummary(outcome=SyncOutcome.DISABLED).notification()[1] == "Sync disabled"
        assert SyncSummary(outcome=SyncOutcome.SKIPPED).notification()[1] == "Sync in progress"
