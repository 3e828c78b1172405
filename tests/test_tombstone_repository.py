"""Tests for tombstone storage and soft deletion."""

import pytest

from coppermind_sync.exceptions import SchemaError
from coppermind_sync.models.schema import Tombstone
from coppermind_sync.services.soft_delete import is_deleted, soft_delete
from coppermind_sync.storage.tombstone_repository import TombstoneRepository
from tests.helpers import (count_rows, fetch_row, fetch_tombstone, insert_row,
                           insert_tombstone, note)


class TestTombstoneRepository:
    """Tests for deleted_items access."""

    def test_record_and_read(self, local_store):
        repo = TombstoneRepository(local_store)
        repo.record(Tombstone(id="n1", table_name="notes", deleted_at=500))
        assert repo.get("n1") == Tombstone(id="n1", table_name="notes", deleted_at=500)
        assert repo.get("n2") is None

    def test_record_replaces_older_marker(self, local_store):
        repo = TombstoneRepository(local_store)
        repo.record(Tombstone(id="n1", table_name="notes", deleted_at=500))
        repo.record(Tombstone(id="n1", table_name="notes", deleted_at=900))
        assert fetch_tombstone(local_store, "n1")["deleted_at"] == 900
        assert count_rows(local_store, "deleted_items") == 1

    def test_list_for_table_filters(self, local_store):
        insert_tombstone(local_store, "n1", "notes", 100)
        insert_tombstone(local_store, "e1", "edges", 200)
        repo = TombstoneRepository(local_store)
        assert set(repo.list_for_table("notes")) == {"n1"}
        assert repo.ids_for_table("edges") == {"e1"}

    def test_remove(self, local_store):
        insert_tombstone(local_store, "n1", "notes", 100)
        TombstoneRepository(local_store).remove("n1")
        assert fetch_tombstone(local_store, "n1") is None

    def test_purge_strictly_older_than_cutoff(self, local_store):
        insert_tombstone(local_store, "old", "notes", 99)
        insert_tombstone(local_store, "edge", "notes", 100)
        insert_tombstone(local_store, "new", "notes", 101)
        removed = TombstoneRepository(local_store).purge_older_than(100)
        assert removed == 1
        assert fetch_tombstone(local_store, "old") is None
        assert fetch_tombstone(local_store, "edge") is not None

    def test_purge_limited_to_table(self, local_store):
        insert_tombstone(local_store, "n1", "notes", 1)
        insert_tombstone(local_store, "x1", "retired_table", 1)
        repo = TombstoneRepository(local_store)
        assert repo.purge_older_than(100, table_name="notes") == 1
        assert fetch_tombstone(local_store, "x1") is not None
        assert repo.purge_older_than(100) == 1


class TestSoftDelete:
    """Tests for deleting rows with a tombstone."""

    def test_removes_row_and_records_tombstone(self, local_store):
        insert_row(local_store, "notes", **note("n1", 100))
        tombstone = soft_delete(local_store, "notes", "n1", deleted_at=700)
        assert tombstone == Tombstone(id="n1", table_name="notes", deleted_at=700)
        assert fetch_row(local_store, "notes", "n1") is None
        assert is_deleted(local_store, "n1")

    def test_defaults_to_current_time(self, local_store):
        insert_row(local_store, "todos", id="t1", text="call")
        tombstone = soft_delete(local_store, "todos", "t1")
        assert tombstone.deleted_at > 1_600_000_000_000

    def test_missing_row_still_tombstoned(self, local_store):
        soft_delete(local_store, "edges", "e9", deleted_at=5)
        assert is_deleted(local_store, "e9")

    def test_unknown_table_rejected(self, local_store):
        with pytest.raises(SchemaError):
            soft_delete(local_store, "settings", "s1")
        assert count_rows(local_store, "deleted_items") == 0
