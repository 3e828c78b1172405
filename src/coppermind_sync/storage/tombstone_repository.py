"""Repository for deletion markers (tombstones) on one store."""
import logging
from typing import Dict, Optional, Set

from coppermind_sync.models.schema import TOMBSTONE_COLUMNS, TOMBSTONE_TABLE, Tombstone
from coppermind_sync.storage.adapters import Store
from coppermind_sync.storage.statements import placeholder, placeholders

logger = logging.getLogger(__name__)


class TombstoneRepository:
    """Reads and writes ``deleted_items`` on a single store."""

    def __init__(self, store: Store):
        """Initialize the tombstone repository.

        Args:
            store: The store holding the tombstone table.
        """
        self.store = store
        style = store.paramstyle
        p1 = placeholder(style, 1)
        columns = ", ".join(TOMBSTONE_COLUMNS)

        self._select_all = f"SELECT {columns} FROM {TOMBSTONE_TABLE}"
        self._select_for_table = f"{self._select_all} WHERE table_name = {p1}"
        self._select_by_id = f"{self._select_all} WHERE id = {p1}"
        self._upsert = (
            f"INSERT INTO {TOMBSTONE_TABLE} ({columns}) "
            f"VALUES ({placeholders(style, 3)}) "
            "ON CONFLICT (id) DO UPDATE SET "
            "table_name = excluded.table_name, deleted_at = excluded.deleted_at"
        )
        self._delete_by_id = f"DELETE FROM {TOMBSTONE_TABLE} WHERE id = {p1}"
        self._purge_all = f"DELETE FROM {TOMBSTONE_TABLE} WHERE deleted_at < {p1}"
        self._purge_for_table = (
            f"{self._purge_all} AND table_name = {placeholder(style, 2)}"
        )

    @property
    def store_name(self) -> str:
        return self.store.name

    def list_for_table(self, table_name: str) -> Dict[str, Tombstone]:
        """Tombstones belonging to one table, indexed by row id."""
        records = self.store.query(self._select_for_table, (table_name,))
        tombstones = (Tombstone.from_record(r) for r in records)
        return {t.id: t for t in tombstones}

    def ids_for_table(self, table_name: str) -> Set[str]:
        return set(self.list_for_table(table_name))

    def get(self, row_id: str) -> Optional[Tombstone]:
        records = self.store.query(self._select_by_id, (row_id,))
        if not records:
            return None
        return Tombstone.from_record(records[0])

    def record(self, tombstone: Tombstone) -> None:
        """Insert a tombstone, replacing any older marker for the same id."""
        self.store.execute(
            self._upsert,
            (tombstone.id, tombstone.table_name, tombstone.deleted_at),
        )

    def remove(self, row_id: str) -> None:
        self.store.execute(self._delete_by_id, (row_id,))

    def purge_older_than(self, cutoff_ms: int, table_name: Optional[str] = None) -> int:
        """Delete tombstones with ``deleted_at`` before the cutoff.

        Returns:
            Number of tombstones removed, as reported by the driver.
        """
        if table_name is None:
            removed = self.store.execute(self._purge_all, (cutoff_ms,))
        else:
            removed = self.store.execute(self._purge_for_table, (cutoff_ms, table_name))
        removed = max(removed or 0, 0)
        if removed:
            logger.debug(
                "Purged %d expired tombstones from %s store", removed, self.store_name
            )
        return removed
