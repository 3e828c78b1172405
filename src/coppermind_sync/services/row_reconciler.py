"""Bidirectional last-write-wins reconciliation of table rows."""

import logging
from typing import Dict, Optional, Tuple

from coppermind_sync.models.schema import Row, TableSpec
from coppermind_sync.models.sync_result import RowResult
from coppermind_sync.storage.adapters import Store
from coppermind_sync.storage.table_repository import TableRepository
from coppermind_sync.storage.tombstone_repository import TombstoneRepository

logger = logging.getLogger(__name__)


def needs_copy(source: Row, target: Optional[Row]) -> bool:
    """Decide whether ``source`` should overwrite the other side.

    A row is copied when the other side lacks it, or when both carry a
    timestamp and the source one is strictly newer. Tables without a
    timestamp column are merged on absence only.
    """
    if target is None:
        return True
    if not source.spec.has_timestamp:
        return False
    source_ts = source.updated_at
    target_ts = target.updated_at
    if source_ts is None or target_ts is None:
        return False
    return source_ts > target_ts


class RowReconciler:
    """Makes one table's rows match across the local and remote stores.

    Rows are pulled first, then pushed, one write at a time. The
    reconciler never deletes; deletions belong to the tombstone pass that
    runs before it.
    """

    def __init__(self, local: Store, remote: Store):
        self.local = local
        self.remote = remote
        self._local_tombstones = TombstoneRepository(local)
        self._repositories: Dict[str, Tuple[TableRepository, TableRepository]] = {}

    def repositories(self, spec: TableSpec) -> Tuple[TableRepository, TableRepository]:
        """``(local, remote)`` repositories for a table, built once."""
        repos = self._repositories.get(spec.name)
        if repos is None:
            repos = (TableRepository(self.local, spec), TableRepository(self.remote, spec))
            self._repositories[spec.name] = repos
        return repos

    def reconcile(self, spec: TableSpec, result: Optional[RowResult] = None) -> RowResult:
        """Pull and push the rows of one table.

        Args:
            spec: The table to reconcile.
            result: Counters to update in place, so a caller still sees the
                work done before a failure.

        Returns:
            The pull/push counters.
        """
        result = result if result is not None else RowResult()
        local_repo, remote_repo = self.repositories(spec)

        # Locally deleted rows must not come back from the remote side. Tombstones
        # name ids, so a row paired by another key is only skipped by its own id.
        tombstoned = self._local_tombstones.ids_for_table(spec.name)

        remote_rows = remote_repo.fetch_by_merge_key()
        local_rows = local_repo.fetch_by_merge_key()

        for key, remote_row in remote_rows.items():
            if str(remote_row.id) in tombstoned:
                continue
            if needs_copy(remote_row, local_rows.get(key)):
                local_repo.upsert(remote_row)
                result.pulled += 1

        for key, local_row in local_rows.items():
            if needs_copy(local_row, remote_rows.get(key)):
                remote_repo.upsert(local_row)
                result.pushed += 1

        logger.info(
            "%s: %d pulled, %d pushed", spec.name, result.pulled, result.pushed
        )
        return result
