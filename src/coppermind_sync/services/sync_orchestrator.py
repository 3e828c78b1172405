"""One full synchronization pass over every registered table."""

import logging
import time
from typing import Callable, Iterable, List, Optional

from coppermind_sync.config import DEFAULT_TOMBSTONE_RETENTION_DAYS
from coppermind_sync.exceptions import ErrorCode, SyncError
from coppermind_sync.models.schema import REGISTRY, TOMBSTONE_TABLE, TableSpec, now_ms
from coppermind_sync.models.sync_result import (RowResult, SyncSummary,
                                                TableResult, TombstoneResult)
from coppermind_sync.observability import timed_operation
from coppermind_sync.services.row_reconciler import RowReconciler
from coppermind_sync.services.tombstone_reconciler import DAY_MS, TombstoneReconciler
from coppermind_sync.storage.adapters import Store

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drives a pass: tombstones then rows for each table, in registry order.

    Each table runs inside its own failure boundary. A table that fails is
    logged and recorded in the summary, and the pass moves on; writes it
    made before failing stay in place and the next pass continues from there.
    """

    def __init__(
        self,
        local: Store,
        remote: Store,
        tables: Optional[Iterable[TableSpec]] = None,
        retention_ms: int = DEFAULT_TOMBSTONE_RETENTION_DAYS * DAY_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.local = local
        self.remote = remote
        self.tables: List[TableSpec] = list(tables if tables is not None else REGISTRY)
        self.tombstones = TombstoneReconciler(local, remote, retention_ms, clock)
        self.rows = RowReconciler(local, remote)

    def run_pass(self) -> SyncSummary:
        """Reconcile every table and report what happened."""
        start = time.perf_counter()
        results: List[TableResult] = []

        with timed_operation("sync_pass", tables=len(self.tables)) as op:
            for spec in self.tables:
                results.append(self.sync_table(spec))
            sweep = self.sweep_tombstones()
            op["failed_tables"] = sum(1 for r in results if not r.ok)
            op["sweep_ok"] = sweep.ok

        elapsed_ms = (time.perf_counter() - start) * 1000
        summary = SyncSummary.from_tables(results, elapsed_ms, sweep=sweep)

        logger.info(
            "Sync %s: %d pulled, %d pushed, %d deleted in %.0fms (%d/%d tables ok)",
            summary.outcome.value,
            summary.total_pulled,
            summary.total_pushed,
            summary.total_deleted,
            elapsed_ms,
            summary.synced_table_count,
            len(results),
        )
        return summary

    def sync_table(self, spec: TableSpec) -> TableResult:
        """Reconcile one table; never raises."""
        result = TableResult(table=spec.name)
        tombstone_result = TombstoneResult()
        row_result = RowResult()
        phase = "tombstones"
        try:
            with timed_operation(f"sync_table:{spec.name}") as op:
                # Tombstones first: the row pass must not re-copy rows
                # that are about to be deleted.
                self.tombstones.reconcile(spec, tombstone_result)
                phase = "rows"
                self.rows.reconcile(spec, row_result)
                op["pulled"] = row_result.pulled
                op["pushed"] = row_result.pushed
        except Exception as e:
            error = SyncError(
                f"Failed to sync {spec.name}",
                table=spec.name,
                operation=phase,
                code=(
                    ErrorCode.SYNC_TOMBSTONE_FAILED
                    if phase == "tombstones"
                    else ErrorCode.SYNC_TABLE_FAILED
                ),
                original_error=e,
            )
            logger.error("%s", error, exc_info=True)
            result.error = str(error)
        finally:
            result.add_tombstones(tombstone_result)
            result.add_rows(row_result)
        return result

    def sweep_tombstones(self) -> TableResult:
        """Purge expired tombstones of every table from both stores."""
        result = TableResult(table=TOMBSTONE_TABLE)
        try:
            with timed_operation("sweep_tombstones") as op:
                result.purged = self.tombstones.sweep()
                op["purged"] = result.purged
        except Exception as e:
            error = SyncError(
                "Failed to sweep expired tombstones",
                table=TOMBSTONE_TABLE,
                operation="sweep",
                code=ErrorCode.SYNC_SWEEP_FAILED,
                original_error=e,
            )
            logger.error("%s", error, exc_info=True)
            result.error = str(error)
        return result
