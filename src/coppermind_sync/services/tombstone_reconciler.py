"""Propagation of deletions between the local and remote stores.

A tombstone ``(id, table_name, deleted_at)`` says the row was deleted at
``deleted_at``. It is applied on the other side unless the row there was
updated after the deletion; in that case the update wins, the row is
restored on the side that deleted it and the tombstone is dropped.
"""

import logging
from typing import Callable, Dict, Optional, Set, Tuple

from coppermind_sync.config import DEFAULT_TOMBSTONE_RETENTION_DAYS
from coppermind_sync.models.schema import TableSpec, Tombstone, now_ms
from coppermind_sync.models.sync_result import TombstoneResult
from coppermind_sync.services.row_reconciler import needs_copy
from coppermind_sync.storage.adapters import Store
from coppermind_sync.storage.table_repository import TableRepository
from coppermind_sync.storage.tombstone_repository import TombstoneRepository

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class _Side:
    """Row and tombstone access for one store while reconciling a table."""

    def __init__(self, rows: TableRepository, tombstones: TombstoneRepository):
        self.rows = rows
        self.tombstones = tombstones

    @property
    def name(self) -> str:
        return self.rows.store_name


class TombstoneReconciler:
    """Propagates deletions in both directions and expires old tombstones."""

    def __init__(
        self,
        local: Store,
        remote: Store,
        retention_ms: int = DEFAULT_TOMBSTONE_RETENTION_DAYS * DAY_MS,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the reconciler.

        Args:
            local: The embedded store.
            remote: The shared remote store.
            retention_ms: Age after which tombstones are purged everywhere.
            clock: Source of the current time in epoch milliseconds.
        """
        self.local = local
        self.remote = remote
        self.retention_ms = retention_ms
        self._clock = clock
        self.local_tombstones = TombstoneRepository(local)
        self.remote_tombstones = TombstoneRepository(remote)
        self._sides: Dict[str, Tuple[_Side, _Side]] = {}

    def _sides_for(self, spec: TableSpec) -> Tuple[_Side, _Side]:
        sides = self._sides.get(spec.name)
        if sides is None:
            sides = (
                _Side(TableRepository(self.local, spec), self.local_tombstones),
                _Side(TableRepository(self.remote, spec), self.remote_tombstones),
            )
            self._sides[spec.name] = sides
        return sides

    def reconcile(
        self, spec: TableSpec, result: Optional[TombstoneResult] = None
    ) -> TombstoneResult:
        """Exchange tombstones for one table, then sweep expired ones.

        Args:
            spec: The table whose tombstones are reconciled.
            result: Counters to update in place.

        Returns:
            The deletion counters.
        """
        result = result if result is not None else TombstoneResult()
        local, remote = self._sides_for(spec)

        local_markers = local.tombstones.list_for_table(spec.name)
        remote_markers = remote.tombstones.list_for_table(spec.name)
        handled: Set[str] = set()

        # Pull: remote deletions the local side has not seen yet
        for row_id, tombstone in remote_markers.items():
            known = local_markers.get(row_id)
            if known is not None and known.deleted_at >= tombstone.deleted_at:
                continue
            handled.add(row_id)
            if self._apply(spec, tombstone, origin=remote, target=local, result=result):
                result.tombstones_pulled += 1

        # Push: local deletions the remote side has not seen yet
        for row_id, tombstone in local_markers.items():
            if row_id in handled:
                continue
            known = remote_markers.get(row_id)
            if known is not None and known.deleted_at >= tombstone.deleted_at:
                continue
            if self._apply(spec, tombstone, origin=local, target=remote, result=result):
                result.tombstones_pushed += 1

        result.purged += self.sweep(table_name=spec.name)

        if result.tombstones_pulled or result.tombstones_pushed or result.rejected:
            logger.info(
                "%s: %d deletions pulled, %d pushed, %d overridden by later updates",
                spec.name,
                result.tombstones_pulled,
                result.tombstones_pushed,
                result.rejected,
            )
        return result

    def _apply(
        self,
        spec: TableSpec,
        tombstone: Tombstone,
        origin: _Side,
        target: _Side,
        result: TombstoneResult,
    ) -> bool:
        """Apply one tombstone to the target side.

        The contested row's timestamp is read now rather than from a
        snapshot; an earlier table in this pass may have written it.

        Returns:
            True if the tombstone was accepted, False if a later update
            on the target side overrode it.
        """
        exists, updated_at = target.rows.current_timestamp(tombstone.id)

        if spec.has_timestamp:
            overridden = (
                exists and updated_at is not None and updated_at > tombstone.deleted_at
            )
        else:
            # Without timestamps, presence is taken as the more recent action
            overridden = exists

        if overridden:
            self._resurrect(tombstone, origin=origin, target=target)
            result.rejected += 1
            result.resurrected += 1
            return False

        target.tombstones.record(tombstone)
        if exists:
            target.rows.delete(tombstone.id)
            if target.rows.store is self.local:
                result.deleted_local += 1
            else:
                result.deleted_remote += 1
        logger.debug(
            "Deleted %s/%s on %s store (tombstone at %d)",
            spec.name, tombstone.id, target.name, tombstone.deleted_at,
        )
        return True

    def _resurrect(self, tombstone: Tombstone, origin: _Side, target: _Side) -> None:
        """Restore an overridden row on the side that deleted it."""
        survivor = target.rows.get(tombstone.id)
        if survivor is not None:
            current = origin.rows.get(tombstone.id)
            if needs_copy(survivor, current):
                origin.rows.upsert(survivor)
        origin.tombstones.remove(tombstone.id)
        logger.info(
            "Kept %s/%s: updated at %s on %s store, after its deletion at %d",
            tombstone.table_name,
            tombstone.id,
            survivor.updated_at if survivor is not None else "?",
            target.name,
            tombstone.deleted_at,
        )

    def cutoff_ms(self) -> int:
        return self._clock() - self.retention_ms

    def sweep(self, table_name: Optional[str] = None) -> int:
        """Purge expired tombstones from both stores.

        Args:
            table_name: Limit the sweep to one table; None sweeps every
                tombstone, including ones for tables no longer synchronized.

        Returns:
            Number of tombstones removed across both stores.
        """
        cutoff = self.cutoff_ms()
        purged = self.local_tombstones.purge_older_than(cutoff, table_name)
        purged += self.remote_tombstones.purge_older_than(cutoff, table_name)
        return purged
