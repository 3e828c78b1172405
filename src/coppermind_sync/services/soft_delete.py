"""Deleting synchronized rows so the deletion reaches other devices."""

import logging
from typing import Optional

from coppermind_sync.models.schema import Tombstone, get_table, now_ms
from coppermind_sync.storage.adapters import Store
from coppermind_sync.storage.table_repository import TableRepository
from coppermind_sync.storage.tombstone_repository import TombstoneRepository

logger = logging.getLogger(__name__)


def soft_delete(
    store: Store, table_name: str, row_id: str, deleted_at: Optional[int] = None
) -> Tombstone:
    """Record a tombstone for a row, then remove the row.

    Args:
        store: Store the row lives in (normally the local one).
        table_name: Synchronized table holding the row.
        row_id: The row's ``id``.
        deleted_at: Deletion time in epoch milliseconds; defaults to now.

    Returns:
        The tombstone that was written.

    Raises:
        SchemaError: If the table is not synchronized.
    """
    spec = get_table(table_name)
    tombstone = Tombstone(
        id=row_id,
        table_name=spec.name,
        deleted_at=deleted_at if deleted_at is not None else now_ms(),
    )
    TombstoneRepository(store).record(tombstone)
    TableRepository(store, spec).delete(row_id)
    logger.debug("Soft-deleted %s/%s on %s store", spec.name, row_id, store.name)
    return tombstone


def is_deleted(store: Store, row_id: str) -> bool:
    """Check whether a tombstone exists for the id."""
    return TombstoneRepository(store).get(row_id) is not None
