"""Data models for the Coppermind sync engine."""

from coppermind_sync.models.schema import (
    REGISTRY,
    TOMBSTONE_TABLE,
    Row,
    TableSpec,
    Tombstone,
    get_table,
)
from coppermind_sync.models.sync_result import (
    RowResult,
    SyncOutcome,
    SyncSummary,
    TableResult,
    TombstoneResult,
)

__all__ = [
    "REGISTRY",
    "TOMBSTONE_TABLE",
    "Row",
    "TableSpec",
    "Tombstone",
    "get_table",
    "RowResult",
    "SyncOutcome",
    "SyncSummary",
    "TableResult",
    "TombstoneResult",
]
