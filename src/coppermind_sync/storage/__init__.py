"""Storage layer for the Coppermind sync engine."""

from coppermind_sync.storage.adapters import SqlStore, Store
from coppermind_sync.storage.statements import StatementBuilder
from coppermind_sync.storage.table_repository import TableRepository
from coppermind_sync.storage.tombstone_repository import TombstoneRepository

__all__ = [
    "Store",
    "SqlStore",
    "StatementBuilder",
    "TableRepository",
    "TombstoneRepository",
]
