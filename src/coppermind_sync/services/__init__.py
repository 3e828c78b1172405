"""Reconciliation and session services for the Coppermind sync engine."""

from coppermind_sync.services.row_reconciler import RowReconciler
from coppermind_sync.services.soft_delete import is_deleted, soft_delete
from coppermind_sync.services.sync_orchestrator import SyncOrchestrator
from coppermind_sync.services.sync_session import ConnectionState, SyncSession
from coppermind_sync.services.tombstone_reconciler import TombstoneReconciler

__all__ = [
    "ConnectionState",
    "RowReconciler",
    "SyncOrchestrator",
    "SyncSession",
    "TombstoneReconciler",
    "is_deleted",
    "soft_delete",
]
