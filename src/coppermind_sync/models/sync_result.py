"""Result types reported by reconcilers and sync passes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class SyncOutcome(str, Enum):
    """Overall result of one sync pass."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"
    DISABLED = "disabled"
    SKIPPED = "skipped"


@dataclass
class RowResult:
    """Row upserts performed for one table."""
    pulled: int = 0
    pushed: int = 0


@dataclass
class TombstoneResult:
    """Deletion propagation performed for one table."""
    tombstones_pulled: int = 0
    tombstones_pushed: int = 0
    deleted_local: int = 0
    deleted_remote: int = 0
    rejected: int = 0
    resurrected: int = 0
    purged: int = 0


@dataclass
class TableResult:
    """Everything a pass did to one table, or the error that stopped it."""
    table: str
    pulled: int = 0
    pushed: int = 0
    deleted: int = 0
    resurrected: int = 0
    tombstones_pulled: int = 0
    tombstones_pushed: int = 0
    purged: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def add_rows(self, result: RowResult) -> None:
        self.pulled += result.pulled
        self.pushed += result.pushed

    def add_tombstones(self, result: TombstoneResult) -> None:
        self.deleted += result.deleted_local + result.deleted_remote
        self.resurrected += result.resurrected
        self.tombstones_pulled += result.tombstones_pulled
        self.tombstones_pushed += result.tombstones_pushed
        self.purged += result.purged


@dataclass
class SyncSummary:
    """User-facing report of one sync pass."""
    outcome: SyncOutcome
    tables: List[TableResult] = field(default_factory=list)
    elapsed_ms: float = 0.0
    purged: int = 0
    error: Optional[str] = None
    sweep: Optional[TableResult] = None

    @property
    def total_pulled(self) -> int:
        return sum(t.pulled for t in self.tables)

    @property
    def total_pushed(self) -> int:
        return sum(t.pushed for t in self.tables)

    @property
    def total_deleted(self) -> int:
        return sum(t.deleted for t in self.tables)

    @property
    def failed_tables(self) -> List[TableResult]:
        return [t for t in self.tables if not t.ok]

    @property
    def synced_table_count(self) -> int:
        return len(self.tables) - len(self.failed_tables)

    @classmethod
    def from_tables(
        cls,
        tables: List[TableResult],
        elapsed_ms: float,
        sweep: Optional[TableResult] = None,
    ) -> "SyncSummary":
        """Derive the outcome from per-table results.

        Only synchronized tables decide between complete, partial and failed.
        A failed retention sweep turns an otherwise complete pass into a
        partial one but never makes a pass fail.
        """
        failed = [t for t in tables if not t.ok]
        if failed and len(failed) == len(tables):
            outcome = SyncOutcome.FAILED
        elif failed or (sweep is not None and not sweep.ok):
            outcome = SyncOutcome.PARTIAL
        else:
            outcome = SyncOutcome.COMPLETE
        error = None
        if outcome is SyncOutcome.FAILED:
            error = failed[0].error
        purged = sum(t.purged for t in tables)
        if sweep is not None:
            purged += sweep.purged
        return cls(
            outcome=outcome,
            tables=tables,
            elapsed_ms=elapsed_ms,
            purged=purged,
            error=error,
            sweep=sweep,
        )

    def notification(self) -> Tuple[str, str, str]:
        """Render the pass as a ``(level, title, description)`` notification."""
        elapsed = f"{self.elapsed_ms:.0f}ms"
        if self.outcome is SyncOutcome.COMPLETE:
            return (
                "success",
                "Sync complete",
                f"↓{self.total_pulled} pulled, ↑{self.total_pushed} pushed ({elapsed})",
            )
        if self.outcome is SyncOutcome.PARTIAL:
            return (
                "warning",
                "Partial sync",
                f"{self.synced_table_count}/{len(self.tables)} tables synced "
                f"(↓{self.total_pulled} ↑{self.total_pushed}, {elapsed})",
            )
        if self.outcome is SyncOutcome.DISABLED:
            return ("info", "Sync disabled", "No remote database configured")
        if self.outcome is SyncOutcome.SKIPPED:
            return ("info", "Sync in progress", "A sync pass is already running")
        return ("error", "Sync failed", self.error or "Unknown error")
