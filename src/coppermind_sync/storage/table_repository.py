"""Repository for reading and writing rows of one synchronized table."""
import logging
from typing import Dict, List, Optional, Tuple

from coppermind_sync.models.schema import Row, TableSpec, as_millis
from coppermind_sync.storage.adapters import Store
from coppermind_sync.storage.statements import StatementBuilder

logger = logging.getLogger(__name__)


class TableRepository:
    """Row access for one table on one store.

    Wraps a store with the table's statement templates so the reconcilers
    never assemble SQL themselves.
    """

    def __init__(self, store: Store, spec: TableSpec):
        """Initialize the table repository.

        Args:
            store: The store holding the table.
            spec: Registry entry describing the table.
        """
        self.store = store
        self.spec = spec
        self.statements = StatementBuilder(spec, store.paramstyle)

    @property
    def store_name(self) -> str:
        return self.store.name

    def fetch_all(self) -> List[Row]:
        records = self.store.query(self.statements.select_all)
        return [Row(self.spec, record) for record in records]

    def fetch_by_merge_key(self) -> Dict[str, Row]:
        """All rows of the table indexed by merge key text."""
        return {row.merge_token: row for row in self.fetch_all()}

    def get(self, row_id: str) -> Optional[Row]:
        records = self.store.query(self.statements.select_by_id, (row_id,))
        if not records:
            return None
        return Row(self.spec, records[0])

    def exists(self, row_id: str) -> bool:
        return bool(self.store.query(self.statements.exists_by_id, (row_id,)))

    def current_timestamp(self, row_id: str) -> Tuple[bool, Optional[int]]:
        """Read a row's ``updated_at`` as it is right now.

        Returns:
            ``(exists, updated_at)``; ``updated_at`` is None for missing rows,
            rows with a null timestamp, and tables without the column.
        """
        if self.statements.timestamp_by_id is None:
            return self.exists(row_id), None
        records = self.store.query(self.statements.timestamp_by_id, (row_id,))
        if not records:
            return False, None
        return True, as_millis(records[0].get("updated_at"))

    def upsert(self, row: Row) -> None:
        """Write a row, skipping its null columns."""
        columns = row.present_columns()
        self.store.execute(self.statements.upsert(columns), row.values_for(columns))

    def delete(self, row_id: str) -> int:
        return self.store.execute(self.statements.delete_by_id, (row_id,))
