"""Parameterized statement templates for synchronized tables.

Templates are built once per (table, placeholder dialect) and reused for
every row. Upserts only carry the columns a row actually has values for,
so the upsert template is selected by the row's set of non-null columns.
"""
import logging
from typing import Dict, Tuple

from coppermind_sync.exceptions import ErrorCode, StorageError
from coppermind_sync.models.schema import ID_COLUMN, TIMESTAMP_COLUMN, TableSpec

logger = logging.getLogger(__name__)

_POSITIONAL_MARKERS = {
    "qmark": lambda i: "?",
    "format": lambda i: "%s",
    "pyformat": lambda i: "%s",
    "numeric": lambda i: f":{i}",
    "numeric_dollar": lambda i: f"${i}",
}


def placeholder(paramstyle: str, position: int) -> str:
    """Render the 1-based positional placeholder for a driver paramstyle.

    Raises:
        StorageError: For named paramstyles, which take mappings rather
            than positional arguments.
    """
    try:
        marker = _POSITIONAL_MARKERS[paramstyle]
    except KeyError:
        raise StorageError(
            f"Unsupported placeholder style '{paramstyle}'",
            operation="build_statement",
            code=ErrorCode.STORAGE_UNSUPPORTED_DIALECT,
        ) from None
    return marker(position)


def placeholders(paramstyle: str, count: int, start: int = 1) -> str:
    """Comma-separated placeholders for ``count`` consecutive arguments."""
    return ", ".join(placeholder(paramstyle, start + i) for i in range(count))


class StatementBuilder:
    """Statement templates for one table in one placeholder dialect."""

    def __init__(self, spec: TableSpec, paramstyle: str):
        self.spec = spec
        self.paramstyle = paramstyle
        # Fail early on dialects we cannot render
        placeholder(paramstyle, 1)

        p1 = placeholder(paramstyle, 1)
        column_list = ", ".join(spec.columns)
        self.select_all = f"SELECT {column_list} FROM {spec.name}"
        self.select_by_id = f"{self.select_all} WHERE {ID_COLUMN} = {p1}"
        self.exists_by_id = f"SELECT {ID_COLUMN} FROM {spec.name} WHERE {ID_COLUMN} = {p1}"
        self.delete_by_id = f"DELETE FROM {spec.name} WHERE {ID_COLUMN} = {p1}"
        self.timestamp_by_id = (
            f"SELECT {TIMESTAMP_COLUMN} FROM {spec.name} WHERE {ID_COLUMN} = {p1}"
            if spec.has_timestamp
            else None
        )
        self._upserts: Dict[Tuple[str, ...], str] = {}

    def upsert(self, columns: Tuple[str, ...]) -> str:
        """Upsert template writing exactly ``columns``, keyed by the merge key.

        The merge key is left out of the SET clause. A row with nothing but
        its merge key becomes an insert-or-ignore.
        """
        statement = self._upserts.get(columns)
        if statement is not None:
            return statement

        if self.spec.merge_key not in columns:
            raise StorageError(
                f"Upsert into {self.spec.name} requires merge key '{self.spec.merge_key}'",
                operation="build_statement",
                code=ErrorCode.STORAGE_WRITE_FAILED,
            )
        unknown = [c for c in columns if c not in self.spec.columns]
        if unknown:
            raise StorageError(
                f"Columns {unknown} are not part of {self.spec.name}",
                operation="build_statement",
                code=ErrorCode.STORAGE_WRITE_FAILED,
            )

        updates = ", ".join(
            f"{c} = excluded.{c}" for c in columns if c != self.spec.merge_key
        )
        action = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"
        statement = (
            f"INSERT INTO {self.spec.name} ({', '.join(columns)}) "
            f"VALUES ({placeholders(self.paramstyle, len(columns))}) "
            f"ON CONFLICT ({self.spec.merge_key}) {action}"
        )
        self._upserts[columns] = statement
        logger.debug("Built upsert template for %s: %s", self.spec.name, statement)
        return statement
