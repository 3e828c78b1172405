"""Schema registry and row model for the synchronized tables."""

import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from coppermind_sync.exceptions import ErrorCode, SchemaError

logger = logging.getLogger(__name__)

# Column carrying the last-modification time (epoch milliseconds)
TIMESTAMP_COLUMN = "updated_at"

# Every synchronized row and every tombstone is addressed by this column
ID_COLUMN = "id"

TOMBSTONE_TABLE = "deleted_items"
TOMBSTONE_COLUMNS = ("id", "table_name", "deleted_at")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def as_millis(value: Any) -> Optional[int]:
    """Coerce a stored timestamp to integer epoch milliseconds.

    Drivers hand back BIGINT columns as int, but rows written by older
    clients may carry floats, Decimals or numeric strings.

    Returns:
        The timestamp as an int, or None when the value is missing or
        not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return None
    return None


class TableSpec(BaseModel):
    """Static description of one synchronized table.

    Attributes:
        name: Table name, identical in both stores.
        columns: Ordered column list shared by both stores.
        merge_key: Column used to pair a local row with its remote counterpart.
        has_timestamp: Whether the table carries ``updated_at`` for
            last-write-wins comparison.
        json_columns: Columns holding JSON-serialized text.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    columns: Tuple[str, ...]
    merge_key: str = ID_COLUMN
    has_timestamp: bool = True
    json_columns: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _validate_columns(self) -> "TableSpec":
        if not self.name.isidentifier():
            raise ValueError(f"Invalid table name: {self.name!r}")
        if len(set(self.columns)) != len(self.columns):
            raise ValueError(f"Duplicate columns in table {self.name}")
        for col in self.columns:
            if not col.isidentifier():
                raise ValueError(f"Invalid column name {col!r} in table {self.name}")
        if ID_COLUMN not in self.columns:
            raise ValueError(f"Table {self.name} must have an '{ID_COLUMN}' column")
        if self.merge_key not in self.columns:
            raise ValueError(
                f"Merge key {self.merge_key!r} is not a column of {self.name}"
            )
        if self.has_timestamp != (TIMESTAMP_COLUMN in self.columns):
            raise ValueError(
                f"Table {self.name}: has_timestamp must match presence of "
                f"'{TIMESTAMP_COLUMN}' column"
            )
        unknown = set(self.json_columns) - set(self.columns)
        if unknown:
            raise ValueError(
                f"JSON columns {sorted(unknown)} are not columns of {self.name}"
            )
        return self


# Registry order is the sync order.
REGISTRY: List[TableSpec] = [
    TableSpec(
        name="notes",
        columns=(
            "id", "title", "content", "created_at", "updated_at",
            "parent_id", "position", "source_urls",
        ),
        json_columns=("source_urls",),
    ),
    TableSpec(
        name="todos",
        columns=(
            "id", "text", "completed", "description", "priority",
            "labels", "urgent", "due_date", "created_at",
        ),
        has_timestamp=False,
        json_columns=("labels",),
    ),
    TableSpec(
        name="sticky_notes",
        columns=(
            "id", "note_id", "content", "color", "x", "y", "created_at",
            "type", "rotation", "scale", "updated_at",
        ),
    ),
    TableSpec(
        name="nodes",
        columns=(
            "id", "type", "data", "position_x", "position_y",
            "created_at", "updated_at",
        ),
        json_columns=("data",),
    ),
    TableSpec(
        name="edges",
        columns=("id", "source", "target", "type", "created_at", "updated_at"),
    ),
    # Keyed by date: both devices may create the entry for the same day
    # with different ids.
    TableSpec(
        name="journal_entries",
        columns=(
            "id", "date", "expected_schedule_image", "actual_schedule_image",
            "reflection_text", "expected_schedule_data", "actual_schedule_data",
            "created_at", "updated_at",
        ),
        merge_key="date",
        json_columns=("expected_schedule_data", "actual_schedule_data"),
    ),
]

_REGISTRY_BY_NAME: Dict[str, TableSpec] = {spec.name: spec for spec in REGISTRY}


def get_table(name: str) -> TableSpec:
    """Look up a synchronized table by name.

    Raises:
        SchemaError: If the table is not part of the registry.
    """
    try:
        return _REGISTRY_BY_NAME[name]
    except KeyError:
        raise SchemaError(
            f"Table '{name}' is not synchronized",
            table=name,
            code=ErrorCode.SCHEMA_UNKNOWN_TABLE,
        ) from None


def _normalize_json(spec: TableSpec, column: str, value: Any) -> Any:
    """Bring a JSON column to its stored text form."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    if isinstance(value, str):
        try:
            json.loads(value)
        except ValueError:
            logger.debug(
                "Column %s.%s holds non-JSON text; passing it through unchanged",
                spec.name, column,
            )
    return value


class Row(Mapping):
    """A row of a synchronized table, keyed in registry column order.

    Columns the source store did not return are held as None, so rows read
    from a store that has not gained a new column yet stay comparable.
    """

    __slots__ = ("spec", "_values")

    def __init__(self, spec: TableSpec, values: Mapping):
        self.spec = spec
        self._values: Dict[str, Any] = {}
        for col in spec.columns:
            value = values.get(col)
            if value is not None and col in spec.json_columns:
                value = _normalize_json(spec, col, value)
            self._values[col] = value

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.spec.columns)

    def __len__(self) -> int:
        return len(self.spec.columns)

    def __repr__(self) -> str:
        return f"<Row({self.spec.name} {self.spec.merge_key}={self.merge_value!r})>"

    @property
    def id(self) -> Any:
        return self._values[ID_COLUMN]

    @property
    def merge_value(self) -> Any:
        return self._values[self.spec.merge_key]

    @property
    def merge_token(self) -> str:
        """Merge key as text, so int and str ids from different drivers pair up."""
        return str(self.merge_value)

    @property
    def updated_at(self) -> Optional[int]:
        if not self.spec.has_timestamp:
            return None
        return as_millis(self._values[TIMESTAMP_COLUMN])

    def present_columns(self) -> Tuple[str, ...]:
        """Columns holding a non-null value, in registry order."""
        return tuple(c for c in self.spec.columns if self._values[c] is not None)

    def values_for(self, columns: Tuple[str, ...]) -> Tuple[Any, ...]:
        return tuple(self._values[c] for c in columns)


@dataclass(frozen=True)
class Tombstone:
    """Marker recording that a row was deleted at ``deleted_at`` (epoch ms)."""

    id: str
    table_name: str
    deleted_at: int

    @classmethod
    def from_record(cls, record: Mapping) -> "Tombstone":
        deleted_at = as_millis(record["deleted_at"])
        return cls(
            id=str(record["id"]),
            table_name=str(record["table_name"]),
            deleted_at=deleted_at if deleted_at is not None else 0,
        )
