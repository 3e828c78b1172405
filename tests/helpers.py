"""Direct SQL helpers for arranging and inspecting test databases.

These bypass the repositories under test so assertions check what is
really stored. Both test stores are SQLite, so '?' placeholders are used.
"""
from typing import Any, Dict, List, Optional

from coppermind_sync.storage.adapters import Store


def insert_row(store: Store, table: str, **values: Any) -> None:
    columns = ", ".join(values)
    marks = ", ".join("?" for _ in values)
    store.execute(
        f"INSERT INTO {table} ({columns}) VALUES ({marks})", tuple(values.values())
    )


def fetch_row(store: Store, table: str, row_id: str) -> Optional[Dict[str, Any]]:
    rows = store.query(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
    return rows[0] if rows else None


def fetch_all(store: Store, table: str) -> List[Dict[str, Any]]:
    return store.query(f"SELECT * FROM {table} ORDER BY id")


def insert_tombstone(store: Store, row_id: str, table: str, deleted_at: int) -> None:
    insert_row(store, "deleted_items", id=row_id, table_name=table, deleted_at=deleted_at)


def fetch_tombstone(store: Store, row_id: str) -> Optional[Dict[str, Any]]:
    rows = store.query("SELECT * FROM deleted_items WHERE id = ?", (row_id,))
    return rows[0] if rows else None


def count_rows(store: Store, table: str) -> int:
    return store.query(f"SELECT COUNT(*) AS n FROM {table}")[0]["n"]


def note(row_id: str, updated_at: int, **extra: Any) -> Dict[str, Any]:
    """Column values for a notes row."""
    values = {
        "id": row_id,
        "title": f"Note {row_id}",
        "content": f"Content of {row_id}",
        "created_at": 1,
        "updated_at": updated_at,
    }
    values.update(extra)
    return values
