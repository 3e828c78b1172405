"""SQLAlchemy table definitions shared by the local and remote stores."""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import (BigInteger, Column, Double, Integer, MetaData, Table,
                        Text, create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.schema import CreateTable

from coppermind_sync.exceptions import ErrorCode, SchemaError
from coppermind_sync.models.schema import REGISTRY, TOMBSTONE_TABLE

logger = logging.getLogger(__name__)

metadata = MetaData()

notes = Table(
    "notes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("title", Text),
    Column("content", Text),
    Column("created_at", BigInteger),
    Column("updated_at", BigInteger),
    Column("parent_id", Text),
    Column("position", Integer),
    Column("source_urls", Text),
)

todos = Table(
    "todos",
    metadata,
    Column("id", Text, primary_key=True),
    Column("text", Text),
    Column("completed", Integer),
    Column("description", Text),
    Column("priority", Text),
    Column("labels", Text),
    Column("urgent", Integer),
    Column("due_date", BigInteger),
    Column("created_at", BigInteger),
)

sticky_notes = Table(
    "sticky_notes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("note_id", Text),
    Column("content", Text),
    Column("color", Text),
    Column("x", Double),
    Column("y", Double),
    Column("created_at", BigInteger),
    Column("type", Text),
    Column("rotation", Double),
    Column("scale", Double),
    Column("updated_at", BigInteger),
)

nodes = Table(
    "nodes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("type", Text),
    Column("data", Text),
    Column("position_x", Double),
    Column("position_y", Double),
    Column("created_at", BigInteger),
    Column("updated_at", BigInteger),
)

edges = Table(
    "edges",
    metadata,
    Column("id", Text, primary_key=True),
    Column("source", Text),
    Column("target", Text),
    Column("type", Text),
    Column("created_at", BigInteger),
    Column("updated_at", BigInteger),
)

journal_entries = Table(
    "journal_entries",
    metadata,
    Column("id", Text, primary_key=True),
    Column("date", Text, nullable=False, unique=True),
    Column("expected_schedule_image", Text, nullable=False, server_default=""),
    Column("actual_schedule_image", Text, nullable=False, server_default=""),
    Column("reflection_text", Text, nullable=False, server_default=""),
    Column("expected_schedule_data", Text),
    Column("actual_schedule_data", Text),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
)

deleted_items = Table(
    TOMBSTONE_TABLE,
    metadata,
    Column("id", Text, primary_key=True),
    Column("table_name", Text, nullable=False),
    Column("deleted_at", BigInteger, nullable=False),
)

# Columns added after the first release. Stores created by older clients
# gain them through ALTER TABLE probes on every bootstrap.
ADDITIVE_COLUMNS: List[Tuple[str, str]] = [
    ("notes", "parent_id"),
    ("notes", "position"),
    ("notes", "source_urls"),
    ("todos", "description"),
    ("todos", "priority"),
    ("todos", "labels"),
    ("todos", "urgent"),
    ("todos", "due_date"),
    ("todos", "created_at"),
    ("sticky_notes", "type"),
    ("sticky_notes", "rotation"),
    ("sticky_notes", "scale"),
    ("sticky_notes", "updated_at"),
    ("nodes", "updated_at"),
    ("edges", "updated_at"),
    ("journal_entries", "expected_schedule_data"),
    ("journal_entries", "actual_schedule_data"),
]

_DUPLICATE_COLUMN_MARKERS = ("duplicate column", "already exists")


def _is_duplicate_column_error(error: DBAPIError) -> bool:
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in _DUPLICATE_COLUMN_MARKERS)


def create_tables(engine: Engine) -> None:
    """Issue CREATE TABLE IF NOT EXISTS for every synchronized table.

    Raises:
        SchemaError: If any DDL statement fails.
    """
    for table in metadata.sorted_tables:
        try:
            with engine.begin() as conn:
                conn.execute(CreateTable(table, if_not_exists=True))
        except SQLAlchemyError as e:
            raise SchemaError(
                f"Failed to create table {table.name}",
                table=table.name,
                code=ErrorCode.SCHEMA_BOOTSTRAP_FAILED,
                original_error=e,
            )


def add_missing_columns(engine: Engine) -> int:
    """Run the additive column migrations.

    Each ALTER TABLE runs in its own transaction; PostgreSQL aborts the
    whole transaction on the first failing statement. "Column already
    exists" failures are expected and swallowed, anything else is raised.

    Returns:
        Number of columns actually added.
    """
    added = 0
    for table_name, column_name in ADDITIVE_COLUMNS:
        column = metadata.tables[table_name].c[column_name]
        column_type = column.type.compile(dialect=engine.dialect)
        statement = f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_type}"
        try:
            with engine.begin() as conn:
                conn.exec_driver_sql(statement)
            added += 1
            logger.info("Migration: added %s.%s", table_name, column_name)
        except DBAPIError as e:
            if _is_duplicate_column_error(e):
                continue
            raise SchemaError(
                f"Migration failed for {table_name}.{column_name}",
                table=table_name,
                code=ErrorCode.SCHEMA_BOOTSTRAP_FAILED,
                original_error=e,
            )
    return added


def ensure_schema(engine: Engine) -> None:
    """Bring a store up to the current schema. Idempotent."""
    create_tables(engine)
    added = add_missing_columns(engine)
    logger.debug(
        "Schema ensured on %s (%d tables, %d columns added)",
        engine.dialect.name, len(REGISTRY) + 1, added,
    )


def create_store_engine(url: str, connect_timeout: Optional[int] = None) -> Engine:
    """Create an engine for either store.

    SQLite connections get WAL journaling and NORMAL synchronous mode for
    crash resilience; server databases get pre-ping and a connect timeout.
    """
    is_sqlite = url.startswith("sqlite")
    connect_args = {}
    if connect_timeout is not None:
        if is_sqlite:
            connect_args["timeout"] = connect_timeout
        else:
            connect_args["connect_timeout"] = connect_timeout

    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args=connect_args,
    )

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return engine


def init_local_db(url: str) -> Engine:
    """Open the embedded store and make sure every table exists."""
    engine = create_store_engine(url)
    ensure_schema(engine)
    return engine
