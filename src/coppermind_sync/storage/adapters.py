"""Store adapters: the capability surface the reconcilers need from each side."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from coppermind_sync.exceptions import ErrorCode, StorageError

logger = logging.getLogger(__name__)


class Store(ABC):
    """Minimal statement interface over one database.

    Statements are raw SQL in the store's own placeholder dialect (see
    ``paramstyle``) with positional arguments.
    """

    name: str = "store"

    @property
    @abstractmethod
    def paramstyle(self) -> str:
        """DBAPI paramstyle of the underlying driver (e.g. 'qmark')."""

    @abstractmethod
    def execute(self, statement: str, args: Sequence[Any] = ()) -> int:
        """Run DDL or mutating DML.

        Returns:
            Number of affected rows, when the driver reports it.

        Raises:
            StorageError: If the statement fails.
        """

    @abstractmethod
    def query(self, statement: str, args: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Run a SELECT and return its rows as column-name mappings.

        Raises:
            StorageError: If the statement fails or the connection is lost.
        """

    def ping(self) -> bool:
        """Check that the store still answers."""
        try:
            self.query("SELECT 1")
            return True
        except StorageError:
            return False

    def dispose(self) -> None:
        """Release pooled connections."""


class SqlStore(Store):
    """Store backed by a SQLAlchemy engine.

    Statements go straight to the DBAPI cursor via ``exec_driver_sql`` so
    they keep the driver's native placeholder syntax. Each call runs in its
    own transaction; a failed upsert never rolls back earlier ones.
    """

    def __init__(self, engine: Engine, name: str):
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine for the database.
            name: Short label used in logs and errors ("local", "remote").
        """
        self.engine = engine
        self.name = name

    @property
    def paramstyle(self) -> str:
        return self.engine.dialect.paramstyle

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def execute(self, statement: str, args: Sequence[Any] = ()) -> int:
        try:
            with self.engine.begin() as conn:
                result = conn.exec_driver_sql(statement, tuple(args) if args else None)
                return result.rowcount
        except SQLAlchemyError as e:
            raise StorageError(
                f"Statement failed on {self.name} store",
                store=self.name,
                operation=_verb(statement),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            )

    def query(self, statement: str, args: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                result = conn.exec_driver_sql(statement, tuple(args) if args else None)
                return [dict(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            raise StorageError(
                f"Query failed on {self.name} store",
                store=self.name,
                operation=_verb(statement),
                code=ErrorCode.STORAGE_QUERY_FAILED,
                original_error=e,
            )

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.debug("Ping failed on %s store: %s", self.name, e)
            return False

    def dispose(self) -> None:
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"<SqlStore(name='{self.name}', dialect='{self.dialect_name}')>"


def _verb(statement: str) -> Optional[str]:
    """First keyword of a statement, for error context."""
    parts = statement.split(None, 1)
    return parts[0].upper() if parts else None
