"""Remote connection lifecycle and scheduling for sync passes.

One ``SyncSession`` is built at process start. It owns the remote
connection, the single-flight guard and the recurring timer, and is torn
down explicitly when the application exits.
"""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine

from coppermind_sync.config import (DEFAULT_SYNC_INTERVAL,
                                    DEFAULT_TOMBSTONE_RETENTION_DAYS, SyncConfig,
                                    mask_url)
from coppermind_sync.exceptions import ConfigurationError, SyncConnectionError
from coppermind_sync.models.db_models import create_store_engine, ensure_schema
from coppermind_sync.models.schema import TableSpec, now_ms
from coppermind_sync.models.sync_result import SyncOutcome, SyncSummary
from coppermind_sync.services.sync_orchestrator import SyncOrchestrator
from coppermind_sync.services.tombstone_reconciler import DAY_MS
from coppermind_sync.storage.adapters import SqlStore, Store

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle of the remote connection."""

    UNCONFIGURED = "unconfigured"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SyncSession:
    """Owns the remote connection and runs sync passes one at a time."""

    def __init__(
        self,
        local: Store,
        remote_url: Optional[str] = None,
        interval: int = DEFAULT_SYNC_INTERVAL,
        retention_days: int = DEFAULT_TOMBSTONE_RETENTION_DAYS,
        connect_timeout: int = 10,
        on_summary: Optional[Callable[[SyncSummary], None]] = None,
        tables: Optional[Iterable[TableSpec]] = None,
        engine_factory: Callable[[str, int], Engine] = create_store_engine,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the session. Nothing connects until first use.

        Args:
            local: The embedded store.
            remote_url: Remote connection string; None disables sync.
            interval: Seconds between scheduled passes.
            retention_days: Tombstone retention window.
            connect_timeout: Seconds to wait when opening the connection.
            on_summary: Called with every pass summary (notification hook).
            tables: Tables to synchronize; defaults to the full registry.
            engine_factory: Builds the remote engine from URL and timeout.
            clock: Source of the current time in epoch milliseconds.
        """
        if interval < 1:
            raise ConfigurationError(
                "Sync interval must be at least one second", config_key="sync_interval"
            )
        if retention_days < 1:
            raise ConfigurationError(
                "Tombstone retention must be at least one day",
                config_key="tombstone_retention_days",
            )

        self._local = local
        self._remote_url = remote_url
        self._interval = interval
        self._retention_ms = retention_days * DAY_MS
        self._connect_timeout = connect_timeout
        self._on_summary = on_summary
        self._tables = list(tables) if tables is not None else None
        self._engine_factory = engine_factory
        self._clock = clock

        self._remote: Optional[SqlStore] = None
        self._orchestrator: Optional[SyncOrchestrator] = None
        self._state = ConnectionState.UNCONFIGURED
        self._sync_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._stopped = False
        self._last_error: Optional[str] = None
        self._last_summary: Optional[SyncSummary] = None
        self._last_sync_time: Optional[datetime] = None

    @classmethod
    def from_config(
        cls, local: Store, cfg: SyncConfig, **kwargs: Any
    ) -> "SyncSession":
        """Build a session from the application configuration."""
        return cls(
            local,
            remote_url=cfg.remote_url,
            interval=cfg.sync_interval,
            retention_days=cfg.tombstone_retention_days,
            connect_timeout=cfg.connect_timeout,
            **kwargs,
        )

    @property
    def enabled(self) -> bool:
        return self._remote_url is not None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def remote(self) -> Optional[SqlStore]:
        return self._remote

    @property
    def last_summary(self) -> Optional[SyncSummary]:
        return self._last_summary

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._remote is not None

    # =========================================================================
    # Connection
    # =========================================================================

    def connect(self) -> bool:
        """Open the remote connection and bring its schema up to date.

        Returns:
            True when connected, False when sync is not configured.

        Raises:
            SyncConnectionError: If the database cannot be reached or its
                schema cannot be created.
        """
        if not self.enabled:
            logger.warning("Remote database URL not set, sync disabled")
            return False
        if self.is_connected():
            return True

        self._state = ConnectionState.CONNECTING
        masked = mask_url(self._remote_url)
        logger.info("Connecting to remote database %s", masked)

        engine = None
        try:
            engine = self._engine_factory(self._remote_url, self._connect_timeout)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            ensure_schema(engine)
        except Exception as e:
            if engine is not None:
                engine.dispose()
            self._state = ConnectionState.DISCONNECTED
            self._last_error = str(e)
            logger.error("Remote connection failed: %s", e)
            raise SyncConnectionError(
                "Could not connect to remote database",
                url_hint=masked,
                original_error=e,
            ) from e

        self._remote = SqlStore(engine, "remote")
        self._orchestrator = SyncOrchestrator(
            self._local,
            self._remote,
            tables=self._tables,
            retention_ms=self._retention_ms,
            clock=self._clock,
        )
        self._state = ConnectionState.CONNECTED
        self._last_error = None
        logger.info("Connected to remote database; schema ensured")
        return True

    def _drop_connection(self) -> None:
        if self._remote is not None:
            self._remote.dispose()
        self._remote = None
        self._orchestrator = None
        self._state = ConnectionState.DISCONNECTED

    # =========================================================================
    # Sync passes
    # =========================================================================

    def run_sync(self) -> SyncSummary:
        """Run one pass unless another is in flight.

        Concurrent callers are rejected with a ``skipped`` summary rather
        than queued. Never raises for connectivity problems; they come back
        as a ``failed`` summary.
        """
        if not self.enabled:
            return self._report(SyncSummary(outcome=SyncOutcome.DISABLED))

        if not self._sync_lock.acquire(blocking=False):
            logger.info("Sync already in progress, skipping")
            return self._report(SyncSummary(outcome=SyncOutcome.SKIPPED))

        try:
            if not self.is_connected():
                try:
                    self.connect()
                except SyncConnectionError as e:
                    return self._report(
                        SyncSummary(outcome=SyncOutcome.FAILED, error=str(e))
                    )

            summary = self._orchestrator.run_pass()
            self._last_sync_time = datetime.now(timezone.utc)

            if summary.outcome is SyncOutcome.FAILED and not self._remote.ping():
                logger.warning("Remote database stopped answering; dropping connection")
                self._last_error = summary.error
                self._drop_connection()
            return self._report(summary)
        finally:
            self._sync_lock.release()

    def _report(self, summary: SyncSummary) -> SyncSummary:
        self._last_summary = summary
        level, title, description = summary.notification()
        log_level = {
            "success": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }.get(level, logging.DEBUG)
        logger.log(log_level, "%s: %s", title, description)

        if self._on_summary is not None:
            try:
                self._on_summary(summary)
            except Exception as e:
                logger.error("Sync summary callback failed: %s", e, exc_info=True)
        return summary

    # =========================================================================
    # Scheduling
    # =========================================================================

    def start(self, run_initial: bool = True) -> Optional[SyncSummary]:
        """Run the startup pass and arm the recurring timer.

        Does nothing when sync is not configured. A failed first connection
        still arms the timer so later passes can retry.

        Returns:
            The startup pass summary, if one ran.
        """
        if not self.enabled:
            logger.warning("Remote database URL not set, sync disabled")
            return None

        with self._timer_lock:
            self._stopped = False

        summary = None
        if run_initial:
            summary = self.run_sync()
        self._schedule_next()
        logger.info("Scheduled sync every %d minutes", self._interval // 60)
        return summary

    def _schedule_next(self) -> None:
        with self._timer_lock:
            if self._stopped:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._interval, self._on_timer)
            self._timer.daemon = True
            self._timer.start()

    def _on_timer(self) -> None:
        """Called by timer. Runs a pass and re-arms."""
        try:
            self.run_sync()
        except Exception as e:
            logger.error("Scheduled sync failed: %s", e, exc_info=True)
        finally:
            self._schedule_next()

    def teardown(self) -> None:
        """Cancel the timer and close the remote connection.

        Waits for a pass in flight to finish; passes are never interrupted.
        """
        with self._timer_lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        with self._sync_lock:
            self._drop_connection()
        logger.info("Sync session stopped")

    def get_status(self) -> Dict[str, Any]:
        """Get sync status information."""
        last = self._last_summary
        return {
            "enabled": self.enabled,
            "state": self._state.value,
            "connected": self.is_connected(),
            "remote_url": mask_url(self._remote_url),
            "interval_seconds": self._interval,
            "timer_armed": self._timer is not None,
            "last_outcome": last.outcome.value if last else None,
            "last_sync_time": (
                self._last_sync_time.isoformat() if self._last_sync_time else None
            ),
            "last_error": self._last_error,
        }
