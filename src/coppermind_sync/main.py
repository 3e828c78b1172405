#!/usr/bin/env python
"""Command line entry point for the Coppermind sync engine."""
import argparse
import json
import logging
import os
import sys
import threading
from pathlib import Path

from coppermind_sync import __version__
from coppermind_sync.config import config
from coppermind_sync.exceptions import CoppermindError
from coppermind_sync.models.db_models import init_local_db
from coppermind_sync.models.sync_result import SyncOutcome, SyncSummary
from coppermind_sync.observability import configure_logging, metrics
from coppermind_sync.services.soft_delete import soft_delete
from coppermind_sync.services.sync_session import SyncSession
from coppermind_sync.storage.adapters import SqlStore

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="coppermind-sync",
        description="Synchronize the Coppermind local database with a remote database",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--local-db",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("COPPERMIND_LOCAL_DB_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("COPPERMIND_LOG_LEVEL", "INFO")
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("sync", help="Run one sync pass now")
    commands.add_parser("status", help="Show configuration and connectivity")
    commands.add_parser("watch", help="Sync on startup and then on the configured interval")
    delete = commands.add_parser("delete", help="Delete a row and record its tombstone")
    delete.add_argument("table", help="Synchronized table name")
    delete.add_argument("row_id", help="Row id")
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.local_db:
        config.local_db_path = Path(args.local_db)


def _print_notification(summary: SyncSummary) -> None:
    level, title, description = summary.notification()
    print(f"[{level}] {title}: {description}")


def _run_sync(session: SyncSession) -> int:
    summary = session.run_sync()
    _print_notification(summary)
    for table in summary.failed_tables:
        print(f"  {table.table}: {table.error}", file=sys.stderr)
    if summary.sweep is not None and not summary.sweep.ok:
        print(f"  retention sweep: {summary.sweep.error}", file=sys.stderr)
    return 1 if summary.outcome is SyncOutcome.FAILED else 0


def _show_status(session: SyncSession, cfg) -> int:
    if session.enabled:
        try:
            session.connect()
        except CoppermindError as e:
            logger.warning("Status check could not connect: %s", e)
    status = session.get_status()
    status["local_db"] = str(cfg.get_absolute_path(cfg.local_db_path))
    status["tombstone_retention_days"] = cfg.tombstone_retention_days
    status["metrics"] = metrics.get_summary()
    print(json.dumps(status, indent=2, default=str))
    return 0


def _delete(local: SqlStore, table: str, row_id: str) -> int:
    try:
        tombstone = soft_delete(local, table, row_id)
    except CoppermindError as e:
        logger.error("Delete failed: %s", e)
        return 1
    print(f"Deleted {tombstone.table_name}/{tombstone.id} at {tombstone.deleted_at}")
    return 0


def _watch(session: SyncSession) -> int:
    if not session.enabled:
        print("Sync disabled: no remote database configured", file=sys.stderr)
        return 1
    session.start(run_initial=True)
    stop = threading.Event()
    try:
        stop.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


def main(argv=None):
    """Run the sync command line."""
    args = parse_args(argv)
    update_config(args)
    cfg = config

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=cfg.log_dir, level=log_level, console=True)
        logger.info("Persistent logging enabled: %s", log_dir)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning("Failed to configure file logging: %s", e)

    try:
        local_url = cfg.get_local_db_url()
        logger.info("Using SQLite database: %s", local_url)
        local = SqlStore(init_local_db(local_url), "local")
    except (CoppermindError, OSError) as e:
        logger.error("Failed to initialize local database: %s", e)
        return 1

    try:
        if args.command == "delete":
            return _delete(local, args.table, args.row_id)

        session = SyncSession.from_config(local, cfg)
        try:
            if args.command == "sync":
                return _run_sync(session)
            if args.command == "status":
                return _show_status(session, cfg)
            return _watch(session)
        finally:
            session.teardown()
    finally:
        local.dispose()


if __name__ == "__main__":
    sys.exit(main())
