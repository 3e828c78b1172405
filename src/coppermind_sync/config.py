"""Configuration module for the Coppermind sync engine."""

import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside the logs
_USER_ENV = Path.home() / ".coppermind" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Sync once an hour unless told otherwise
DEFAULT_SYNC_INTERVAL = 60 * 60

# Tombstones older than this are purged from both stores after every pass
DEFAULT_TOMBSTONE_RETENTION_DAYS = 30


def _remote_url_from_env() -> Optional[str]:
    """Read the remote connection string, treating blank values as unset."""
    url = os.getenv("COPPERMIND_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url is None or not url.strip():
        return None
    return url.strip()


def mask_url(url: Optional[str]) -> Optional[str]:
    """Hide the password portion of a connection URL for logging.

    Examples:
        "postgresql://me:secret@db:5432/app" -> "postgresql://me:***@db:5432/app"
    """
    if not url:
        return url
    parts = urlsplit(url)
    if parts.password is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{parts.username}:***@{host}" if parts.username else f"***@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class SyncConfig(BaseModel):
    """Configuration for the sync engine."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("COPPERMIND_BASE_DIR", "."))
    )
    # Embedded (local) database
    local_db_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("COPPERMIND_LOCAL_DB_PATH", "data/coppermind.db")
        )
    )
    # Remote database connection string. When unset, sync is disabled.
    remote_url: Optional[str] = Field(default_factory=_remote_url_from_env)
    # Seconds between scheduled sync passes
    sync_interval: int = Field(
        default_factory=lambda: int(
            os.getenv("COPPERMIND_SYNC_INTERVAL", str(DEFAULT_SYNC_INTERVAL))
        )
    )
    tombstone_retention_days: int = Field(
        default_factory=lambda: int(
            os.getenv(
                "COPPERMIND_TOMBSTONE_RETENTION_DAYS",
                str(DEFAULT_TOMBSTONE_RETENTION_DAYS),
            )
        )
    )
    # Seconds to wait when opening the remote connection
    connect_timeout: int = Field(
        default_factory=lambda: int(os.getenv("COPPERMIND_CONNECT_TIMEOUT", "10"))
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("COPPERMIND_LOG_DIR"))
            if os.getenv("COPPERMIND_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_sync_config(self) -> "SyncConfig":
        """Reject intervals and retention windows that cannot work."""
        if self.sync_interval < 1:
            raise ValueError("sync_interval must be >= 1 second")
        if self.tombstone_retention_days < 1:
            raise ValueError("tombstone_retention_days must be >= 1")
        if self.connect_timeout < 1:
            raise ValueError("connect_timeout must be >= 1 second")
        if self.sync_interval < 60:
            logger.warning(
                "Sync interval of %ds is very short; every pass reads all rows "
                "of every table on both sides.",
                self.sync_interval,
            )
        return self

    @property
    def sync_enabled(self) -> bool:
        """Sync runs only when a remote connection string is configured."""
        return self.remote_url is not None

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_local_db_url(self) -> str:
        """Get the database URL for the embedded SQLite store."""
        db_path = self.get_absolute_path(self.local_db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def masked_remote_url(self) -> Optional[str]:
        return mask_url(self.remote_url)


# Create a global config instance
config = SyncConfig()
