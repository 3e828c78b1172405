"""Common test fixtures for the Coppermind sync engine."""

import pytest

from coppermind_sync.config import config
from coppermind_sync.models.db_models import init_local_db
from coppermind_sync.observability import metrics
from coppermind_sync.services.sync_orchestrator import SyncOrchestrator
from coppermind_sync.storage.adapters import SqlStore

# Fixed "now" for tests that use small literal timestamps. Far below the
# retention window, so nothing is purged unless a test moves the clock.
FIXED_NOW = 10_000


def fixed_clock() -> int:
    return FIXED_NOW


def _sqlite_store(path, name):
    engine = init_local_db(f"sqlite:///{path}")
    return SqlStore(engine, name)


@pytest.fixture
def local_store(tmp_path):
    """Embedded store backed by a temporary SQLite file."""
    store = _sqlite_store(tmp_path / "local.db", "local")
    yield store
    store.dispose()


@pytest.fixture
def remote_store(tmp_path):
    """Stand-in for the remote database, a second SQLite file."""
    store = _sqlite_store(tmp_path / "remote.db", "remote")
    yield store
    store.dispose()


@pytest.fixture
def orchestrator(local_store, remote_store):
    """Orchestrator over the two test stores with a fixed clock."""
    return SyncOrchestrator(local_store, remote_store, clock=fixed_clock)


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "local_db_path", tmp_path / "local.db")
    monkeypatch.setattr(config, "remote_url", None)
    monkeypatch.setattr(config, "log_dir", tmp_path / "logs")
    yield config


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()
