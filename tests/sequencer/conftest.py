"""Shared pytest fixtures for sequencer tests."""

from pathlib import Path

import pytest

from sequencer.discovery import OperationDiscovery, OperationLoader
from sequencer.dispatch import InMemoryQueue
from sequencer.lock import DistributedLock, InMemoryLockBackend, LockConfiguration
from sequencer.rollback import RollbackCoordinator
from sequencer.runner import OperationRunner
from sequencer.services import SequencerServices, build_services
from sequencer.settings import SequencerConfig
from sequencer.store import InMemoryStateStore, StateStoreConfiguration

# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clear_sequencer_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep SEQUENCER_* variables from the host out of every test."""
    for name in (
        "SEQUENCER_STRATEGY",
        "SEQUENCER_DISCOVERY_PATHS",
        "SEQUENCER_STORE_BACKEND",
        "SEQUENCER_STORE_PATH",
        "SEQUENCER_LOCK_BACKEND",
        "SEQUENCER_LOCK_PATH",
        "SEQUENCER_ENV",
    ):
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Paths
# =============================================================================


@pytest.fixture
def operations_dir(tmp_path: Path) -> Path:
    """Directory holding generated operation files."""
    directory = tmp_path / "operations"
    directory.mkdir()
    return directory


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    """Event log written by generated operations."""
    return tmp_path / "events.log"


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def config(operations_dir: Path) -> SequencerConfig:
    """Configuration using in-memory store and lock backends."""
    return SequencerConfig(
        discovery_paths=[operations_dir],
        store=StateStoreConfiguration(backend="memory"),
        lock=LockConfiguration(backend="memory", timeout=1, ttl=30, poll_interval=0.05),
    )


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def loader() -> OperationLoader:
    return OperationLoader()


@pytest.fixture
def queue() -> InMemoryQueue:
    return InMemoryQueue()


@pytest.fixture
def runner(
    store: InMemoryStateStore, loader: OperationLoader, queue: InMemoryQueue
) -> OperationRunner:
    return OperationRunner(store, loader, transport=queue)


@pytest.fixture
def discovery(
    operations_dir: Path, store: InMemoryStateStore, loader: OperationLoader
) -> OperationDiscovery:
    return OperationDiscovery([operations_dir], store, loader)


@pytest.fixture
def rollback(store: InMemoryStateStore, loader: OperationLoader) -> RollbackCoordinator:
    return RollbackCoordinator(store, loader)


@pytest.fixture
def lock() -> DistributedLock:
    return DistributedLock(InMemoryLockBackend(), poll_interval=0.05)


@pytest.fixture
def services(config: SequencerConfig, store: InMemoryStateStore) -> SequencerServices:
    """Fully wired services sharing the ``store`` fixture."""
    return build_services(config, store=store)
