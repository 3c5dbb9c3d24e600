"""Assembly of sequencer collaborators from configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sequencer.discovery import MigrationSource, OperationDiscovery, OperationLoader
from sequencer.dispatch import InMemoryQueue
from sequencer.lock import DistributedLock, LockFactory
from sequencer.manager import SequencerManager
from sequencer.orchestrators import Orchestrator, create_orchestrator
from sequencer.rollback import RollbackCoordinator
from sequencer.runner import OperationRunner
from sequencer.settings import SequencerConfig
from sequencer.store import ExecutionStateStore, StateStoreFactory
from sequencer.transaction import TransactionManager
from sequencer.worker import QueueWorker

logger = logging.getLogger(__name__)


@dataclass
class SequencerServices:
    """Wired collaborators sharing one store, loader and queue."""

    config: SequencerConfig
    store: ExecutionStateStore
    loader: OperationLoader
    discovery: OperationDiscovery
    runner: OperationRunner
    rollback: RollbackCoordinator
    lock: DistributedLock
    queue: InMemoryQueue
    migrations: MigrationSource | None = None

    def orchestrator(self, strategy: str | None = None) -> Orchestrator:
        """Create the orchestrator for ``strategy`` (default: configured strategy)."""
        return create_orchestrator(
            strategy or self.config.strategy,
            self.discovery,
            self.runner,
            self.rollback,
            self.config,
            self.lock,
            self.migrations,
        )

    def manager(self) -> SequencerManager:
        """Create the programmatic facade."""
        return SequencerManager(self.runner, self.config.discovery_paths)

    def worker(self) -> QueueWorker:
        """Create a worker consuming the in-process queue."""
        return QueueWorker(self.queue, self.runner)


def build_services(  # noqa: PLR0913 - every collaborator is optional
    config: SequencerConfig,
    *,
    auto_transaction: bool | None = None,
    store: ExecutionStateStore | None = None,
    transactions: TransactionManager | None = None,
    migrations: MigrationSource | None = None,
    lock: DistributedLock | None = None,
) -> SequencerServices:
    """Wire every collaborator from configuration.

    Args:
        config: Sequencer configuration.
        auto_transaction: Overrides ``config.auto_transaction`` when given.
            Operations declaring ``WithinTransaction`` are wrapped regardless.
        store: State store to use instead of the configured backend.
        transactions: Source of transaction scopes.
        migrations: Source of infrastructure migrations.
        lock: Lock to use instead of the configured backend.

    """
    if store is None:
        store = StateStoreFactory(config.store).create()

    effective_auto_transaction = (
        config.auto_transaction if auto_transaction is None else auto_transaction
    )
    loader = OperationLoader()
    queue = InMemoryQueue()
    runner = OperationRunner(
        store,
        loader,
        transport=queue,
        transactions=transactions,
        auto_transaction=effective_auto_transaction,
        record_errors=config.errors.record,
        queue_name=config.queue.name,
    )

    logger.debug("Sequencer services configured (auto_transaction=%s)", effective_auto_transaction)
    return SequencerServices(
        config=config,
        store=store,
        loader=loader,
        discovery=OperationDiscovery(config.discovery_paths, store, loader),
        runner=runner,
        rollback=RollbackCoordinator(store, loader),
        lock=lock or LockFactory(config.lock).create(),
        queue=queue,
        migrations=migrations,
    )
