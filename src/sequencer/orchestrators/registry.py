"""Strategy name to orchestrator class mapping."""

from __future__ import annotations

import logging

from sequencer.discovery import MigrationSource, OperationDiscovery
from sequencer.errors import UnknownStrategyError
from sequencer.lock import DistributedLock
from sequencer.orchestrators.base import Orchestrator
from sequencer.orchestrators.sequential import ScheduledOrchestrator, SequentialOrchestrator
from sequencer.orchestrators.waves import (
    AllowedToFailBatchOrchestrator,
    BatchOrchestrator,
    DependencyGraphOrchestrator,
    TransactionalBatchOrchestrator,
)
from sequencer.rollback import RollbackCoordinator
from sequencer.runner import OperationRunner
from sequencer.settings import SequencerConfig

logger = logging.getLogger(__name__)

ORCHESTRATORS: dict[str, type[Orchestrator]] = {
    cls.strategy: cls
    for cls in (
        SequentialOrchestrator,
        DependencyGraphOrchestrator,
        BatchOrchestrator,
        TransactionalBatchOrchestrator,
        AllowedToFailBatchOrchestrator,
        ScheduledOrchestrator,
    )
}


def available_strategies() -> list[str]:
    """Names of every registered strategy."""
    return sorted(ORCHESTRATORS)


def create_orchestrator(  # noqa: PLR0913 - mirrors the orchestrator constructor
    strategy: str,
    discovery: OperationDiscovery,
    runner: OperationRunner,
    rollback: RollbackCoordinator,
    config: SequencerConfig,
    lock: DistributedLock | None = None,
    migrations: MigrationSource | None = None,
) -> Orchestrator:
    """Create the orchestrator registered for ``strategy``.

    Raises:
        UnknownStrategyError: If no orchestrator is registered under the name.

    """
    orchestrator_class = ORCHESTRATORS.get(strategy)
    if orchestrator_class is None:
        raise UnknownStrategyError(
            f"Unknown orchestration strategy '{strategy}'. "
            f"Available: {', '.join(available_strategies())}"
        )

    logger.debug("Using %s for strategy '%s'", orchestrator_class.__name__, strategy)
    return orchestrator_class(discovery, runner, rollback, config, lock, migrations)
