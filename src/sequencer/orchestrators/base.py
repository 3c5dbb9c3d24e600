"""Common orchestration flow shared by every strategy."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import ClassVar

from sequencer.discovery import MigrationSource, OperationDiscovery, merge_tasks
from sequencer.errors import ConfigurationError, MissingExecutionHistoryError
from sequencer.lock import DistributedLock
from sequencer.models import ExecutionMethod, OperationState, Task, TaskPreview
from sequencer.resolver import DependencyResolver
from sequencer.rollback import RollbackCoordinator
from sequencer.runner import OperationRunner
from sequencer.settings import SequencerConfig

logger = logging.getLogger(__name__)

Stages = list[list[Task]]
"""Resolved tasks grouped into stages run one after another."""


class Orchestrator(ABC):
    """Resolve pending operations and drive their execution.

    Resolution (discovery, dependency validation, ordering, the ``from``
    filter and the repeat safety check) always completes before the first
    side effect, so configuration errors never leave partial records behind.
    """

    strategy: ClassVar[str]
    """Strategy name used to select this orchestrator."""

    method: ClassVar[ExecutionMethod] = ExecutionMethod.SYNC
    """Execution method stored on records created by this orchestrator."""

    def __init__(  # noqa: PLR0913 - collaborators are injected explicitly
        self,
        discovery: OperationDiscovery,
        runner: OperationRunner,
        rollback: RollbackCoordinator,
        config: SequencerConfig,
        lock: DistributedLock | None = None,
        migrations: MigrationSource | None = None,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            discovery: Source of discovered operations.
            runner: Executes individual operations.
            rollback: Compensates executed operations after a failure.
            config: Sequencer configuration.
            lock: Lock used by isolated runs.
            migrations: Optional source of infrastructure migrations.

        """
        self._discovery = discovery
        self._runner = runner
        self._rollback = rollback
        self._config = config
        self._lock = lock
        self._migrations = migrations

    async def process(
        self,
        isolate: bool = False,
        dry_run: bool = False,
        from_timestamp: str | None = None,
        repeat: bool = False,
    ) -> list[TaskPreview] | None:
        """Run pending operations.

        Args:
            isolate: Hold the process lock for the whole run.
            dry_run: Return the tasks that would run without running them.
            from_timestamp: Only run tasks with a timestamp at or after this key.
            repeat: Include operations that already completed.

        Returns:
            The task previews for a dry run, otherwise None.

        Raises:
            ConfigurationError: If resolution fails; nothing has run.
            LockAcquisitionTimeoutError: If ``isolate`` could not get the lock.

        """
        if dry_run:
            stages = await self.plan(from_timestamp, repeat)
            return [task.preview() for stage in stages for task in stage]

        if isolate:
            if self._lock is None:
                raise ConfigurationError("Isolated runs require a DistributedLock")
            lock_config = self._config.lock
            async with self._lock.hold(lock_config.name, lock_config.timeout, lock_config.ttl):
                await self._run(from_timestamp, repeat)
        else:
            await self._run(from_timestamp, repeat)
        return None

    async def _run(self, from_timestamp: str | None, repeat: bool) -> None:
        stages = await self.plan(from_timestamp, repeat)
        if not stages:
            logger.info("No pending operations to run")
            return

        logger.info(
            "Running %d tasks with the %s strategy",
            sum(len(stage) for stage in stages),
            self.strategy,
        )
        await self.execute(stages)

    async def plan(self, from_timestamp: str | None = None, repeat: bool = False) -> Stages:
        """Resolve the stages a run would execute, without side effects.

        Dependencies are validated against every discovered operation, so the
        order is correct even when only some of them are pending.
        """
        discovered = self._discovery.discover()
        resolver = DependencyResolver(known=[d.identity for d in discovered])
        resolver.build_graph(merge_tasks(discovered))

        selected = discovered if repeat else await self._discovery.filter_pending(discovered)
        migrations = self._migrations.pending() if self._migrations else []
        stages = self.resolve(resolver, merge_tasks(selected, migrations))

        if from_timestamp is not None:
            stages = [[t for t in stage if t.timestamp >= from_timestamp] for stage in stages]
        stages = [stage for stage in stages if stage]

        if repeat and self._config.require_history_for_repeat:
            await self._check_history([t for stage in stages for t in stage])
        return stages

    async def _check_history(self, tasks: Sequence[Task]) -> None:
        missing: list[str] = []
        for task in tasks:
            if task.type != "operation":
                continue
            records = await self._runner.store.list_records(task.identity)
            if not any(r.state == OperationState.COMPLETED for r in records):
                missing.append(task.identity)
        if missing:
            raise MissingExecutionHistoryError(missing)

    @abstractmethod
    def resolve(self, resolver: DependencyResolver, tasks: list[Task]) -> Stages:
        """Group timestamp-ordered tasks into stages."""
        ...

    @abstractmethod
    async def execute(self, stages: Stages) -> None:
        """Execute resolved, non-empty stages."""
        ...

    async def apply_migration(self, task: Task, thread_pool: ThreadPoolExecutor) -> None:
        """Apply a migration task directly, without an execution record."""
        if task.migration is None or self._migrations is None:
            return
        logger.info("Applying migration %s", task.identity)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(thread_pool, self._migrations.apply, task.migration)
