"""Sequential and scheduled orchestrators."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import override

from sequencer.models import Capability, ExecutionMethod, Task, utc_now
from sequencer.orchestrators.base import Orchestrator, Stages
from sequencer.resolver import DependencyResolver
from sequencer.runner import ExecutionOutcome

logger = logging.getLogger(__name__)


class SequentialOrchestrator(Orchestrator):
    """Run tasks one at a time in dependency order.

    A failing operation stops the run. Every operation executed before it is
    then compensated in reverse order, and the operation's original exception
    is re-raised.
    """

    strategy = "sequential"

    @override
    def resolve(self, resolver: DependencyResolver, tasks: list[Task]) -> Stages:
        return [resolver.sort_by_dependencies(tasks)]

    @override
    async def execute(self, stages: Stages) -> None:
        executed: list[ExecutionOutcome] = []

        with ThreadPoolExecutor(max_workers=1) as thread_pool:
            for task in (task for stage in stages for task in stage):
                if task.operation is None:
                    try:
                        await self.apply_migration(task, thread_pool)
                    except Exception:
                        logger.error("Migration %s failed", task.identity)
                        await self._rollback.rollback(executed[::-1])
                        raise
                    continue

                outcome = await self._runner.run(
                    task.operation, self.method, thread_pool=thread_pool
                )
                if outcome.error is not None:
                    await self._rollback.rollback(executed[::-1])
                    raise outcome.error
                executed.append(outcome)


class ScheduledOrchestrator(SequentialOrchestrator):
    """Sequential run restricted to tasks that are due.

    ``Scheduled`` operations whose ``execute_at`` lies in the future are
    deferred, together with everything depending on them. Deferred tasks get
    no execution record, so a later run picks them up.
    """

    strategy = "scheduled"
    method = ExecutionMethod.SCHEDULED

    @override
    def resolve(self, resolver: DependencyResolver, tasks: list[Task]) -> Stages:
        now = utc_now()
        graph = resolver.build_graph(tasks)

        deferred: set[str] = set()
        for task in tasks:
            op = task.operation
            if op is None or not op.supports(Capability.SCHEDULED) or op.execute_at is None:
                continue
            if _as_utc(op.execute_at) > now:
                logger.info("Deferring %s until %s", task.identity, op.execute_at.isoformat())
                deferred.add(task.identity)
                deferred.update(graph.get_transitive_dependents(task.identity))

        ordered = resolver.sort_by_dependencies(tasks)
        return [[task for task in ordered if task.identity not in deferred]]


def _as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment
