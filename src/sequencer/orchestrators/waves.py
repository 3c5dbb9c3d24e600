"""Wave-based orchestrators running independent operations concurrently.

Tasks are partitioned into dependency waves. All members of a wave run side
by side on a thread pool, bounded by ``max_concurrency``, and the wave joins
before the next one starts. Operations declaring ``AllowedToFail`` never halt
a run; anything depending on them is recorded as skipped instead.

The variants differ in what a hard failure does to the rest of the wave and
to work that already finished:

============================  ========================  =======================
Strategy                      Unstarted wave members    Rollback
============================  ========================  =======================
graph                         still run                 current and prior waves
batch                         cancelled                 none
transactional-batch           cancelled                 current wave
allowed-to-fail               still run                 none
============================  ========================  =======================
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import ClassVar, Literal, override

from sequencer.dag import DependencyGraph
from sequencer.errors import WaveExecutionError
from sequencer.models import Capability, ExecutionMethod, OperationDescriptor, Task
from sequencer.orchestrators.base import Orchestrator, Stages
from sequencer.resolver import DependencyResolver
from sequencer.runner import ExecutionOutcome

logger = logging.getLogger(__name__)

RollbackScope = Literal["all", "wave", "none"]


@dataclass
class _WaveContext:
    """Internal context for a single wave run."""

    semaphore: asyncio.Semaphore
    thread_pool: ThreadPoolExecutor
    halted: asyncio.Event = field(default_factory=asyncio.Event)


class DependencyGraphOrchestrator(Orchestrator):
    """Run dependency waves concurrently, rolling back everything on failure."""

    strategy = "graph"
    method = ExecutionMethod.GRAPH

    cancel_on_failure: ClassVar[bool] = False
    """Stop starting further members of a wave once one fails."""

    rollback_scope: ClassVar[RollbackScope] = "all"
    """Waves compensated after a hard failure."""

    _graph: DependencyGraph | None = None

    @override
    def resolve(self, resolver: DependencyResolver, tasks: list[Task]) -> Stages:
        operations = [task for task in tasks if task.type == "operation"]
        migrations = [task for task in tasks if task.type == "migration"]

        self._graph = resolver.build_graph(operations)
        waves = resolver.partition_into_waves(operations)
        # Migrations run before the first wave
        return [migrations, *waves] if migrations else waves

    @override
    async def execute(self, stages: Stages) -> None:
        max_concurrency = self._config.max_concurrency
        finished: list[list[ExecutionOutcome]] = []
        excluded: dict[str, str] = {}

        with ThreadPoolExecutor(max_workers=max_concurrency) as thread_pool:
            for index, wave in enumerate(stages):
                for task in wave:
                    if task.type == "migration":
                        await self.apply_migration(task, thread_pool)

                members = [task.operation for task in wave if task.operation is not None]
                if not members:
                    continue

                logger.info("Starting wave %d with %d operations", index + 1, len(members))
                ctx = _WaveContext(asyncio.Semaphore(max_concurrency), thread_pool)
                outcomes = await self._run_wave(members, excluded, ctx)
                finished.append(outcomes)

                failures: dict[str, Exception] = {}
                for outcome in outcomes:
                    if outcome.error is None:
                        continue
                    if self._allowed_to_fail(outcome):
                        logger.warning(
                            "Operation %s failed but is allowed to fail", outcome.identity
                        )
                        self._exclude_dependents(outcome.identity, excluded)
                    else:
                        failures[outcome.identity] = outcome.error

                if failures:
                    await self.on_wave_failure(finished)
                    first_error = next(iter(failures.values()))
                    raise WaveExecutionError(index, failures) from first_error

                logger.info("Wave %d complete", index + 1)

    async def _run_wave(
        self,
        members: list[OperationDescriptor],
        excluded: dict[str, str],
        ctx: _WaveContext,
    ) -> list[ExecutionOutcome]:
        """Run one wave's members concurrently and wait for all of them."""
        results = await asyncio.gather(
            *(self._run_member(member, excluded, ctx) for member in members),
            return_exceptions=True,
        )

        outcomes: list[ExecutionOutcome] = []
        for result in results:
            # Engine faults (store, loader) are not operation failures
            if isinstance(result, BaseException):
                raise result
            if result is not None:
                outcomes.append(result)
        return outcomes

    async def _run_member(
        self, member: OperationDescriptor, excluded: dict[str, str], ctx: _WaveContext
    ) -> ExecutionOutcome | None:
        if member.identity in excluded:
            return await self._runner.skip(member, self.method, excluded[member.identity])

        async with ctx.semaphore:
            if ctx.halted.is_set():
                logger.info("Not starting %s: wave halted", member.identity)
                return None
            outcome = await self._runner.run(
                member, self.method, dispatch=False, thread_pool=ctx.thread_pool
            )

        if (
            self.cancel_on_failure
            and outcome.error is not None
            and not self._allowed_to_fail(outcome)
        ):
            ctx.halted.set()
        return outcome

    def _allowed_to_fail(self, outcome: ExecutionOutcome) -> bool:
        return self._runner.load(outcome.location).supports(Capability.ALLOWED_TO_FAIL)

    def _exclude_dependents(self, identity: str, excluded: dict[str, str]) -> None:
        if self._graph is None:
            return
        for dependent in self._graph.get_transitive_dependents(identity):
            excluded.setdefault(dependent, f"Dependency {identity} failed")

    async def on_wave_failure(self, finished: list[list[ExecutionOutcome]]) -> None:
        """Compensate after a hard failure, as far as ``rollback_scope`` reaches.

        Waves are compensated latest first, and members within a wave in
        reverse discovery order. Operations that failed, including those
        allowed to fail, are not compensated.

        Args:
            finished: Outcomes of every wave run so far, the failing one last.

        """
        if self.rollback_scope == "none":
            logger.info("Run halted; operations completed so far are kept")
            return

        waves = finished if self.rollback_scope == "all" else finished[-1:]
        executed = [
            outcome
            for outcomes in reversed(waves)
            for outcome in reversed(outcomes)
            if outcome.error is None
        ]
        await self._rollback.rollback(executed)


class BatchOrchestrator(DependencyGraphOrchestrator):
    """Dispatch waves as batches; the first hard failure cancels the batch."""

    strategy = "batch"
    method = ExecutionMethod.BATCH
    cancel_on_failure = True
    rollback_scope = "none"


class TransactionalBatchOrchestrator(BatchOrchestrator):
    """All-or-nothing per wave: a failure undoes the failing wave only."""

    strategy = "transactional-batch"
    rollback_scope = "wave"


class AllowedToFailBatchOrchestrator(DependencyGraphOrchestrator):
    """Best-effort waves: every member runs, and nothing is rolled back."""

    strategy = "allowed-to-fail"
    method = ExecutionMethod.BATCH
    rollback_scope = "none"
