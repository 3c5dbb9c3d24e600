"""Compensation of executed operations after a failure."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from sequencer.discovery import OperationLoader
from sequencer.models import ROLLBACK_SOURCE_STATES, Capability, OperationState, utc_now
from sequencer.runner import ExecutionOutcome
from sequencer.store import ExecutionStateStore

logger = logging.getLogger(__name__)


@dataclass
class RollbackReport:
    """Per-item outcome of a rollback pass."""

    rolled_back: list[str] = field(default_factory=list)
    failed: dict[str, Exception] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    """Operations without a compensating action or with a record that cannot be rolled back."""


class RollbackCoordinator:
    """Invoke compensating actions in the order given.

    Each compensation is isolated: a failing ``rollback()`` is logged, leaves
    the record untouched, and never prevents the remaining items from being
    compensated.
    """

    def __init__(self, store: ExecutionStateStore, loader: OperationLoader) -> None:
        self._store = store
        self._loader = loader

    async def rollback(self, executed: Sequence[ExecutionOutcome]) -> RollbackReport:
        """Compensate executed operations.

        Args:
            executed: Executed operations, already in reverse execution order.

        Returns:
            Which operations were rolled back, failed to roll back, or skipped.

        """
        report = RollbackReport()
        if executed:
            logger.info("Rolling back %d executed operations", len(executed))

        for outcome in executed:
            try:
                await self._rollback_one(outcome, report)
            except Exception as e:
                logger.error("Rollback of %s failed: %s", outcome.identity, e)
                report.failed[outcome.identity] = e

        return report

    async def _rollback_one(self, outcome: ExecutionOutcome, report: RollbackReport) -> None:
        operation = self._loader.load(outcome.location)
        if not operation.supports(Capability.ROLLBACKABLE):
            logger.debug("Operation %s has no rollback, skipping", outcome.identity)
            report.skipped.append(outcome.identity)
            return

        record = await self._store.get(outcome.record.id)
        if record.state not in ROLLBACK_SOURCE_STATES:
            logger.debug(
                "Operation %s is %s and cannot be rolled back, skipping",
                outcome.identity,
                record.state,
            )
            report.skipped.append(outcome.identity)
            return

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, operation.rollback)  # type: ignore[attr-defined]

        await self._store.update(
            record.id,
            {"state": OperationState.ROLLED_BACK, "rolled_back_at": utc_now()},
        )
        logger.info("Rolled back operation %s", outcome.identity)
        report.rolled_back.append(outcome.identity)
