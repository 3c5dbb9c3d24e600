"""Worker side of background dispatch."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from sequencer.dispatch import InMemoryQueue
from sequencer.models import DispatchPayload
from sequencer.runner import ExecutionOutcome, OperationRunner

logger = logging.getLogger(__name__)


class QueueWorker:
    """Consume dispatched payloads and drive their records to a terminal state.

    The worker reuses the runner's state machine, so a dispatched operation
    gets the same transaction, skip and error-recording treatment as one run
    in the foreground. A payload ``timeout`` bounds how long the worker waits
    for ``handle`` before recording a failure.

    A payload whose record already reached a terminal state, for example one
    rolled back after a later operation failed, is discarded.
    """

    def __init__(self, queue: InMemoryQueue, runner: OperationRunner) -> None:
        self._queue = queue
        self._runner = runner

    async def process(
        self, payload: DispatchPayload, thread_pool: ThreadPoolExecutor | None = None
    ) -> ExecutionOutcome | None:
        """Execute one dispatched operation.

        Returns:
            The outcome, or None when the payload's record is already terminal.

        """
        record = await self._runner.store.get(payload.record_id)
        if record.state.is_terminal:
            logger.info(
                "Discarding queued %s: record %s is already %s",
                payload.identity,
                record.id,
                record.state,
            )
            return None

        operation = self._runner.load(payload.location)
        logger.info("Worker picked up %s from queue '%s'", payload.identity, payload.queue)
        return await self._runner.drive(
            record,
            payload.location,
            operation,
            thread_pool=thread_pool,
            timeout=payload.timeout,
        )

    async def drain(self, queue_name: str = "default") -> list[ExecutionOutcome]:
        """Process every payload waiting on a queue, oldest first."""
        outcomes: list[ExecutionOutcome] = []
        while (payload := self._queue.pop(queue_name)) is not None:
            if (outcome := await self.process(payload)) is not None:
                outcomes.append(outcome)
        return outcomes
