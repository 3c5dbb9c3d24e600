"""Single-operation execution state machine.

The OperationRunner drives one operation from discovery to a terminal
execution record. Operation code is synchronous and is bridged to async via
a ThreadPoolExecutor so that wave members can run side by side.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from sequencer.discovery import OperationLoader
from sequencer.dispatch import DispatchTransport
from sequencer.errors import SkipOperation
from sequencer.models import (
    Capability,
    DispatchPayload,
    ErrorRecord,
    ExecutionMethod,
    ExecutionRecord,
    OperationDescriptor,
    OperationState,
    utc_now,
)
from sequencer.operation import Operation
from sequencer.store import ExecutionStateStore
from sequencer.transaction import NullTransactionManager, TransactionManager

logger = logging.getLogger(__name__)

CONDITION_NOT_MET = "Condition not met"


@dataclass
class ExecutionOutcome:
    """Result of running one operation."""

    identity: str
    location: Path
    """File the operation was loaded from."""

    record: ExecutionRecord
    error: Exception | None = None
    """The exception raised by the operation when the record failed."""

    @property
    def failed(self) -> bool:
        """Whether the operation failed."""
        return self.record.state == OperationState.FAILED


def new_record_id() -> str:
    """Generate an identifier for an execution or error record."""
    return uuid.uuid4().hex


def build_error_record(record_id: str, error: BaseException) -> ErrorRecord:
    """Capture exception kind, message, trace and origin for a failed record."""
    error_type = type(error)
    frames = traceback.extract_tb(error.__traceback__)
    context: dict[str, object] = {}
    if frames:
        origin = frames[-1]
        context = {"file": origin.filename, "line": origin.lineno, "code": origin.line}

    return ErrorRecord(
        id=new_record_id(),
        record_id=record_id,
        exception=f"{error_type.__module__}.{error_type.__qualname__}",
        message=str(error),
        trace="".join(traceback.format_exception(error)),
        context=context,
    )


class OperationRunner:
    """Execute operations and persist their lifecycle in the state store."""

    def __init__(
        self,
        store: ExecutionStateStore,
        loader: OperationLoader,
        *,
        transport: DispatchTransport | None = None,
        transactions: TransactionManager | None = None,
        auto_transaction: bool = True,
        record_errors: bool = True,
        queue_name: str = "default",
    ) -> None:
        """Initialise the runner.

        Args:
            store: Execution state store receiving every record.
            loader: Loader resolving descriptors to operation instances.
            transport: Channel for asynchronous operations. Without one,
                asynchronous operations run inline.
            transactions: Source of transaction scopes.
            auto_transaction: Wrap every synchronous operation in a
                transaction, not only those declaring ``WithinTransaction``.
            record_errors: Persist an ErrorRecord for each failure.
            queue_name: Queue used when an operation does not name one.

        """
        self._store = store
        self._loader = loader
        self._transport = transport
        self._transactions = transactions or NullTransactionManager()
        self._auto_transaction = auto_transaction
        self._record_errors = record_errors
        self._queue_name = queue_name

    @property
    def store(self) -> ExecutionStateStore:
        """The execution state store."""
        return self._store

    @property
    def loader(self) -> OperationLoader:
        """The operation loader."""
        return self._loader

    def load(self, location: Path) -> Operation:
        """Load the operation instance at ``location``."""
        return self._loader.load(location)

    def uses_transaction(self, operation: Operation) -> bool:
        """Decide whether an operation runs inside a transaction scope.

        A ``WithinTransaction`` declaration always wins; otherwise the
        runner's auto-transaction setting decides.
        """
        return operation.supports(Capability.WITHIN_TRANSACTION) or self._auto_transaction

    async def run(
        self,
        descriptor: OperationDescriptor,
        method: ExecutionMethod = ExecutionMethod.SYNC,
        *,
        dispatch: bool | None = None,
        thread_pool: ThreadPoolExecutor | None = None,
    ) -> ExecutionOutcome:
        """Run one operation to a terminal state, or hand it to the transport.

        Operation failures are recorded and returned in the outcome rather
        than raised; callers decide whether they halt the run.

        Args:
            descriptor: The operation to run.
            method: Execution method stored on the record.
            dispatch: Force (True) or prevent (False) background dispatch.
                None dispatches operations declaring ``Asynchronous``.
            thread_pool: Pool running the operation's synchronous code.

        Returns:
            The outcome, holding the latest record.

        """
        operation = self.load(descriptor.location)

        if operation.supports(Capability.CONDITIONAL_EXECUTION):
            if not operation.should_run():  # type: ignore[attr-defined]
                return await self.skip(descriptor, method, CONDITION_NOT_MET)

        if dispatch is None:
            dispatch = operation.supports(Capability.ASYNCHRONOUS)

        if dispatch and self._transport is not None:
            record = await self._create_record(descriptor.identity, ExecutionMethod.ASYNC)
            await self._dispatch(self._transport, descriptor, operation, record)
            return ExecutionOutcome(descriptor.identity, descriptor.location, record)

        record = await self._create_record(descriptor.identity, method)
        return await self.drive(
            record, descriptor.location, operation, thread_pool=thread_pool
        )

    async def skip(
        self, descriptor: OperationDescriptor, method: ExecutionMethod, reason: str
    ) -> ExecutionOutcome:
        """Record an operation as skipped without running it."""
        record = await self._create_record(descriptor.identity, method)
        logger.info("Skipping operation %s: %s", descriptor.identity, reason)
        record = await self._store.update(
            record.id,
            {
                "state": OperationState.SKIPPED,
                "skipped_at": utc_now(),
                "skip_reason": reason,
            },
        )
        return ExecutionOutcome(descriptor.identity, descriptor.location, record)

    async def _create_record(self, identity: str, method: ExecutionMethod) -> ExecutionRecord:
        record = ExecutionRecord(id=new_record_id(), identity=identity, method=method)
        await self._store.create(record)
        return record

    async def _dispatch(
        self,
        transport: DispatchTransport,
        descriptor: OperationDescriptor,
        operation: Operation,
        record: ExecutionRecord,
    ) -> None:
        queue_name = operation.queue or self._queue_name
        payload = DispatchPayload(
            record_id=record.id,
            identity=descriptor.identity,
            location=descriptor.location,
            queue=queue_name,
            timeout=operation.timeout,
        )
        await transport.enqueue(queue_name, payload)
        logger.info("Dispatched operation %s to queue '%s'", descriptor.identity, queue_name)

    async def drive(
        self,
        record: ExecutionRecord,
        location: Path,
        operation: Operation,
        *,
        thread_pool: ThreadPoolExecutor | None = None,
        timeout: float | None = None,
    ) -> ExecutionOutcome:
        """Run a recorded operation and move its record to a terminal state.

        Args:
            record: Pending record created for this execution.
            location: File the operation was loaded from.
            operation: The operation instance.
            thread_pool: Pool running the operation's synchronous code.
            timeout: Seconds allowed before the execution is recorded as failed.

        Returns:
            The outcome, holding the terminal record.

        """
        identity = record.identity
        await self._store.update(record.id, {"state": OperationState.RUNNING})
        logger.info("Running operation %s", identity)

        loop = asyncio.get_running_loop()
        transactional = self.uses_transaction(operation)
        try:
            async with asyncio.timeout(timeout):
                await loop.run_in_executor(
                    thread_pool, self._invoke, operation, transactional
                )
        except SkipOperation as e:
            reason = str(e) or "Skipped by operation"
            logger.info("Operation %s skipped: %s", identity, reason)
            record = await self._store.update(
                record.id,
                {
                    "state": OperationState.SKIPPED,
                    "skipped_at": utc_now(),
                    "skip_reason": reason,
                },
            )
            return ExecutionOutcome(identity, location, record)
        except Exception as e:
            logger.error("Operation %s failed: %s", identity, e)
            record = await self._store.update(
                record.id, {"state": OperationState.FAILED, "failed_at": utc_now()}
            )
            if self._record_errors:
                await self._store.add_error(build_error_record(record.id, e))
            return ExecutionOutcome(identity, location, record, e)

        record = await self._store.update(
            record.id, {"state": OperationState.COMPLETED, "completed_at": utc_now()}
        )
        logger.info("Completed operation %s", identity)
        return ExecutionOutcome(identity, location, record)

    def _invoke(self, operation: Operation, transactional: bool) -> None:
        """Call ``handle`` on a worker thread, inside a transaction if requested."""
        if transactional:
            with self._transactions.transaction():
                operation.handle()
        else:
            operation.handle()
