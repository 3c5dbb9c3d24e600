"""Programmatic facade for running and inspecting individual operations."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from sequencer.discovery import describe_operation
from sequencer.errors import InvalidOperationError
from sequencer.models import ErrorRecord, ExecutionMethod, OperationState
from sequencer.runner import ExecutionOutcome, OperationRunner

logger = logging.getLogger(__name__)


class SequencerManager:
    """Run single operations outside an orchestrated run and query their history.

    Example:
        ```python
        manager = SequencerManager(runner, [Path("operations")])
        await manager.execute_sync("2024_01_01_000000_seed_users")
        if await manager.has_failed("2024_01_01_000000_seed_users"):
            errors = await manager.get_errors("2024_01_01_000000_seed_users")
        ```

    """

    def __init__(self, runner: OperationRunner, paths: Sequence[Path] = ()) -> None:
        """Initialise the manager.

        Args:
            runner: Runner used to execute operations.
            paths: Directories searched when an operation is named by identity.

        """
        self._runner = runner
        self._paths = list(paths)

    def _locate(self, operation: str | Path) -> Path:
        """Resolve an operation path, identity or file name to its file."""
        candidate = Path(operation)
        if candidate.is_file():
            return candidate

        file_name = candidate.name if candidate.suffix == ".py" else f"{candidate.name}.py"
        for directory in self._paths:
            if (directory / file_name).is_file():
                return directory / file_name

        raise InvalidOperationError(f"Operation '{operation}' was not found")

    async def execute(self, operation: str | Path, async_: bool = True) -> ExecutionOutcome:
        """Execute one operation, dispatching it to the background by default.

        Args:
            operation: Operation file path, identity or file name.
            async_: Dispatch through the transport instead of running inline.

        Returns:
            The outcome. Failures are recorded, not raised.

        """
        descriptor = describe_operation(self._locate(operation), self._runner.loader)
        logger.info("Executing %s via manager", descriptor.identity)
        return await self._runner.run(descriptor, ExecutionMethod.SYNC, dispatch=async_)

    async def execute_sync(self, operation: str | Path) -> ExecutionOutcome:
        """Execute one operation inline."""
        return await self.execute(operation, async_=False)

    async def execute_if(
        self, condition: bool, operation: str | Path, async_: bool = True
    ) -> ExecutionOutcome | None:
        """Execute an operation only when ``condition`` holds."""
        if not condition:
            return None
        return await self.execute(operation, async_)

    async def execute_unless(
        self, condition: bool, operation: str | Path, async_: bool = True
    ) -> ExecutionOutcome | None:
        """Execute an operation only when ``condition`` does not hold."""
        return await self.execute_if(not condition, operation, async_)

    async def has_executed(self, identity: str) -> bool:
        """Whether the operation ever completed."""
        records = await self._runner.store.list_records(identity)
        return any(record.state == OperationState.COMPLETED for record in records)

    async def has_failed(self, identity: str) -> bool:
        """Whether the operation's latest execution failed."""
        latest = await self._runner.store.find_by_identity(identity)
        return latest is not None and latest.state == OperationState.FAILED

    async def get_errors(self, identity: str) -> list[ErrorRecord]:
        """Error records across every execution of the operation, oldest first."""
        errors: list[ErrorRecord] = []
        for record in await self._runner.store.list_records(identity):
            errors.extend(await self._runner.store.list_errors(record.id))
        return errors
