"""Base ExecutionStateStore interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from sequencer.models import ErrorRecord, ExecutionRecord


class ExecutionStateStore(ABC):
    """Abstract base class for execution state store implementations.

    The store is the durable record of every attempted operation. Records are
    created when execution starts, mutated only through ``update`` (which
    enforces the record's state transitions) and never deleted, so the store
    doubles as the audit trail of every run.
    """

    @abstractmethod
    async def create(self, record: ExecutionRecord) -> str:
        """Persist a new execution record.

        Args:
            record: The record to store.

        Returns:
            The record id.

        """
        ...

    @abstractmethod
    async def update(self, record_id: str, fields: dict[str, Any]) -> ExecutionRecord:
        """Apply field updates to an existing record.

        Args:
            record_id: Id of the record to update.
            fields: Field updates, validated by ``ExecutionRecord.apply``.

        Returns:
            The updated record.

        Raises:
            ExecutionRecordNotFoundError: If no record has this id.
            InvalidStateTransitionError: If the update breaks the state machine.

        """
        ...

    @abstractmethod
    async def get(self, record_id: str) -> ExecutionRecord:
        """Retrieve a record by id.

        Raises:
            ExecutionRecordNotFoundError: If no record has this id.

        """
        ...

    @abstractmethod
    async def find_by_identity(self, identity: str) -> ExecutionRecord | None:
        """Return the most recent record for an operation identity, if any."""
        ...

    @abstractmethod
    async def list_records(self, identity: str | None = None) -> list[ExecutionRecord]:
        """List records in creation order, optionally for one identity."""
        ...

    @abstractmethod
    async def add_error(self, error: ErrorRecord) -> None:
        """Attach an error record to an execution record."""
        ...

    @abstractmethod
    async def list_errors(self, record_id: str) -> list[ErrorRecord]:
        """List the error records attached to an execution record."""
        ...
