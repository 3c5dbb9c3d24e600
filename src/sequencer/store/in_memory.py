"""In-memory execution state store implementation."""

from __future__ import annotations

from typing import Any, override

from sequencer.errors import ExecutionRecordNotFoundError
from sequencer.models import ErrorRecord, ExecutionRecord
from sequencer.store.base import ExecutionStateStore


class InMemoryStateStore(ExecutionStateStore):
    """In-memory state store for tests and single-process runs.

    No locking is needed since asyncio runs in a single thread; worker
    threads never touch the store directly.
    """

    def __init__(self) -> None:
        """Initialise empty storage."""
        # Insertion order doubles as creation order.
        self._records: dict[str, ExecutionRecord] = {}
        self._errors: dict[str, list[ErrorRecord]] = {}

    @override
    async def create(self, record: ExecutionRecord) -> str:
        self._records[record.id] = record
        return record.id

    @override
    async def update(self, record_id: str, fields: dict[str, Any]) -> ExecutionRecord:
        updated = (await self.get(record_id)).apply(fields)
        self._records[record_id] = updated
        return updated

    @override
    async def get(self, record_id: str) -> ExecutionRecord:
        if record_id not in self._records:
            raise ExecutionRecordNotFoundError(f"Execution record '{record_id}' not found.")
        return self._records[record_id]

    @override
    async def find_by_identity(self, identity: str) -> ExecutionRecord | None:
        matches = await self.list_records(identity)
        return matches[-1] if matches else None

    @override
    async def list_records(self, identity: str | None = None) -> list[ExecutionRecord]:
        return [
            record
            for record in self._records.values()
            if identity is None or record.identity == identity
        ]

    @override
    async def add_error(self, error: ErrorRecord) -> None:
        self._errors.setdefault(error.record_id, []).append(error)

    @override
    async def list_errors(self, record_id: str) -> list[ErrorRecord]:
        return list(self._errors.get(record_id, []))
