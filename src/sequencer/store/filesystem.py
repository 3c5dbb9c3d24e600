"""Local filesystem execution state store implementation.

Persists execution records and error records as JSON documents under a base
directory. Uses aiofiles for async I/O operations.

Storage structure:
    {base_path}/
        ├── records/
        │   ├── {record_id}.json    # ExecutionRecord
        │   └── ...
        └── errors/
            └── {record_id}/
                ├── {error_id}.json # ErrorRecord
                └── ...
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, override

import aiofiles

from sequencer.errors import ExecutionRecordNotFoundError
from sequencer.models import ErrorRecord, ExecutionRecord
from sequencer.store.base import ExecutionStateStore


class FilesystemStateStore(ExecutionStateStore):
    """Filesystem-backed state store shared by every process on the host.

    Records are listed in creation order, which is ``executed_at`` with the
    record id as tie-breaker.
    """

    _RECORDS_PREFIX = "records"
    _ERRORS_PREFIX = "errors"

    def __init__(self, base_path: Path) -> None:
        """Initialise filesystem store.

        Args:
            base_path: Root directory for storage (e.g., Path('.sequencer')).

        """
        self._base_path = base_path

    @property
    def base_path(self) -> Path:
        """The base path for storage."""
        return self._base_path

    def _validate_key(self, key: str) -> None:
        """Validate that a key is safe for filesystem use.

        Raises:
            ValueError: If key contains path separators or traversal sequences.

        """
        if ".." in key:
            raise ValueError(
                f"Invalid key '{key}': path traversal sequences (..) are not allowed."
            )
        if "/" in key or "\\" in key:
            raise ValueError(f"Invalid key '{key}': path separators are not allowed.")

    def _record_path(self, record_id: str) -> Path:
        self._validate_key(record_id)
        return self._base_path / self._RECORDS_PREFIX / f"{record_id}.json"

    def _errors_dir(self, record_id: str) -> Path:
        self._validate_key(record_id)
        return self._base_path / self._ERRORS_PREFIX / record_id

    async def _write(self, file_path: Path, document: str) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(file_path, "w") as f:
            await f.write(document)

    async def _read(self, file_path: Path) -> str:
        async with aiofiles.open(file_path) as f:
            return await f.read()

    # ========================================================================
    # Execution Records
    # ========================================================================

    @override
    async def create(self, record: ExecutionRecord) -> str:
        """Store a new record in records/{id}.json."""
        await self._write(
            self._record_path(record.id), record.model_dump_json(indent=2)
        )
        return record.id

    @override
    async def update(self, record_id: str, fields: dict[str, Any]) -> ExecutionRecord:
        """Apply fields to a stored record and rewrite it."""
        updated = (await self.get(record_id)).apply(fields)
        await self._write(self._record_path(record_id), updated.model_dump_json(indent=2))
        return updated

    @override
    async def get(self, record_id: str) -> ExecutionRecord:
        """Load a record from records/{id}.json."""
        file_path = self._record_path(record_id)
        if not file_path.exists():
            raise ExecutionRecordNotFoundError(f"Execution record '{record_id}' not found.")

        return ExecutionRecord.model_validate_json(await self._read(file_path))

    @override
    async def find_by_identity(self, identity: str) -> ExecutionRecord | None:
        records = await self.list_records(identity)
        return records[-1] if records else None

    @override
    async def list_records(self, identity: str | None = None) -> list[ExecutionRecord]:
        records_dir = self._base_path / self._RECORDS_PREFIX
        if not records_dir.exists():
            return []

        records: list[ExecutionRecord] = []
        for file_path in records_dir.glob("*.json"):
            record = ExecutionRecord.model_validate_json(await self._read(file_path))
            if identity is None or record.identity == identity:
                records.append(record)

        return sorted(records, key=lambda r: (r.executed_at, r.id))

    # ========================================================================
    # Error Records
    # ========================================================================

    @override
    async def add_error(self, error: ErrorRecord) -> None:
        """Store an error record in errors/{record_id}/{error_id}.json."""
        file_path = self._errors_dir(error.record_id) / f"{error.id}.json"
        self._validate_key(error.id)
        await self._write(file_path, error.model_dump_json(indent=2))

    @override
    async def list_errors(self, record_id: str) -> list[ErrorRecord]:
        errors_dir = self._errors_dir(record_id)
        if not errors_dir.exists():
            return []

        errors = [
            ErrorRecord.model_validate_json(await self._read(file_path))
            for file_path in errors_dir.glob("*.json")
        ]
        return sorted(errors, key=lambda e: (e.created_at, e.id))
