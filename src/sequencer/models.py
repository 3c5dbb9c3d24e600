"""Pydantic models for operation discovery, execution records and dispatch."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sequencer.errors import InvalidStateTransitionError


class Capability(StrEnum):
    """Capabilities an operation can declare."""

    OPERATION = "operation"
    ASYNCHRONOUS = "asynchronous"
    ROLLBACKABLE = "rollbackable"
    CONDITIONAL_EXECUTION = "conditional_execution"
    WITHIN_TRANSACTION = "within_transaction"
    ALLOWED_TO_FAIL = "allowed_to_fail"
    HAS_DEPENDENCIES = "has_dependencies"
    SCHEDULED = "scheduled"


class OperationState(StrEnum):
    """Lifecycle state of an execution record."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is allowed outside of rollback."""
        return self in _TERMINAL_STATES


class ExecutionMethod(StrEnum):
    """How an operation was driven to execution."""

    SYNC = "sync"
    ASYNC = "async"
    BATCH = "batch"
    GRAPH = "graph"
    SCHEDULED = "scheduled"


_TERMINAL_STATES = frozenset(
    {
        OperationState.COMPLETED,
        OperationState.FAILED,
        OperationState.SKIPPED,
        OperationState.ROLLED_BACK,
    }
)

# Forward transitions; rolled_back is handled separately.
_ALLOWED_TRANSITIONS: dict[OperationState, frozenset[OperationState]] = {
    OperationState.PENDING: frozenset(
        {
            OperationState.RUNNING,
            OperationState.COMPLETED,
            OperationState.FAILED,
            OperationState.SKIPPED,
        }
    ),
    OperationState.RUNNING: frozenset(
        {OperationState.COMPLETED, OperationState.FAILED, OperationState.SKIPPED}
    ),
}

ROLLBACK_SOURCE_STATES = frozenset(
    {
        OperationState.PENDING,
        OperationState.RUNNING,
        OperationState.COMPLETED,
        OperationState.FAILED,
    }
)
"""States from which a record may be compensated into rolled_back."""

_TERMINAL_TIMESTAMPS = ("completed_at", "failed_at", "skipped_at", "rolled_back_at")


def utc_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)


class OperationDescriptor(BaseModel):
    """Immutable description of a discovered operation."""

    model_config = ConfigDict(frozen=True)

    identity: str
    """Timestamp prefix and name, e.g. '2024_01_01_000000_seed_users'."""

    timestamp: str
    """Sortable timestamp key, e.g. '2024_01_01_000000'."""

    name: str
    location: Path
    """File the operation instance is loaded from."""

    capabilities: frozenset[Capability] = frozenset({Capability.OPERATION})
    dependencies: tuple[str, ...] = ()
    execute_at: datetime | None = None

    def supports(self, capability: Capability) -> bool:
        """Check whether the operation declares a capability."""
        return capability in self.capabilities


class MigrationDescriptor(BaseModel):
    """Infrastructure migration applied directly, without an execution record."""

    model_config = ConfigDict(frozen=True)

    identity: str
    timestamp: str
    name: str
    location: Path | None = None


TaskType = Literal["migration", "operation"]


class Task(BaseModel):
    """A unit in the resolved execution order."""

    model_config = ConfigDict(frozen=True)

    type: TaskType
    timestamp: str
    identity: str
    operation: OperationDescriptor | None = None
    migration: MigrationDescriptor | None = None

    @classmethod
    def for_operation(cls, descriptor: OperationDescriptor) -> Self:
        """Create an operation task."""
        return cls(
            type="operation",
            timestamp=descriptor.timestamp,
            identity=descriptor.identity,
            operation=descriptor,
        )

    @classmethod
    def for_migration(cls, migration: MigrationDescriptor) -> Self:
        """Create a migration task."""
        return cls(
            type="migration",
            timestamp=migration.timestamp,
            identity=migration.identity,
            migration=migration,
        )

    @property
    def dependencies(self) -> tuple[str, ...]:
        """Declared dependency references (operations only)."""
        if self.operation is None:
            return ()
        return self.operation.dependencies

    def preview(self) -> TaskPreview:
        """Build the dry-run preview entry for this task."""
        return TaskPreview(type=self.type, timestamp=self.timestamp, name=self.identity)


class TaskPreview(BaseModel):
    """Dry-run entry describing a task that would execute."""

    model_config = ConfigDict(frozen=True)

    type: TaskType
    timestamp: str
    name: str


class ExecutionRecord(BaseModel):
    """Durable record of one attempted operation execution."""

    id: str
    identity: str
    method: ExecutionMethod = ExecutionMethod.SYNC
    state: OperationState = OperationState.PENDING
    executed_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    skipped_at: datetime | None = None
    rolled_back_at: datetime | None = None
    skip_reason: str | None = None

    @model_validator(mode="after")
    def validate_single_terminal_timestamp(self) -> Self:
        """Validate that at most one terminal timestamp is set."""
        set_fields = [name for name in _TERMINAL_TIMESTAMPS if getattr(self, name)]
        if len(set_fields) > 1:
            raise ValueError(
                f"Only one terminal timestamp may be set, got: {', '.join(set_fields)}"
            )
        return self

    def apply(self, fields: dict[str, Any]) -> Self:
        """Return a copy with ``fields`` applied, enforcing state transitions.

        Args:
            fields: Field updates; a ``state`` entry is validated against the
                transition table.

        Returns:
            The updated record.

        Raises:
            InvalidStateTransitionError: If the record is terminal, or the
                requested state change is not allowed.

        """
        new_state = fields.get("state", self.state)
        if new_state == OperationState.ROLLED_BACK and self.state != new_state:
            if self.state not in ROLLBACK_SOURCE_STATES:
                raise InvalidStateTransitionError(
                    f"Operation '{self.identity}' cannot be rolled back from "
                    f"state '{self.state}'"
                )
            cleared = dict.fromkeys(
                ("completed_at", "failed_at", "skipped_at"), None
            )
            return self.model_validate(
                {**self.model_dump(), **cleared, **fields}
            )

        if self.state.is_terminal:
            raise InvalidStateTransitionError(
                f"Operation '{self.identity}' is already {self.state} "
                f"and cannot be modified"
            )
        if new_state != self.state and new_state not in _ALLOWED_TRANSITIONS.get(
            self.state, frozenset()
        ):
            raise InvalidStateTransitionError(
                f"Operation '{self.identity}' cannot move from '{self.state}' "
                f"to '{new_state}'"
            )
        return self.model_validate({**self.model_dump(), **fields})


class ErrorRecord(BaseModel):
    """Failure detail captured for an execution record."""

    id: str
    record_id: str
    exception: str
    """Fully qualified exception class name."""

    message: str
    trace: str
    context: dict[str, Any] = Field(default_factory=dict)
    """Origin of the exception: file, line and code."""

    created_at: datetime = Field(default_factory=utc_now)


class DispatchPayload(BaseModel):
    """Message handed to the background transport for an asynchronous operation."""

    record_id: str
    identity: str
    location: Path
    queue: str = "default"
    timeout: float | None = None
