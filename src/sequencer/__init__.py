"""Sequencer - ordered, compensating execution of deployment operations."""

from sequencer.dag import DependencyGraph
from sequencer.discovery import (
    MigrationSource,
    OperationDiscovery,
    OperationLoader,
    describe_operation,
    merge_tasks,
)
from sequencer.dispatch import DispatchTransport, InMemoryQueue
from sequencer.errors import (
    CircularDependencyError,
    ConfigurationError,
    DuplicateOperationError,
    ExecutionRecordNotFoundError,
    InvalidOperationError,
    InvalidStateTransitionError,
    LockAcquisitionTimeoutError,
    MissingDependencyError,
    MissingExecutionHistoryError,
    SequencerError,
    SkipOperation,
    UnknownStrategyError,
    WaveExecutionError,
)
from sequencer.lock import DistributedLock, LockHandle
from sequencer.manager import SequencerManager
from sequencer.models import (
    Capability,
    DispatchPayload,
    ErrorRecord,
    ExecutionMethod,
    ExecutionRecord,
    MigrationDescriptor,
    OperationDescriptor,
    OperationState,
    Task,
    TaskPreview,
)
from sequencer.operation import (
    AllowedToFail,
    Asynchronous,
    ConditionalExecution,
    HasDependencies,
    Operation,
    Rollbackable,
    Scheduled,
    WithinTransaction,
)
from sequencer.orchestrators import Orchestrator, create_orchestrator
from sequencer.resolver import DependencyResolver
from sequencer.rollback import RollbackCoordinator, RollbackReport
from sequencer.runner import ExecutionOutcome, OperationRunner
from sequencer.services import SequencerServices, build_services
from sequencer.settings import SequencerConfig
from sequencer.transaction import NullTransactionManager, TransactionManager
from sequencer.worker import QueueWorker

__all__ = [
    # Operations
    "AllowedToFail",
    "Asynchronous",
    "ConditionalExecution",
    "HasDependencies",
    "Operation",
    "Rollbackable",
    "Scheduled",
    "WithinTransaction",
    # Models
    "Capability",
    "DispatchPayload",
    "ErrorRecord",
    "ExecutionMethod",
    "ExecutionRecord",
    "MigrationDescriptor",
    "OperationDescriptor",
    "OperationState",
    "Task",
    "TaskPreview",
    # Discovery and resolution
    "DependencyGraph",
    "DependencyResolver",
    "MigrationSource",
    "OperationDiscovery",
    "OperationLoader",
    "describe_operation",
    "merge_tasks",
    # Execution
    "DispatchTransport",
    "ExecutionOutcome",
    "InMemoryQueue",
    "NullTransactionManager",
    "OperationRunner",
    "QueueWorker",
    "RollbackCoordinator",
    "RollbackReport",
    "TransactionManager",
    # Orchestration
    "DistributedLock",
    "LockHandle",
    "Orchestrator",
    "SequencerConfig",
    "SequencerManager",
    "SequencerServices",
    "build_services",
    "create_orchestrator",
    # Errors
    "CircularDependencyError",
    "ConfigurationError",
    "DuplicateOperationError",
    "ExecutionRecordNotFoundError",
    "InvalidOperationError",
    "InvalidStateTransitionError",
    "LockAcquisitionTimeoutError",
    "MissingDependencyError",
    "MissingExecutionHistoryError",
    "SequencerError",
    "SkipOperation",
    "UnknownStrategyError",
    "WaveExecutionError",
]
