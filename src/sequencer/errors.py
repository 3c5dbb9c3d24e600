"""Error types for operation sequencing failures."""

from __future__ import annotations

from collections.abc import Iterable, Mapping


class SequencerError(Exception):
    """Base exception for all sequencer errors."""


class ConfigurationError(SequencerError):
    """Raised when the discovered operation set cannot be executed as configured.

    Configuration errors are always raised before any execution record is
    created.
    """


class CircularDependencyError(ConfigurationError):
    """Raised when a cycle is detected in the operation dependency graph."""

    def __init__(self, cycle: list[str]) -> None:
        """Initialise with the identities forming the cycle.

        Args:
            cycle: Identities on the cycle, starting and ending with the same node.

        """
        self.cycle = cycle
        super().__init__(
            "Circular dependency detected between operations: " + " -> ".join(cycle)
        )


class MissingDependencyError(ConfigurationError):
    """Raised when an operation depends on an operation that was not discovered."""


class DuplicateOperationError(ConfigurationError):
    """Raised when two discovered operations share the same identity."""


class InvalidOperationError(ConfigurationError):
    """Raised when an operation file does not expose a usable operation."""


class UnknownStrategyError(ConfigurationError):
    """Raised when no orchestrator is registered for a strategy name."""


class MissingExecutionHistoryError(ConfigurationError):
    """Raised when a repeat run selects operations that never completed."""

    def __init__(self, identities: Iterable[str]) -> None:
        """Initialise with every identity lacking a completed record.

        Args:
            identities: Identities of the selected operations without history.

        """
        self.identities = list(identities)
        super().__init__(
            "Cannot repeat operations that have never completed: "
            + ", ".join(self.identities)
        )


class LockAcquisitionTimeoutError(SequencerError):
    """Raised when the process lock could not be acquired within the timeout."""


class InvalidStateTransitionError(SequencerError):
    """Raised when an execution record would leave a terminal state."""


class ExecutionRecordNotFoundError(SequencerError):
    """Raised when an execution record does not exist in the state store."""


class WaveExecutionError(SequencerError):
    """Raised when a wave halts because one or more members failed."""

    def __init__(self, wave_index: int, failures: Mapping[str, BaseException]) -> None:
        """Initialise with the failing wave and its member failures.

        Args:
            wave_index: Zero-based index of the wave that halted the run.
            failures: Mapping of operation identity to the raised exception.

        """
        self.wave_index = wave_index
        self.failures = dict(failures)
        details = "; ".join(f"{name}: {exc}" for name, exc in self.failures.items())
        super().__init__(f"Wave {wave_index + 1} failed: {details}")


class SkipOperation(Exception):  # noqa: N818 - control-flow signal, not an error
    """Raised by an operation to record itself as skipped and let the run continue."""
