"""Operation base class and capability mixins.

An operation file exposes a module-level ``operation`` object built from
these classes. Capabilities are collected into an explicit ``capabilities``
set when a class is created, so the engine dispatches on the declared set
rather than inspecting types::

    class SeedUsers(Rollbackable, WithinTransaction):
        def handle(self) -> None: ...
        def rollback(self) -> None: ...

    operation = SeedUsers()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ClassVar

from sequencer.models import Capability


class Operation(ABC):
    """A discrete unit of deployment-time work."""

    capability: ClassVar[Capability] = Capability.OPERATION
    """Capability contributed by this class to its subclasses."""

    capabilities: ClassVar[frozenset[Capability]] = frozenset({Capability.OPERATION})
    """Every capability declared by this class and its bases."""

    queue: ClassVar[str | None] = None
    """Queue override for asynchronous dispatch."""

    timeout: ClassVar[float | None] = None
    """Seconds the background worker allows the operation to run."""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        declared = {Capability.OPERATION}
        for base in cls.__mro__:
            contributed = base.__dict__.get("capability")
            if contributed is not None:
                declared.add(contributed)
        cls.capabilities = frozenset(declared)

    def supports(self, capability: Capability) -> bool:
        """Check whether this operation declares a capability."""
        return capability in self.capabilities

    @abstractmethod
    def handle(self) -> None:
        """Perform the operation's work."""


class Asynchronous(Operation):
    """Operation dispatched to the background transport instead of running inline."""

    capability = Capability.ASYNCHRONOUS


class Rollbackable(Operation):
    """Operation with a compensating action invoked when a later operation fails."""

    capability = Capability.ROLLBACKABLE

    @abstractmethod
    def rollback(self) -> None:
        """Undo the effects of ``handle``."""


class ConditionalExecution(Operation):
    """Operation that decides at run time whether it should run at all."""

    capability = Capability.CONDITIONAL_EXECUTION

    @abstractmethod
    def should_run(self) -> bool:
        """Return False to record the operation as skipped without running it."""


class WithinTransaction(Operation):
    """Operation that always runs inside a transaction scope."""

    capability = Capability.WITHIN_TRANSACTION


class AllowedToFail(Operation):
    """Operation whose failure is recorded but does not halt a wave run."""

    capability = Capability.ALLOWED_TO_FAIL


class HasDependencies(Operation):
    """Operation that must run after other operations."""

    capability = Capability.HAS_DEPENDENCIES

    @abstractmethod
    def depends_on(self) -> list[str]:
        """Return identities (or file names) of the operations this one needs."""


class Scheduled(Operation):
    """Operation that must not run before a point in time."""

    capability = Capability.SCHEDULED

    @abstractmethod
    def execute_at(self) -> datetime:
        """Return the earliest time the operation may run."""
