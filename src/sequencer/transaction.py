"""Transaction scope used to wrap synchronous operations."""

from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext
from typing import Protocol


class TransactionManager(Protocol):
    """Source of atomic transaction scopes.

    ``transaction()`` returns a context manager that commits when the block
    exits normally and rolls back when it raises. The exception propagates
    either way.
    """

    def transaction(self) -> AbstractContextManager[object]:
        """Open a transaction scope."""
        ...


class NullTransactionManager:
    """Transaction manager for deployments without a transactional resource."""

    def transaction(self) -> AbstractContextManager[object]:
        """Return a scope that does nothing."""
        return nullcontext()
