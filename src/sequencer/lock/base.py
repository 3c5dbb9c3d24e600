"""Lock backend interface and lease handle."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict


class LockHandle(BaseModel):
    """Proof of a held lease, required to release it."""

    model_config = ConfigDict(frozen=True)

    name: str
    token: str
    """Owner token; only the holder of this token may release the lease."""

    ttl: float


class LockBackend(ABC):
    """Storage for named, expiring leases.

    Implementations must make ``try_lock`` atomic with respect to every other
    participant sharing the backend, and must let a lease whose ttl elapsed be
    taken over by the next caller.
    """

    @abstractmethod
    def try_lock(self, name: str, ttl: float) -> LockHandle | None:
        """Attempt to take the lease once.

        Args:
            name: Lock name.
            ttl: Seconds until the lease expires if never released.

        Returns:
            A handle when the lease was taken, None when it is held elsewhere.

        """
        ...

    @abstractmethod
    def release(self, handle: LockHandle) -> None:
        """Release a lease.

        Releasing an expired, taken-over or already released lease is a no-op.
        """
        ...
