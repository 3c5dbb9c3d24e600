"""Advisory lock serialising orchestration runs across participants."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sequencer.errors import LockAcquisitionTimeoutError
from sequencer.lock.base import LockBackend, LockHandle

logger = logging.getLogger(__name__)


class DistributedLock:
    """Acquire and release named leases on a shared backend.

    Acquisition polls the backend until the lease is taken or ``timeout``
    elapses. The lease ttl bounds how long a crashed holder can block others.
    """

    def __init__(self, backend: LockBackend, poll_interval: float = 0.1) -> None:
        """Initialise the lock.

        Args:
            backend: Lease storage shared by every participant.
            poll_interval: Seconds between acquisition attempts.

        """
        self._backend = backend
        self._poll_interval = poll_interval

    async def acquire(self, name: str, timeout: float, ttl: float) -> LockHandle:
        """Acquire the named lease, waiting up to ``timeout`` seconds.

        Raises:
            LockAcquisitionTimeoutError: If the lease is still held elsewhere
                when the timeout elapses.

        """
        deadline = time.monotonic() + timeout
        while True:
            handle = self._backend.try_lock(name, ttl)
            if handle is not None:
                logger.info("Acquired lock '%s'", name)
                return handle

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockAcquisitionTimeoutError(
                    f"Could not acquire lock '{name}' within {timeout} seconds; "
                    f"another process appears to be running operations"
                )
            await asyncio.sleep(min(self._poll_interval, remaining))

    def release(self, handle: LockHandle) -> None:
        """Release a held lease. Safe to call after expiry."""
        self._backend.release(handle)
        logger.info("Released lock '%s'", handle.name)

    @asynccontextmanager
    async def hold(self, name: str, timeout: float, ttl: float) -> AsyncIterator[LockHandle]:
        """Hold the named lease for the duration of the block."""
        handle = await self.acquire(name, timeout, ttl)
        try:
            yield handle
        finally:
            self.release(handle)
