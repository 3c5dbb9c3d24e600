"""Lock backend factory."""

from __future__ import annotations

import logging

from sequencer.lock.base import LockBackend
from sequencer.lock.configuration import LockConfiguration
from sequencer.lock.distributed import DistributedLock
from sequencer.lock.filesystem import FilesystemLockBackend
from sequencer.lock.in_memory import InMemoryLockBackend

logger = logging.getLogger(__name__)


class LockFactory:
    """Build the configured lock backend and the lock wrapping it."""

    def __init__(self, config: LockConfiguration | None = None) -> None:
        self._config = config or LockConfiguration.from_properties({})

    def create_backend(self) -> LockBackend:
        """Create the lease backend named by the configuration."""
        if self._config.backend == "memory":
            logger.debug("Using in-memory lock backend")
            return InMemoryLockBackend()

        logger.debug("Using filesystem lock backend at %s", self._config.path)
        return FilesystemLockBackend(self._config.path)

    def create(self) -> DistributedLock:
        """Create a lock over a fresh backend."""
        return DistributedLock(self.create_backend(), self._config.poll_interval)
