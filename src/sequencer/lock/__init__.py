"""Advisory locking for serialising orchestration runs."""

from sequencer.lock.base import LockBackend, LockHandle
from sequencer.lock.configuration import LockConfiguration
from sequencer.lock.distributed import DistributedLock
from sequencer.lock.factory import LockFactory
from sequencer.lock.filesystem import FilesystemLockBackend
from sequencer.lock.in_memory import InMemoryLockBackend

__all__ = [
    "DistributedLock",
    "FilesystemLockBackend",
    "InMemoryLockBackend",
    "LockBackend",
    "LockConfiguration",
    "LockFactory",
    "LockHandle",
]
