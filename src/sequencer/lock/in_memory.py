"""In-memory lock backend for single-process deployments and tests."""

from __future__ import annotations

import threading
import time
import uuid
from typing import override

from sequencer.lock.base import LockBackend, LockHandle


class InMemoryLockBackend(LockBackend):
    """Lease table guarded by a thread lock, with monotonic-clock expiry.

    Share one instance between every participant that must be serialised.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # name -> (token, monotonic expiry)
        self._leases: dict[str, tuple[str, float]] = {}

    @override
    def try_lock(self, name: str, ttl: float) -> LockHandle | None:
        now = time.monotonic()
        with self._guard:
            current = self._leases.get(name)
            if current is not None and current[1] > now:
                return None
            token = uuid.uuid4().hex
            self._leases[name] = (token, now + ttl)
        return LockHandle(name=name, token=token, ttl=ttl)

    @override
    def release(self, handle: LockHandle) -> None:
        with self._guard:
            current = self._leases.get(handle.name)
            if current is not None and current[0] == handle.token:
                del self._leases[handle.name]
