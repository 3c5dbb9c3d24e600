"""Background dispatch transport for asynchronous operations."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import override

from sequencer.models import DispatchPayload

logger = logging.getLogger(__name__)


class DispatchTransport(ABC):
    """Fire-and-forget channel to background workers.

    Completion is never reported through the transport; workers report it by
    updating the execution record in the state store.
    """

    @abstractmethod
    async def enqueue(self, queue_name: str, payload: DispatchPayload) -> None:
        """Hand a payload to the named queue."""
        ...


class InMemoryQueue(DispatchTransport):
    """Process-local FIFO queues, drained by ``QueueWorker``."""

    def __init__(self) -> None:
        self._queues: dict[str, deque[DispatchPayload]] = {}

    @override
    async def enqueue(self, queue_name: str, payload: DispatchPayload) -> None:
        self._queues.setdefault(queue_name, deque()).append(payload)
        logger.debug("Enqueued '%s' on queue '%s'", payload.identity, queue_name)

    def pop(self, queue_name: str) -> DispatchPayload | None:
        """Remove and return the oldest payload on a queue, if any."""
        queue = self._queues.get(queue_name)
        if not queue:
            return None
        return queue.popleft()

    def size(self, queue_name: str) -> int:
        """Number of payloads waiting on a queue."""
        return len(self._queues.get(queue_name, ()))

    def queue_names(self) -> list[str]:
        """Names of queues that have received payloads."""
        return list(self._queues)
