"""Durable execution state storage for operation records."""

from sequencer.store.base import ExecutionStateStore
from sequencer.store.configuration import StateStoreConfiguration
from sequencer.store.factory import StateStoreFactory
from sequencer.store.filesystem import FilesystemStateStore
from sequencer.store.in_memory import InMemoryStateStore

__all__ = [
    "ExecutionStateStore",
    "FilesystemStateStore",
    "InMemoryStateStore",
    "StateStoreConfiguration",
    "StateStoreFactory",
]
