"""Execution state store factory."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from sequencer.errors import ConfigurationError
from sequencer.store.base import ExecutionStateStore
from sequencer.store.configuration import StateStoreConfiguration
from sequencer.store.filesystem import FilesystemStateStore
from sequencer.store.in_memory import InMemoryStateStore

logger = logging.getLogger(__name__)


class StateStoreFactory:
    """Build the state store backend named by a configuration.

    Without an explicit configuration the ``SEQUENCER_STORE_*`` environment
    variables are read at creation time.
    """

    def __init__(self, config: StateStoreConfiguration | None = None) -> None:
        self._config = config

    def _resolve_config(self) -> StateStoreConfiguration:
        if self._config is not None:
            return self._config
        try:
            return StateStoreConfiguration.from_properties({})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid state store environment: {e}") from e

    def create(self) -> ExecutionStateStore:
        """Create the configured store.

        Raises:
            ConfigurationError: If the environment names an unsupported backend.

        """
        config = self._resolve_config()
        if config.backend == "memory":
            logger.info("Using in-memory execution state store")
            return InMemoryStateStore()

        logger.info("Using filesystem execution state store at %s", config.path)
        return FilesystemStateStore(config.path)
