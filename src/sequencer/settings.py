"""Sequencer configuration loaded from ``sequencer.yaml`` with environment fallback."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError

from sequencer.errors import ConfigurationError
from sequencer.lock import LockConfiguration
from sequencer.store import StateStoreConfiguration

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("sequencer.yaml")


class QueueConfig(BaseModel):
    """Background dispatch settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = "default"
    """Queue used for asynchronous operations that do not name their own."""


class ErrorsConfig(BaseModel):
    """Failure recording settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    record: bool = True
    """Persist an ErrorRecord for every failed operation."""


class SequencerConfig(BaseModel):
    """Top-level configuration injected into orchestrators at construction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    discovery_paths: list[Path] = Field(
        default_factory=lambda: [Path("operations")],
        description="Directories scanned for operation files, in order",
    )
    strategy: str = Field(default="sequential", description="Default orchestrator strategy")
    auto_transaction: bool = Field(
        default=True,
        description="Wrap every synchronous operation in a transaction",
    )
    max_concurrency: PositiveInt = Field(
        default=10, description="Maximum wave members running at once"
    )
    require_history_for_repeat: bool = Field(
        default=True,
        description="Refuse repeat runs of operations that never completed",
    )
    lock: LockConfiguration = Field(default_factory=LockConfiguration)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    store: StateStoreConfiguration = Field(default_factory=StateStoreConfiguration)
    errors: ErrorsConfig = Field(default_factory=ErrorsConfig)

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> Self:
        """Create configuration from properties with environment fallback.

        Keys present in ``properties`` always win. Environment variables used
        for missing keys:
        - SEQUENCER_STRATEGY: Orchestrator strategy
        - SEQUENCER_DISCOVERY_PATHS: Operation directories (os.pathsep separated)
        - SEQUENCER_STORE_BACKEND / SEQUENCER_STORE_PATH: State store
        - SEQUENCER_LOCK_BACKEND / SEQUENCER_LOCK_PATH: Process lock

        Raises:
            ConfigurationError: If the resulting configuration is invalid.

        """
        config_data = properties.copy()

        if "strategy" not in config_data and (strategy := os.getenv("SEQUENCER_STRATEGY")):
            config_data["strategy"] = strategy
        if "discovery_paths" not in config_data and (
            paths := os.getenv("SEQUENCER_DISCOVERY_PATHS")
        ):
            config_data["discovery_paths"] = [p for p in paths.split(os.pathsep) if p]

        try:
            config_data["store"] = StateStoreConfiguration.from_properties(
                dict(config_data.get("store") or {})
            )
            config_data["lock"] = LockConfiguration.from_properties(
                dict(config_data.get("lock") or {})
            )
            return cls.model_validate(config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid sequencer configuration: {e}") from e

    @classmethod
    def load(cls, path: Path | None = None) -> Self:
        """Load configuration from a YAML file.

        Args:
            path: Configuration file. Defaults to ``sequencer.yaml`` in the
                working directory, which may be absent.

        Raises:
            ConfigurationError: If an explicit file is missing, or any file
                cannot be parsed or validated.

        """
        if path is None:
            path = DEFAULT_CONFIG_FILE
            if not path.exists():
                logger.debug("No %s found, using defaults", path)
                return cls.from_properties({})
        elif not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            raise ConfigurationError(f"Failed to read configuration {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid configuration format in {path}")

        logger.debug("Loaded configuration from %s", path)
        return cls.from_properties(data)
