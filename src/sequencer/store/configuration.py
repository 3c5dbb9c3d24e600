"""State store settings, read from ``sequencer.yaml`` or ``SEQUENCER_STORE_*``."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

BACKENDS = frozenset({"memory", "filesystem"})


def normalise_backend(name: str) -> str:
    """Lower-case a backend name and reject anything outside ``BACKENDS``.

    Raises:
        ValueError: If the backend is not supported.

    """
    backend = name.lower()
    if backend not in BACKENDS:
        raise ValueError(f"Backend must be one of {sorted(BACKENDS)}, got: {name}")
    return backend


class StateStoreConfiguration(BaseModel):
    """Where execution records and error records are kept.

    The filesystem backend writes ``records/`` and ``errors/`` under ``path``;
    the memory backend keeps everything in the current process and is meant
    for tests and dry experiments.

    Example:
        ```python
        StateStoreConfiguration(backend="filesystem", path=Path(".state"))
        StateStoreConfiguration.from_properties({})  # SEQUENCER_STORE_* or defaults
        ```

    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: str = Field(default="filesystem", description="'memory' or 'filesystem'")
    path: Path = Field(default=Path(".sequencer"), description="Filesystem backend root")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Normalise the backend name."""
        return normalise_backend(v)

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> Self:
        """Build from ``properties``, filling gaps from the environment.

        Environment variables used:
        - SEQUENCER_STORE_BACKEND: Backend type (default: "filesystem")
        - SEQUENCER_STORE_PATH: Base directory (default: ".sequencer")

        Raises:
            ValidationError: If the merged values are invalid.

        """
        defaults = {
            "backend": os.getenv("SEQUENCER_STORE_BACKEND", "filesystem"),
            "path": os.getenv("SEQUENCER_STORE_PATH", ".sequencer"),
        }
        return cls.model_validate(defaults | properties)
