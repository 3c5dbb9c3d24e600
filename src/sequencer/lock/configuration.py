"""Process lock settings, read from ``sequencer.yaml`` or ``SEQUENCER_LOCK_*``."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, field_validator

from sequencer.store.configuration import normalise_backend


class LockConfiguration(BaseModel):
    """Configuration for the advisory process lock.

    Attributes:
        backend: Lease backend type ("memory" or "filesystem")
        path: Directory holding lease files for the filesystem backend
        name: Lock name shared by every participant
        timeout: Seconds to wait for the lock before giving up
        ttl: Seconds a lease survives if its holder never releases it
        poll_interval: Seconds between acquisition attempts

    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: str = Field(default="filesystem", description="'memory' or 'filesystem'")
    path: Path = Field(default=Path(".sequencer/locks"))
    name: str = "sequencer:process"
    timeout: PositiveFloat = 60
    ttl: PositiveFloat = 600
    poll_interval: PositiveFloat = 0.1

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Normalise the backend name."""
        return normalise_backend(v)

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> Self:
        """Build from ``properties``, filling gaps from the environment.

        Environment variables used:
        - SEQUENCER_LOCK_BACKEND: Backend type (default: "filesystem")
        - SEQUENCER_LOCK_PATH: Lease directory (default: ".sequencer/locks")

        """
        defaults = {
            "backend": os.getenv("SEQUENCER_LOCK_BACKEND", "filesystem"),
            "path": os.getenv("SEQUENCER_LOCK_PATH", ".sequencer/locks"),
        }
        return cls.model_validate(defaults | properties)
