"""Shared CLI infrastructure setup."""

from __future__ import annotations

import logging
from pathlib import Path

from sequencer.cli.errors import CLIError
from sequencer.errors import ConfigurationError
from sequencer.services import SequencerServices, build_services
from sequencer.settings import SequencerConfig

logger = logging.getLogger(__name__)


def setup_services(command: str, config_path: Path | None = None) -> SequencerServices:
    """Load configuration and wire the sequencer collaborators.

    Args:
        command: CLI command name for error context.
        config_path: Explicit configuration file, or None for ``sequencer.yaml``.

    Returns:
        Wired services.

    Raises:
        CLIError: If the configuration cannot be loaded.

    """
    try:
        config = SequencerConfig.load(config_path)
    except ConfigurationError as e:
        raise CLIError(str(e), command=command, original_error=e) from e

    services = build_services(config)
    logger.debug(
        "Infrastructure setup complete (store=%s, lock=%s)",
        config.store.backend,
        config.lock.backend,
    )
    return services
