"""CLI command implementation for inspecting execution state."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from sequencer.cli.errors import cli_error_handler
from sequencer.cli.formatting import OutputFormatter
from sequencer.cli.infrastructure import setup_services
from sequencer.logging import setup_logging
from sequencer.models import ErrorRecord, ExecutionRecord, OperationState
from sequencer.services import SequencerServices

logger = logging.getLogger(__name__)


async def _failed_records(
    services: SequencerServices,
) -> tuple[list[ExecutionRecord], dict[str, list[ErrorRecord]]]:
    """Collect failed records with their error detail."""
    records = [
        r for r in await services.store.list_records() if r.state == OperationState.FAILED
    ]
    errors = {r.id: await services.store.list_errors(r.id) for r in records}
    return records, errors


def status_command(
    pending: bool = False,
    failed: bool = False,
    config_path: Path | None = None,
    log_level: str = "INFO",
) -> None:
    """CLI command implementation for showing execution state.

    Without filters every execution record is listed.

    Args:
        pending: List operations that still need to run
        failed: List failed executions with their error detail
        config_path: Configuration file (defaults to ./sequencer.yaml)
        log_level: Logging level

    """
    setup_logging(level=log_level)
    formatter = OutputFormatter()

    with cli_error_handler("status", "Status failed"):
        services = setup_services("status", config_path)

        if pending:
            formatter.format_pending(asyncio.run(services.discovery.list_pending()))
        if failed:
            records, errors = asyncio.run(_failed_records(services))
            formatter.format_records(records, "❌ Failed Executions")
            formatter.format_failures(records, errors)
        if not pending and not failed:
            records = asyncio.run(services.store.list_records())
            formatter.format_records(records, "📊 Execution Records")
