"""CLI command implementation for processing pending operations."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path

from sequencer.cli.errors import CLIError, cli_error_handler
from sequencer.cli.formatting import OutputFormatter
from sequencer.cli.infrastructure import setup_services
from sequencer.logging import setup_logging
from sequencer.models import ExecutionRecord, TaskPreview, utc_now
from sequencer.runner import ExecutionOutcome
from sequencer.services import SequencerServices

logger = logging.getLogger(__name__)


async def _drain_queues(services: SequencerServices) -> list[ExecutionOutcome]:
    """Run every operation dispatched during the run in this process."""
    worker = services.worker()
    outcomes: list[ExecutionOutcome] = []
    for queue_name in services.queue.queue_names():
        outcomes.extend(await worker.drain(queue_name))
    if outcomes:
        logger.info("Worker processed %d dispatched operations", len(outcomes))
    return outcomes


async def _records_since(services: SequencerServices, started: datetime) -> list[ExecutionRecord]:
    records = await services.store.list_records()
    return [r for r in records if r.executed_at >= started]


async def _process(  # noqa: PLR0913 - mirrors the CLI options
    services: SequencerServices,
    strategy: str | None,
    dry_run: bool,
    isolate: bool,
    from_timestamp: str | None,
    repeat: bool,
) -> tuple[list[TaskPreview] | None, list[ExecutionRecord]]:
    """Run the orchestrator and collect the records it produced.

    Raises:
        CLIError: If the run fails; records written before the failure are
            shown first.

    """
    orchestrator = services.orchestrator(strategy)
    started = utc_now()
    try:
        previews = await orchestrator.process(
            isolate=isolate,
            dry_run=dry_run,
            from_timestamp=from_timestamp,
            repeat=repeat,
        )
        if not dry_run:
            await _drain_queues(services)
    except Exception as e:
        logger.error("Processing failed: %s", e)
        records = await _records_since(services, started)
        if records:
            OutputFormatter().format_records(records, "📊 Execution Records")
        raise CLIError(str(e), command="process", original_error=e) from e

    if dry_run:
        return previews, []
    return previews, await _records_since(services, started)


def process_command(  # noqa: PLR0913 - Matches CLI entry point signature
    dry_run: bool = False,
    isolate: bool = False,
    from_timestamp: str | None = None,
    repeat: bool = False,
    strategy: str | None = None,
    config_path: Path | None = None,
    verbose: bool = False,
    log_level: str = "INFO",
) -> None:
    """CLI command implementation for processing pending operations.

    Args:
        dry_run: Show the execution plan without running anything
        isolate: Hold the process lock for the whole run
        from_timestamp: Only run tasks at or after this timestamp key
        repeat: Re-run operations that already completed
        strategy: Orchestrator strategy (defaults to the configured one)
        config_path: Configuration file (defaults to ./sequencer.yaml)
        verbose: Enable verbose output
        log_level: Logging level

    """
    effective_log_level = "DEBUG" if verbose else log_level
    setup_logging(level=effective_log_level)

    formatter = OutputFormatter()

    with cli_error_handler("process", "Processing failed"):
        services = setup_services("process", config_path)
        effective_strategy = strategy or services.config.strategy
        formatter.show_startup_banner(effective_strategy, dry_run, isolate)

        previews, records = asyncio.run(
            _process(services, effective_strategy, dry_run, isolate, from_timestamp, repeat)
        )

        if dry_run:
            formatter.format_preview(previews or [])
            return

        formatter.format_records(records, "📊 Execution Records")
        formatter.show_completion(len(records))
