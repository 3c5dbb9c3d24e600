"""Main entry point for the sequencer.

This module provides the command-line interface for the sequencer,
including commands for:
- Processing pending operations with a chosen strategy
- Processing scheduled operations that are due
- Inspecting execution records, pending operations and failures
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv

from sequencer.cli import process_command, status_command

# Load environment variables from .env in the working directory
load_dotenv()

app = typer.Typer(name="sequencer")


@app.command()
def process(  # noqa: PLR0913 - CLI entry point with many options
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show the execution plan without running anything"),
    ] = False,
    isolate: Annotated[
        bool,
        typer.Option("--isolate", help="Hold the process lock for the whole run"),
    ] = False,
    from_timestamp: Annotated[
        str | None,
        typer.Option(
            "--from",
            help="Only run tasks whose timestamp is at or after this key, e.g. 2024_01_01_000000",
        ),
    ] = None,
    repeat: Annotated[
        bool,
        typer.Option("--repeat", help="Re-run operations that already completed"),
    ] = False,
    strategy: Annotated[
        str | None,
        typer.Option(
            "--strategy",
            help="Orchestrator strategy: sequential, graph, batch, transactional-batch, "
            "allowed-to-fail, scheduled",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Configuration file, defaults to ./sequencer.yaml",
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable CLI verbose output (sets log level to DEBUG)",
        ),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            case_sensitive=False,
        ),
    ] = "INFO",
) -> None:
    """Process pending operations.

    Example:
        sequencer process --dry-run
        sequencer process --strategy graph --isolate

    """
    process_command(dry_run, isolate, from_timestamp, repeat, strategy, config, verbose, log_level)


@app.command(name="process-scheduled")
def process_scheduled(
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show the execution plan without running anything"),
    ] = False,
    isolate: Annotated[
        bool,
        typer.Option("--isolate", help="Hold the process lock for the whole run"),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Configuration file, defaults to ./sequencer.yaml",
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable CLI verbose output (sets log level to DEBUG)",
        ),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            case_sensitive=False,
        ),
    ] = "INFO",
) -> None:
    """Process pending operations whose scheduled time has arrived."""
    process_command(
        dry_run=dry_run,
        isolate=isolate,
        strategy="scheduled",
        config_path=config,
        verbose=verbose,
        log_level=log_level,
    )


@app.command()
def status(
    pending: Annotated[
        bool,
        typer.Option("--pending", help="List operations that still need to run"),
    ] = False,
    failed: Annotated[
        bool,
        typer.Option("--failed", help="List failed executions with error detail"),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            help="Configuration file, defaults to ./sequencer.yaml",
            dir_okay=False,
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option(
            "--log-level",
            help="Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            case_sensitive=False,
        ),
    ] = "INFO",
) -> None:
    """Show execution records, pending operations or failures."""
    status_command(pending, failed, config, log_level)


if __name__ == "__main__":
    app()
