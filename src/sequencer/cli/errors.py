"""Error reporting for sequencer CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import override

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from sequencer.errors import (
    ConfigurationError,
    LockAcquisitionTimeoutError,
    WaveExecutionError,
)

logger = logging.getLogger(__name__)
console = Console()

_HINTS: tuple[tuple[type[BaseException], str], ...] = (
    (
        LockAcquisitionTimeoutError,
        "Another sequencer process holds the lock. Retry once it finishes.",
    ),
    (
        WaveExecutionError,
        "Run 'sequencer status --failed' for the recorded error details.",
    ),
    (
        ConfigurationError,
        "Check sequencer.yaml, SEQUENCER_* variables and operation declarations.",
    ),
)


class CLIError(Exception):
    """Failure of a sequencer command, carrying the command name and cause."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        """Initialise CLI error with context.

        Args:
            message: Human-readable error message describing what went wrong
            command: Name of the CLI command that failed (e.g., "process", "status")
            original_error: The underlying exception that caused this CLI error

        """
        super().__init__(message)
        self.command = command
        self.original_error = original_error

    @override
    def __str__(self) -> str:
        base_message = super().__str__()
        if self.command:
            return f"CLI command '{self.command}' failed: {base_message}"
        return base_message

    @property
    def hint(self) -> str | None:
        """Remediation hint for the underlying error kind, if one applies."""
        if self.original_error is None:
            return None
        for error_type, hint in _HINTS:
            if isinstance(self.original_error, error_type):
                return hint
        return None


def _render(error: CLIError, title: str) -> None:
    body = f"[red]{escape(str(error))}[/red]"
    if error.hint:
        body += f"\n\n[dim]{escape(error.hint)}[/dim]"
    console.print(Panel(body, title=f"❌ {title}", border_style="red"))


@contextmanager
def cli_error_handler(command: str, title: str) -> Generator[None]:
    """Report any failure inside the block as an error panel and exit with code 1.

    Args:
        command: CLI command name for error context.
        title: Panel title for the error display.

    """
    try:
        yield
    except CLIError as e:
        logger.error("%s: %s", title, e)
        _render(e, title)
        raise typer.Exit(1) from e
    except Exception as e:
        cli_error = CLIError(str(e), command=command, original_error=e)
        logger.error("%s: %s", title, cli_error)
        logger.debug("Unhandled error in '%s'", command, exc_info=e)
        _render(cli_error, title)
        raise typer.Exit(1) from cli_error
