"""Output formatting for sequencer CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from sequencer.models import (
    ErrorRecord,
    ExecutionRecord,
    OperationDescriptor,
    OperationState,
    TaskPreview,
)

logger = logging.getLogger(__name__)
console = Console()


def _format_time(moment: datetime | None) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S") if moment else "-"


def _finished_at(record: ExecutionRecord) -> datetime | None:
    return record.completed_at or record.failed_at or record.skipped_at or record.rolled_back_at


class OutputFormatter:
    """Handles formatting CLI output for different commands."""

    # Status text constants
    STATUS_TEXT: Mapping[OperationState, str] = {
        OperationState.PENDING: "[blue]Pending[/blue]",
        OperationState.RUNNING: "[cyan]Running[/cyan]",
        OperationState.COMPLETED: "[green]Completed[/green]",
        OperationState.FAILED: "[red]Failed[/red]",
        OperationState.SKIPPED: "[yellow]Skipped[/yellow]",
        OperationState.ROLLED_BACK: "[magenta]Rolled back[/magenta]",
    }

    def show_startup_banner(self, strategy: str, dry_run: bool, isolate: bool) -> None:
        """Show the run banner."""
        mode = "dry run" if dry_run else "execute"
        lock = ", isolated" if isolate else ""
        console.print(
            Panel(
                f"[bold]Strategy:[/bold] {strategy}\n[bold]Mode:[/bold] {mode}{lock}",
                title="🚀 Sequencer",
                border_style="blue",
            )
        )

    def format_preview(self, previews: Sequence[TaskPreview]) -> None:
        """Print the tasks a dry run would execute, in execution order."""
        if not previews:
            console.print("[yellow]No pending operations.[/yellow]")
            return

        table = Table(title="📋 Execution Plan", show_header=True, header_style="bold magenta")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Type", style="blue")
        table.add_column("Timestamp", style="cyan", no_wrap=True)
        table.add_column("Name", style="white", no_wrap=True)
        for position, preview in enumerate(previews, start=1):
            table.add_row(str(position), preview.type, preview.timestamp, preview.name)
        console.print(table)

    def format_records(self, records: Sequence[ExecutionRecord], title: str) -> None:
        """Print execution records as a table."""
        if not records:
            console.print("[yellow]No execution records.[/yellow]")
            return

        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("Operation", style="cyan", no_wrap=True)
        table.add_column("State")
        table.add_column("Method", style="blue")
        table.add_column("Executed", style="dim")
        table.add_column("Finished", style="dim")
        table.add_column("Reason", style="yellow")
        for record in records:
            table.add_row(
                record.identity,
                self.STATUS_TEXT[record.state],
                record.method,
                _format_time(record.executed_at),
                _format_time(_finished_at(record)),
                escape(record.skip_reason or ""),
            )
        console.print(table)

    def format_pending(self, descriptors: Sequence[OperationDescriptor]) -> None:
        """Print operations that have not completed yet."""
        if not descriptors:
            console.print("[green]All operations have completed.[/green]")
            return

        table = Table(title="⏳ Pending Operations", show_header=True, header_style="bold magenta")
        table.add_column("Timestamp", style="cyan", no_wrap=True)
        table.add_column("Operation", style="white", no_wrap=True)
        table.add_column("Capabilities", style="blue")
        for descriptor in descriptors:
            capabilities = sorted(c for c in descriptor.capabilities if c != "operation")
            table.add_row(descriptor.timestamp, descriptor.identity, ", ".join(capabilities))
        console.print(table)

    def format_failures(
        self,
        records: Sequence[ExecutionRecord],
        errors: Mapping[str, Sequence[ErrorRecord]],
    ) -> None:
        """Print failed records with their recorded error detail."""
        if not records:
            console.print("[green]No failed operations.[/green]")
            return

        console.print("\n[bold red]❌ Failed Operation Details:[/bold red]")
        for record in records:
            record_errors = errors.get(record.id, ())
            if not record_errors:
                console.print(
                    Panel(
                        "[dim]No error detail recorded[/dim]",
                        title=f"Error in {record.identity}",
                        border_style="red",
                    )
                )
                continue
            for error in record_errors:
                body = (
                    f"[bold]{error.exception}[/bold]: [red]{escape(error.message)}[/red]\n"
                    f"[dim]Context:[/dim] {escape(json.dumps(error.context, default=str))}\n\n"
                    f"{escape(error.trace)}"
                )
                console.print(
                    Panel(body, title=f"Error in {record.identity}", border_style="red")
                )

    def show_completion(self, count: int) -> None:
        """Show the completion message."""
        console.print(f"\n[bold green]✅ Processed {count} operations.[/bold green]")
