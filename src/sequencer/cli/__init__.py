"""CLI command implementations for the sequencer."""

from sequencer.cli.errors import CLIError
from sequencer.cli.process import process_command
from sequencer.cli.status import status_command

__all__ = [
    "CLIError",
    "process_command",
    "status_command",
]
