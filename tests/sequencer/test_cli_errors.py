"""Tests for CLI error wrapping and reporting."""

import pytest
import typer

from sequencer.cli.errors import CLIError, cli_error_handler
from sequencer.errors import (
    CircularDependencyError,
    LockAcquisitionTimeoutError,
    WaveExecutionError,
)


class TestCLIError:
    """Tests for CLIError formatting."""

    def test_message_includes_command(self) -> None:
        error = CLIError("lock busy", command="process")

        assert str(error) == "CLI command 'process' failed: lock busy"

    def test_message_without_command(self) -> None:
        assert str(CLIError("lock busy")) == "lock busy"

    @pytest.mark.parametrize(
        ("original", "fragment"),
        [
            (LockAcquisitionTimeoutError("busy"), "holds the lock"),
            (WaveExecutionError(0, {"a": RuntimeError("x")}), "status --failed"),
            (CircularDependencyError(["a", "b", "a"]), "sequencer.yaml"),
        ],
    )
    def test_hint_follows_original_error(self, original: Exception, fragment: str) -> None:
        error = CLIError(str(original), command="process", original_error=original)

        assert error.hint is not None
        assert fragment in error.hint

    def test_no_hint_for_operation_failures(self) -> None:
        error = CLIError("boom", command="process", original_error=RuntimeError("boom"))

        assert error.hint is None


class TestCliErrorHandler:
    """Tests for the cli_error_handler context manager."""

    def test_exits_with_code_one_on_failure(self) -> None:
        with pytest.raises(typer.Exit) as exc_info:
            with cli_error_handler("status", "Status failed"):
                raise RuntimeError("store unavailable")

        assert exc_info.value.exit_code == 1
        assert isinstance(exc_info.value.__cause__, CLIError)
        assert exc_info.value.__cause__.command == "status"

    def test_cli_error_is_not_rewrapped(self) -> None:
        original = CLIError("bad config", command="process")

        with pytest.raises(typer.Exit) as exc_info:
            with cli_error_handler("status", "Status failed"):
                raise original

        assert exc_info.value.__cause__ is original

    def test_success_passes_through(self) -> None:
        with cli_error_handler("status", "Status failed"):
            result = 1 + 1

        assert result == 2
