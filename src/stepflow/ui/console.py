"""Console output formatting utilities for stepflow."""

from __future__ import annotations

import sys
import threading
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream=None, err_stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Output stream (defaults to sys.stdout at write time)
            err_stream: Error stream (defaults to sys.stderr at write time)
        """
        self.debug = debug
        self._stream = stream
        self._err_stream = err_stream
        # Steps report from many worker threads; keep lines whole.
        self._lock = threading.Lock()

    @property
    def out(self):
        return self._stream or sys.stdout

    @property
    def err(self):
        return self._err_stream or sys.stderr

    def _write(self, text: str, *, error: bool = False) -> None:
        with self._lock:
            print(text, file=self.err if error else self.out)

    def print_run_started(self, scenario: str, step_count: int) -> None:
        """Print run start information."""
        self._write(f"\nRUN STARTED\nScenario: {scenario}\nSteps: {step_count}\n")

    def print_step_start(self, name: str, is_group: bool = False) -> None:
        """Print step or group start message."""
        prefix = "GROUP STARTED" if is_group else "STEP STARTED"
        self._write(f"{prefix}: {name}")

    def print_step_output(self, name: str, line: str) -> None:
        self._write(f"[{name}] {line}")

    def print_success(self, name: str) -> None:
        """Print success message."""
        self._write(f"SUCCEEDED: {name}")

    def print_failure(
        self,
        name: str,
        exit_code: Optional[int] = None,
        reason: Optional[str] = None,
        is_group: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Step or group name
            exit_code: Optional exit code
            reason: Optional failure reason, shown in full only in debug mode
            is_group: If True, print "GROUP FAILED", otherwise "STEP FAILED"
        """
        prefix = "GROUP FAILED" if is_group else "STEP FAILED"
        lines = [f"{prefix}: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if reason:
            if self.debug:
                lines.append(f"Error details: {reason}")
            else:
                lines.append(f"Error: {reason.splitlines()[0]}")
        self._write("\n".join(lines))

    def print_exit_code(self, exit_code: int) -> None:
        status = "SUCCEEDED" if exit_code == 0 else "FAILED"
        self._write(f"\nRUN {status} (exit={exit_code})")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        for detail in details or []:
            lines.append(f"  {detail}")
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._write("\n".join(lines), error=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            self._write(text.rstrip(), error=True)
        else:
            self._write(f"Error: {exc}", error=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._write(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._write(f"[DEBUG] {message}", error=True)


# Global console instance (set by the embedding application)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
