"""
Progress output for tfbench.

Provides user-facing progress messages that print to stdout by default.
Separate from logging (which goes to stderr for debug/diagnostics).

Measurement strategies never print directly; they report through a
ProgressSink. The CLI passes a RichProgressSink, library callers get
NullProgress unless they supply their own.

Usage:
    from ..core.progress import progress, set_quiet, RichProgressSink

    progress("Found 11 resources in the state file.")

    sink = RichProgressSink()
    sink.start("random_id", total=3)
    sink.advance()
    sink.finish("average: 1.204s")
"""

import sys
from datetime import datetime
from typing import Optional, Protocol

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

# Global quiet flag - when True, suppresses progress output
_quiet = False

# Global timestamp flag - when True, includes timestamps in progress output
_show_timestamps = False


def set_quiet(quiet: bool = True) -> None:
    """Set global quiet mode."""
    global _quiet
    _quiet = quiet


def is_quiet() -> bool:
    """Check if quiet mode is enabled."""
    return _quiet


def set_timestamps(enabled: bool = True) -> None:
    """Enable or disable timestamps in progress output."""
    global _show_timestamps
    _show_timestamps = enabled


def progress(message: str, end: str = "\n", flush: bool = True) -> None:
    """Print progress message to stdout (unless quiet mode)."""
    if not _quiet:
        if _show_timestamps:
            timestamp = datetime.now().strftime("%H:%M:%S")
            message = f"{timestamp} {message}"
        print(message, end=end, flush=flush, file=sys.stdout)


class ProgressSink(Protocol):
    """Receives progress notifications from a measurement strategy."""

    def start(self, description: str, total: Optional[int] = None) -> None:
        """A measurement with `total` steps (None if unknown) begins."""

    def advance(self, amount: int = 1) -> None:
        """`amount` steps of the current measurement completed."""

    def finish(self, summary: Optional[str] = None) -> None:
        """The current measurement ended, optionally with a one-line summary."""


class NullProgress:
    """ProgressSink that discards everything."""

    def start(self, description: str, total: Optional[int] = None) -> None:
        pass

    def advance(self, amount: int = 1) -> None:
        pass

    def finish(self, summary: Optional[str] = None) -> None:
        pass


class RichProgressSink:
    """ProgressSink rendering one rich progress bar per measurement.

    Honors quiet mode: nothing is drawn while quiet.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._description = ""

    def start(self, description: str, total: Optional[int] = None) -> None:
        if _quiet:
            return
        self.finish()
        self._description = description
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        self._progress.start()
        self._task = self._progress.add_task(description, total=total)

    def advance(self, amount: int = 1) -> None:
        if self._progress is not None and self._task is not None:
            self._progress.advance(self._task, amount)

    def finish(self, summary: Optional[str] = None) -> None:
        if self._progress is None:
            return
        self._progress.stop()
        self._progress = None
        self._task = None
        if summary:
            self.console.print(f"  {self._description}: {summary}")
