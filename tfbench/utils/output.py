"""Output formatting utilities.

Provides TTY-aware console output for tfbench:
- stdout console: for progress and the report
- JSON error output for CI integration (--json-errors)

TTY detection (git-style):
- When stdout is a TTY: Rich formatting, colors, progress bars
- When stdout redirected: Plain text, no colors
"""

import json
import sys
from pathlib import Path
from typing import Any, Optional, Union

from rich.console import Console
from rich.markup import escape

from ..core.exceptions import ExitCode, format_json_error

_stdout_is_tty = sys.stdout.isatty()

# Main console (stdout) - for progress and the report
console = Console(
    force_terminal=_stdout_is_tty,
    no_color=not _stdout_is_tty,
)


def print_error(message: str) -> None:
    """Print error message."""
    console.print(f"[red]Error: {escape(message)}[/red]", markup=True, highlight=False)


def print_report(text: str) -> None:
    """Print a rendered report verbatim (no markup, no highlighting)."""
    console.print(text, markup=False, highlight=False, soft_wrap=True, end="")


def handle_error(
    exc: Exception,
    json_errors: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> int:
    """Handle an exception with appropriate output format.

    Args:
        exc: The exception to handle
        json_errors: If True, output JSON format; otherwise Rich format
        context: Optional additional context (strategy, resource type, etc.)

    Returns:
        Exit code to use for sys.exit()
    """
    if json_errors:
        print(format_json_error(exc, context))
    else:
        print_error(str(exc))

    if hasattr(exc, "exit_code"):
        return exc.exit_code
    return ExitCode.GENERAL_ERROR


def print_json(data: Any, file: Optional[Any] = None) -> None:
    """Print data as formatted JSON to stdout or specified file.

    Args:
        data: Data to serialize and print
        file: Optional file object (defaults to stdout)
    """
    json_str = json.dumps(data, indent=2, default=str)
    print(json_str, file=file or sys.stdout)


def write_text_file(path: Union[Path, str], content: str) -> None:
    """Write text content to a file, creating parent directories.

    Args:
        path: Path to write to
        content: Text content to write
    """
    p = Path(path) if not isinstance(path, Path) else path
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content)
