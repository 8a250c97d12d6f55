"""Utility functions for tfbench."""

from .output import (
    handle_error,
    print_error,
    print_json,
    print_report,
    write_text_file,
)

__all__ = [
    "handle_error",
    "print_error",
    "print_json",
    "print_report",
    "write_text_file",
]
