"""Command implementations for tf-bench CLI."""

from .apply import apply
from .refresh import refresh
from .version import version

__all__ = ["apply", "refresh", "version"]
