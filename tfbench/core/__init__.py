"""Core components for tfbench."""

from .config import BenchmarkConfig, Config, load_config
from .exceptions import BenchmarkError, ExitCode
from .logging import get_logger, setup_logging
from .progress import NullProgress, ProgressSink, RichProgressSink, is_quiet, progress, set_quiet
from .runner import CommandRunner

__all__ = [
    "BenchmarkConfig",
    "BenchmarkError",
    "CommandRunner",
    "Config",
    "ExitCode",
    "NullProgress",
    "ProgressSink",
    "RichProgressSink",
    "get_logger",
    "is_quiet",
    "load_config",
    "progress",
    "set_quiet",
    "setup_logging",
]
