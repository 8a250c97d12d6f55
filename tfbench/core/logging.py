"""
Logging configuration for tfbench.

Provides centralized logging setup with verbosity levels:
- 0 (default): WARNING - errors and warnings only
- 1 (-v):      INFO - key operations (measurements, per-type results)
- 2 (-vv):     DEBUG - detailed info (commands, skipped event lines)
- 3+ (-vvv):   TRACE - everything (raw event log lines)

Messages logged while a measurement is in progress carry a prefix
describing it, e.g. ``[isolation:aws_s3_bucket:2/3]``.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Optional

# Custom TRACE level (more verbose than DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self, message, *args, **kwargs):
    """Log at TRACE level."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


logging.Logger.trace = trace


@dataclass
class BenchmarkContext:
    """What is currently being measured.

    Examples of the rendered prefix:
        [event-log]
        [event-log:2/3]
        [isolation:aws_s3_bucket]
        [isolation:aws_s3_bucket:2/3]
    """
    strategy: Optional[str] = None
    resource_type: Optional[str] = None
    iteration: Optional[int] = None
    total_iterations: Optional[int] = None

    def format_prefix(self) -> str:
        if not self.strategy:
            return ""

        parts = [self.strategy]
        if self.resource_type:
            parts.append(self.resource_type)
        if self.iteration is not None and self.total_iterations:
            parts.append(f"{self.iteration}/{self.total_iterations}")

        return f"[{':'.join(parts)}]"


_current_context: Optional[BenchmarkContext] = None


def get_benchmark_context() -> Optional[BenchmarkContext]:
    """Get the current benchmark context."""
    return _current_context


def set_benchmark_context(context: Optional[BenchmarkContext]) -> None:
    """Set the current benchmark context (None clears it)."""
    global _current_context
    _current_context = context


def update_benchmark_context(**kwargs) -> None:
    """Update fields of the current context, creating one if needed.

    Example:
        update_benchmark_context(resource_type="random_id", iteration=1)
    """
    global _current_context
    if _current_context is None:
        _current_context = BenchmarkContext()
    for key, value in kwargs.items():
        if hasattr(_current_context, key):
            setattr(_current_context, key, value)


class BenchmarkContextFormatter(logging.Formatter):
    """Formatter that includes the benchmark context if available."""

    def format(self, record):
        ctx = get_benchmark_context()
        if ctx:
            prefix = ctx.format_prefix()
            if prefix:
                record.msg = f"{prefix} {record.msg}"
        return super().format(record)


def setup_logging(verbosity: int = 0, quiet: bool = False) -> logging.Logger:
    """Configure logging based on verbosity level.

    Args:
        verbosity: Number of -v flags (0=WARNING, 1=INFO, 2=DEBUG, 3+=TRACE)
        quiet: If True, suppress all output except errors

    Returns:
        The configured root logger for tfbench
    """
    if quiet:
        level = logging.ERROR
    elif verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity == 2:
        level = logging.DEBUG
    else:
        level = TRACE

    logger = logging.getLogger("tfbench")
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if verbosity >= 2:
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        formatter = BenchmarkContextFormatter(fmt, datefmt="%H:%M:%S")
    elif verbosity == 1:
        formatter = BenchmarkContextFormatter("[%(levelname)s] %(message)s")
    else:
        # Warnings only: "WARN: ..." like the report header notes
        formatter = logging.Formatter("%(levelname)s: %(message)s")

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # At TRACE level, also enable debug for external libs (requests, urllib3)
    if verbosity >= 3:
        logging.getLogger().setLevel(logging.DEBUG)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger for a module.

    Args:
        name: Module name (e.g., "tfbench.bench.isolation").
              If None, returns the root tfbench logger.
    """
    if name is None:
        return logging.getLogger("tfbench")
    return logging.getLogger(name)
