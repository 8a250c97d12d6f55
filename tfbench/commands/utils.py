"""
Shared utilities for command implementations.
"""

import os
from pathlib import Path
from typing import Callable, Optional, Union

import click

from ..controller import CONTROLLER_ENV_VARS, missing_controller_env
from ..core.config import BenchmarkConfig, Config
from ..core.exceptions import ExecutionError, MissingCredentials, ReportWriteError, ToolNotAvailable
from ..core.logging import get_logger
from ..core.runner import CommandRunner
from ..utils.output import write_text_file

logger = get_logger(__name__)


def benchmark_options(func: Callable) -> Callable:
    """Options shared by the refresh and apply commands.

    Options left unset fall back to the config file, then to built-in defaults.
    """
    decorators = [
        click.option("--skip-controller-version", is_flag=True, default=False,
                     help="Skip adding controller version to generated report"),
        click.option("--iterations", type=click.IntRange(min=1), default=None,
                     help="How many times to run each refresh test (default: 3). "
                          "Higher number will be more accurate but slower"),
        click.option("--var-file", type=click.Path(dir_okay=False), default=None,
                     help="var-file to pass to terraform commands"),
        click.option("--event-log/--no-event-log", default=None,
                     help="Use event log method of measuring refresh (default: on)"),
        click.option("--parallelism", type=click.IntRange(min=1), default=None,
                     help="Value passed to terraform refresh -parallelism (default: 10)"),
        click.option("--workspace", "-w", type=click.Path(exists=True, file_okay=False),
                     default=".", show_default=True, help="Terraform workspace directory"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def build_config(
    config: Config,
    skip_controller_version: bool = False,
    iterations: Optional[int] = None,
    var_file: Optional[str] = None,
    event_log: Optional[bool] = None,
    parallelism: Optional[int] = None,
    workspace: Union[str, Path] = ".",
) -> BenchmarkConfig:
    """Merge CLI options over config file values."""
    return BenchmarkConfig(
        skip_controller_version=skip_controller_version,
        iterations=iterations if iterations is not None else config.benchmark.iterations,
        var_file=var_file,
        event_log=event_log if event_log is not None else config.benchmark.event_log,
        parallelism=parallelism if parallelism is not None else config.benchmark.parallelism,
        workspace=Path(workspace),
    )


def make_runner(config: Config) -> CommandRunner:
    return CommandRunner(config.terraform.executable, timeout=config.terraform.timeout)


def validate_env(
    runner: CommandRunner,
    skip_controller_version: bool,
    environ: Optional[dict] = None,
) -> None:
    """Check that terraform runs and controller credentials are present.

    Raises:
        ToolNotAvailable: `terraform -help` failed
        MissingCredentials: controller variables unset (unless skipped)
    """
    try:
        runner.run("-help")
    except ExecutionError as e:
        if e.returncode is None:
            details = "not found or not executable"
        else:
            details = f"`-help` exited with code {e.returncode}"
        raise ToolNotAvailable(runner.executable, details) from e

    if skip_controller_version:
        return
    missing = missing_controller_env(os.environ if environ is None else environ)
    if missing:
        raise MissingCredentials(required=list(CONTROLLER_ENV_VARS), missing=missing)


def write_report(content: str, filename: str, directory: Union[str, Path] = ".") -> Path:
    """Persist a rendered report.

    Raises:
        ReportWriteError: the file could not be written
    """
    path = Path(directory) / filename
    try:
        write_text_file(path, content)
    except OSError as e:
        raise ReportWriteError(str(path), str(e)) from e
    logger.info(f"Wrote report to {path}")
    return path

