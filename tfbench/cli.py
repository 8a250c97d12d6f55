#!/usr/bin/env python3
"""
tf-bench - Terraform refresh benchmarks

Creates a report that details the Terraform refresh performance of a
terraform workspace.

Usage:
    tf-bench                           # same as `tf-bench refresh`
    tf-bench refresh --iterations 5
    tf-bench refresh --no-event-log --skip-controller-version
    tf-bench version

For more information: tf-bench --help
"""

from pathlib import Path
from typing import Optional

import click

from . import __version__
from .commands.apply import apply
from .commands.refresh import refresh
from .commands.utils import benchmark_options
from .commands.version import version
from .core.config import clear_config_cache
from .core.logging import setup_logging
from .core.progress import set_quiet, set_timestamps


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="tf-bench")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v, -vv, -vvv)")
@click.option("-q", "--quiet", is_flag=True, help="Suppress output except errors")
@click.option("--json-errors", is_flag=True, help="Output errors as JSON for CI integration")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Path to .tfbench.yaml")
@benchmark_options
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: int,
    quiet: bool,
    json_errors: bool,
    config_path: Optional[Path],
    **options,
) -> None:
    """tf-bench - measure Terraform refresh performance

    Run inside a terraform workspace. Without a command, `refresh` runs
    with the options given here.

    \b
    Commands:
      refresh  Measure refresh performance
      apply    Measure apply performance (not implemented yet)
      version  Output tf-bench build version

    \b
    Verbosity (diagnostics on stderr):
      -v       INFO level (per-measurement timings)
      -vv      DEBUG level (terraform commands, skipped events)
      -vvv     TRACE level (raw event log lines)
      -q       Quiet mode (errors only)

    \b
    Environment (unless --skip-controller-version):
      AVIATRIX_CONTROLLER_IP, AVIATRIX_USERNAME, AVIATRIX_PASSWORD

    \b
    Examples:
      tf-bench --skip-controller-version
      tf-bench -v refresh --no-event-log --var-file prod.tfvars
      tf-bench --json-errors refresh 2>&1 | jq .error  # CI mode
    """
    ctx.ensure_object(dict)
    ctx.obj["verbosity"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json_errors"] = json_errors
    ctx.obj["config_path"] = config_path
    setup_logging(verbose, quiet)
    # When json_errors is enabled, also set quiet to suppress progress messages
    set_quiet(quiet or json_errors)
    set_timestamps(verbose >= 1 and not quiet and not json_errors)
    clear_config_cache()

    if ctx.invoked_subcommand is None:
        ctx.invoke(refresh, json_output=False, **options)


cli.add_command(refresh)
cli.add_command(apply)
cli.add_command(version)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
