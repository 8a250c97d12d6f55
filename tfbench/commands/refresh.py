"""
tf-bench refresh - Measure refresh performance.

Usage:
    tf-bench refresh
    tf-bench refresh --no-event-log --iterations 5
    tf-bench refresh --var-file prod.tfvars --skip-controller-version
    tf-bench refresh --json > report.json
"""

import sys

import click

from ..bench.benchmark import refresh_benchmark
from ..core.config import load_config
from ..core.exceptions import BenchmarkError
from ..core.logging import get_logger
from ..core.progress import RichProgressSink, progress, set_quiet
from ..utils.output import console, handle_error, print_json, print_report
from .utils import benchmark_options, build_config, make_runner, validate_env, write_report

logger = get_logger(__name__)


@click.command("refresh")
@benchmark_options
@click.option("--json", "json_output", is_flag=True, help="Print the report as JSON")
@click.pass_context
def refresh(ctx: click.Context, json_output: bool, **options) -> None:
    """Measure refresh performance of the workspace.

    \b
    Strategies:
      --event-log     time every resource from one `plan -refresh-only -json`
                      per iteration (terraform >= 0.15.4, default)
      --no-event-log  refresh each resource type alone in a temporary directory
    """
    ctx.ensure_object(dict)
    json_errors = ctx.obj.get("json_errors", False)
    if json_output:
        set_quiet(True)

    try:
        _refresh(ctx, json_output, options)
    except (BenchmarkError, ValueError) as e:
        logger.debug("Refresh benchmark failed", exc_info=True)
        sys.exit(handle_error(e, json_errors, context={"command": "refresh"}))


def _refresh(ctx: click.Context, json_output: bool, options: dict) -> None:
    config = load_config(ctx.obj.get("config_path"))
    bench_config = build_config(config, **options)
    runner = make_runner(config)

    validate_env(runner, bench_config.skip_controller_version)

    progress(f"Starting benchmark with configuration={bench_config.to_dict()}")
    report = refresh_benchmark(bench_config, runner, RichProgressSink(console))

    rendered = report.render()
    if json_output:
        print_json(report.to_dict())
    else:
        print_report(rendered)

    path = write_report(rendered, report.filename(), config.report.directory)
    progress(f"Wrote report to file {path}")
