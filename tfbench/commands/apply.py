"""
tf-bench apply - Measure apply performance.

Apply measurements are not implemented yet; the command validates the
environment and writes an empty report.
"""

import sys

import click

from ..bench.benchmark import apply_benchmark
from ..core.config import load_config
from ..core.exceptions import BenchmarkError
from ..core.progress import progress
from ..utils.output import handle_error, print_report
from .utils import benchmark_options, build_config, make_runner, validate_env, write_report


@click.command("apply")
@benchmark_options
@click.pass_context
def apply(ctx: click.Context, **options) -> None:
    """Measure apply performance (not implemented yet)."""
    ctx.ensure_object(dict)
    try:
        config = load_config(ctx.obj.get("config_path"))
        bench_config = build_config(config, **options)
        runner = make_runner(config)
        validate_env(runner, bench_config.skip_controller_version)

        progress(f"Starting benchmark with configuration={bench_config.to_dict()}")
        report = apply_benchmark(bench_config, runner)
        rendered = report.render()
        print_report(rendered)
        path = write_report(rendered, report.filename(), config.report.directory)
        progress(f"Wrote report to file {path}")
    except (BenchmarkError, ValueError) as e:
        sys.exit(handle_error(e, ctx.obj.get("json_errors", False), context={"command": "apply"}))
