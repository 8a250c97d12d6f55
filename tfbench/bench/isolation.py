"""
Isolation strategy: refresh each resource type on its own.

For every resource type a temporary directory is prepared holding the
workspace's variable files, a reduced configuration keeping only the
type's provider, and a copy of the state with every other resource
removed. After `terraform init`, refresh is timed there.

Each measurement does one untimed warm-up refresh first; the first
refresh after init is inflated by one-time setup work.
"""

import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

from ..core.config import BenchmarkConfig
from ..core.exceptions import ExecutionError, MeasurementError, RewriteError
from ..core.logging import BenchmarkContext, set_benchmark_context, update_benchmark_context
from ..core.progress import ProgressSink
from ..core.runner import CommandRunner
from ..terraform.rewrite import ConfigurationRewriter, ExpressionEvaluator
from ..terraform.state import ResourceTypeGroup, filter_state
from ..terraform.version import Capabilities
from .stats import ResourceStat, Sample
from .strategy import Strategy, StrategyResult

logger = logging.getLogger("tfbench.bench.isolation")

STATE_FILE_NAME = "terraform.tfstate"
CONFIG_FILE_NAME = "main.tf"
VAR_FILE_PATTERNS = ("*.tfvars", "*.tfvars.json")


class IsolationStrategy(Strategy):
    """Times `terraform refresh` per resource type in temporary directories.

    Args:
        runner: Runs terraform
        config: Run settings
        capabilities: Detected terraform capabilities
        progress: Receives per-measurement progress
        clock: Monotonic clock returning seconds
        rewriter: Builds reduced configurations (default: evaluates
            provider attributes in the workspace when supported)
    """

    name = "isolation"

    def __init__(
        self,
        runner: CommandRunner,
        config: BenchmarkConfig,
        capabilities: Capabilities,
        progress: Optional[ProgressSink] = None,
        clock: Callable[[], float] = time.perf_counter,
        rewriter: Optional[ConfigurationRewriter] = None,
    ):
        super().__init__(runner, config, capabilities, progress, clock)
        if rewriter is None:
            evaluator = ExpressionEvaluator(runner, config.workspace, self.var_file)
            rewriter = ConfigurationRewriter(evaluator, capabilities.provider_rewrite)
        self.rewriter = rewriter

    def _refresh_args(self, parallelism: int) -> list[str]:
        args = ["refresh", f"-parallelism={parallelism}"]
        if self.var_file:
            args.append(f"-var-file={self.var_file}")
        return args

    def _refresh_once(self, directory: Path, parallelism: int) -> float:
        args = self._refresh_args(parallelism)
        start = self.clock()
        self.runner.run(*args, cwd=directory)
        return self.clock() - start

    def _timed_refreshes(
        self,
        directory: Path,
        parallelism: int,
        resource_type: Optional[str] = None,
    ) -> list[float]:
        try:
            self._refresh_once(directory, parallelism)
        except ExecutionError as e:
            logger.debug(f"Warm-up refresh failed, ignoring: {e}")

        durations = []
        for i in range(1, self.config.iterations + 1):
            update_benchmark_context(iteration=i, total_iterations=self.config.iterations)
            try:
                duration = self._refresh_once(directory, parallelism)
            except ExecutionError as e:
                raise MeasurementError(
                    "terraform refresh", str(e), resource_type=resource_type, output=e.output,
                ) from e
            logger.info(f"refresh took {duration:.3f}s")
            durations.append(duration)
            self.progress.advance()
        return durations

    def measure_refresh(self, directory: Path, parallelism: int) -> float:
        """Average of `iterations` timed refreshes after one discarded warm-up.

        Raises:
            MeasurementError: a timed refresh failed
        """
        return sum(self._timed_refreshes(directory, parallelism)) / self.config.iterations

    def _prepare_directory(self, directory: Path, group: ResourceTypeGroup, raw_state: bytes) -> None:
        workspace = Path(self.config.workspace)
        for pattern in VAR_FILE_PATTERNS:
            for path in sorted(workspace.glob(pattern)):
                shutil.copy2(path, directory / path.name)

        config_text = self.rewriter.rewrite_directory(group.type, workspace)
        (directory / CONFIG_FILE_NAME).write_text(config_text)
        (directory / STATE_FILE_NAME).write_bytes(filter_state(raw_state, group.type))

        try:
            self.runner.run("init", cwd=directory)
        except ExecutionError as e:
            raise MeasurementError(
                "terraform init", str(e), resource_type=group.type, output=e.output,
            ) from e

    def measure_type(self, group: ResourceTypeGroup, raw_state: bytes) -> ResourceStat:
        """Measure one resource type in a temporary directory.

        Raises:
            RewriteError: the reduced configuration could not be built
            MeasurementError: init or a timed refresh failed
        """
        parallelism = min(self.config.parallelism, max(group.count, 1))
        with tempfile.TemporaryDirectory(prefix="tfbench-") as tmp:
            directory = Path(tmp)
            self._prepare_directory(directory, group, raw_state)
            self.progress.start(group.type, total=self.config.iterations)
            durations = self._timed_refreshes(directory, parallelism, group.type)
            samples = [Sample(address="", duration=d, iteration=i) for i, d in enumerate(durations, 1)]
            stat = ResourceStat.from_samples(group.type, group.count, samples)
            self.progress.finish(f"average: {stat.mean:.3f}s")
        return stat

    def run(self, groups: list[ResourceTypeGroup], raw_state: bytes) -> StrategyResult:
        """Measure the whole workspace, then every resource type in turn.

        A failing type is logged and recorded as skipped; a failing
        whole-workspace measurement aborts the run.
        """
        workspace = Path(self.config.workspace)
        iterations = self.config.iterations
        set_benchmark_context(BenchmarkContext(strategy=self.name, total_iterations=iterations))
        try:
            self.progress.start("All resources", total=iterations)
            total_time = self.measure_refresh(workspace, self.config.parallelism)
            self.progress.finish(f"average: {total_time:.3f}s")

            resources: list[ResourceStat] = []
            skipped: dict[str, str] = {}
            for group in groups:
                update_benchmark_context(resource_type=group.type, iteration=None)
                try:
                    stat = self.measure_type(group, raw_state)
                except (RewriteError, MeasurementError, OSError) as e:
                    self.progress.finish()
                    logger.error(f"Measurement of {group.type} failed, skipping: {e}")
                    skipped[group.type] = str(e)
                    continue
                logger.info(f"{group.type}: average {stat.mean:.3f}s over {iterations} measurements")
                resources.append(stat)
        finally:
            self.progress.finish()
            set_benchmark_context(None)

        return StrategyResult(
            strategy=self.name,
            total_time=total_time,
            resources=resources,
            skipped=skipped,
        )

