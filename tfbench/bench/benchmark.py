"""
Benchmark orchestration.

A refresh benchmark runs in this order:

1. detect the terraform version (best-effort) and derive capabilities
2. pick the strategy, failing early if terraform is too old for it
3. pull the state (fatal on failure)
4. look up the controller version unless skipped (best-effort)
5. run the strategy and rank its results
"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from .. import __version__
from ..controller import ControllerVersion, controller_version_from_env
from ..core.config import BenchmarkConfig
from ..core.exceptions import ControllerError, ExecutionError
from ..core.progress import ProgressSink, progress
from ..core.runner import CommandRunner
from ..terraform.state import StateAccessor
from ..terraform.version import Capabilities, TerraformVersion, VersionParseError, detect_version
from .eventlog import EventLogStrategy
from .isolation import IsolationStrategy
from .report import ApplyReport, RefreshReport
from .stats import rank_resources
from .strategy import Strategy

logger = logging.getLogger("tfbench.bench.benchmark")

# Keyed by the event_log setting
STRATEGIES: dict[bool, type[Strategy]] = {
    True: EventLogStrategy,
    False: IsolationStrategy,
}

ControllerLookup = Callable[[], ControllerVersion]


def select_strategy(
    config: BenchmarkConfig,
    runner: CommandRunner,
    capabilities: Capabilities,
    progress_sink: Optional[ProgressSink] = None,
    clock: Callable[[], float] = time.perf_counter,
) -> Strategy:
    """Build the configured strategy.

    Raises:
        CapabilityError: terraform is too old for the configured strategy
    """
    strategy_class = STRATEGIES[bool(config.event_log)]
    strategy = strategy_class(runner, config, capabilities, progress_sink, clock)
    strategy.ensure_supported()
    logger.info(f"Using {strategy.name} strategy")
    return strategy


def lookup_version(runner: CommandRunner, config: BenchmarkConfig) -> Optional[TerraformVersion]:
    """Detect the terraform version, warning instead of failing."""
    try:
        return detect_version(runner, cwd=config.workspace)
    except (ExecutionError, VersionParseError) as e:
        logger.warning(f"Could not find terraform version: {e}")
        return None


def lookup_controller_version(
    config: BenchmarkConfig,
    lookup: Optional[ControllerLookup] = None,
) -> Optional[ControllerVersion]:
    """Controller version unless skipped; failures become a warning."""
    if config.skip_controller_version:
        return None
    lookup = lookup or controller_version_from_env
    try:
        return lookup()
    except ControllerError as e:
        logger.warning(f"Could not find controller version: {e}")
        return None


def refresh_benchmark(
    config: BenchmarkConfig,
    runner: CommandRunner,
    progress_sink: Optional[ProgressSink] = None,
    controller_lookup: Optional[ControllerLookup] = None,
    clock: Callable[[], float] = time.perf_counter,
    build_version: str = __version__,
) -> RefreshReport:
    """Run a refresh benchmark of the workspace.

    Raises:
        CapabilityError: terraform too old for the configured strategy
        StateError: state could not be pulled
        MeasurementError: the whole-workspace measurement failed
    """
    timestamp = datetime.now().astimezone()

    version = lookup_version(runner, config)
    capabilities = Capabilities.from_version(version)
    strategy = select_strategy(config, runner, capabilities, progress_sink, clock)

    groups, raw_state = StateAccessor(runner, config.workspace).fetch_state()
    progress(f"Found {sum(g.count for g in groups)} resources in the state file.")

    controller_version = lookup_controller_version(config, controller_lookup)

    result = strategy.run(groups, raw_state)
    progress("Finished benchmark.")

    return RefreshReport(
        timestamp=timestamp,
        total_time=result.total_time,
        config=config,
        build_version=build_version,
        strategy=result.strategy,
        terraform_version=version,
        controller_version=controller_version,
        resources=tuple(rank_resources(result.resources)),
        skipped=dict(result.skipped),
    )


def apply_benchmark(
    config: BenchmarkConfig,
    runner: CommandRunner,
    build_version: str = __version__,
) -> ApplyReport:
    """Placeholder for apply measurements; returns an empty report."""
    logger.debug(f"apply benchmark is not implemented, nothing run with {runner!r}")
    return ApplyReport(
        timestamp=datetime.now().astimezone(),
        config=config,
        build_version=build_version,
    )
