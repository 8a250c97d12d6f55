"""
Common ground of the timing strategies.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..core.config import BenchmarkConfig
from ..core.exceptions import CapabilityError
from ..core.progress import NullProgress, ProgressSink
from ..core.runner import CommandRunner
from ..terraform.state import ResourceTypeGroup
from ..terraform.version import Capabilities
from .stats import ResourceStat


@dataclass
class StrategyResult:
    """What a strategy measured.

    Attributes:
        strategy: Name of the strategy that ran
        total_time: Mean refresh time of the whole workspace in seconds
        resources: Per-type statistics, unranked
        skipped: Resource types that could not be measured, with the reason
    """
    strategy: str
    total_time: float
    resources: list[ResourceStat] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


class Strategy:
    """Base class of the timing strategies.

    Args:
        runner: Runs terraform
        config: Run settings
        capabilities: Detected terraform capabilities
        progress: Receives per-measurement progress
        clock: Monotonic clock returning seconds
    """

    name = ""
    required_capability: Optional[str] = None
    # Human-readable name and hint used when the capability is missing
    feature_description = ""
    fallback_hint = ""

    def __init__(
        self,
        runner: CommandRunner,
        config: BenchmarkConfig,
        capabilities: Capabilities,
        progress: Optional[ProgressSink] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.runner = runner
        self.config = config
        self.capabilities = capabilities
        self.progress = progress or NullProgress()
        self.clock = clock
        self.var_file = config.var_file_path()

    def ensure_supported(self) -> None:
        """Check the detected terraform against the strategy's requirement.

        Raises:
            CapabilityError: terraform is too old for this strategy
        """
        if self.required_capability is None or self.capabilities.supports(self.required_capability):
            return
        raise CapabilityError(
            feature=self.feature_description or self.name,
            detected_version=self.capabilities.version or "unknown",
            required_version=str(Capabilities.minimum(self.required_capability)),
            suggestion=self.fallback_hint,
        )

    def run(self, groups: list[ResourceTypeGroup], raw_state: bytes) -> StrategyResult:
        raise NotImplementedError
