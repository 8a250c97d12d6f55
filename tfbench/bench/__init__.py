"""Timing strategies, statistics and reports."""

from .benchmark import apply_benchmark, refresh_benchmark, select_strategy
from .eventlog import EventLogStrategy, RefreshEventParser
from .isolation import IsolationStrategy
from .report import ApplyReport, RefreshReport
from .stats import EventLogAggregator, ResourceStat, Sample, rank_resources
from .strategy import StrategyResult

__all__ = [
    "ApplyReport",
    "EventLogAggregator",
    "EventLogStrategy",
    "IsolationStrategy",
    "RefreshEventParser",
    "RefreshReport",
    "ResourceStat",
    "Sample",
    "StrategyResult",
    "apply_benchmark",
    "rank_resources",
    "refresh_benchmark",
    "select_strategy",
]
