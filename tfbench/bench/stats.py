"""
Per-type refresh statistics and ranking.

Durations are plain float seconds throughout.
"""

import statistics
from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass(frozen=True)
class Sample:
    """One address-level refresh duration."""
    address: str
    duration: float
    iteration: int = 0


@dataclass(frozen=True)
class ResourceStat:
    """Aggregated refresh statistics of one resource type.

    Attributes:
        name: Resource type
        count: Number of instances measured
        mean: Average refresh time per resource (event log) or of the whole
            reduced configuration (isolation)
        minimum, maximum: Extremes over every sample
        min_address, max_address: Address owning each extreme, if known
        stddev: Population standard deviation of the samples
    """
    name: str
    count: int
    mean: float
    minimum: float = 0.0
    min_address: Optional[str] = None
    maximum: float = 0.0
    max_address: Optional[str] = None
    stddev: float = 0.0

    @property
    def cost(self) -> float:
        """Ranking key: mean * count."""
        return self.mean * self.count

    @classmethod
    def from_samples(cls, name: str, count: int, samples: list[Sample]) -> "ResourceStat":
        """Single-level statistics over a list of samples.

        Raises:
            ValueError: no samples
        """
        if not samples:
            raise ValueError(f"no samples for {name}")
        fastest = min(samples, key=lambda s: s.duration)
        slowest = max(samples, key=lambda s: s.duration)
        durations = [s.duration for s in samples]
        return cls(
            name=name,
            count=count,
            mean=statistics.fmean(durations),
            minimum=fastest.duration,
            min_address=fastest.address or None,
            maximum=slowest.duration,
            max_address=slowest.address or None,
            stddev=statistics.pstdev(durations),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "count": self.count,
            "mean": self.mean,
            "cost": self.cost,
            "minimum": self.minimum,
            "min_address": self.min_address,
            "maximum": self.maximum,
            "max_address": self.max_address,
            "stddev": self.stddev,
        }


@dataclass
class _TypeAccumulator:
    mean_total: float = 0.0
    count: int = 0
    minimum: Optional[Sample] = None
    maximum: Optional[Sample] = None
    pooled: list[float] = field(default_factory=list)


class EventLogAggregator:
    """Two-level aggregation of event-log durations.

    For each iteration, the mean over a type's addresses is added to that
    type's running total; the final mean divides that total by the number
    of iterations run, so a type missing from an iteration counts zero for
    it. Min/max are tracked across every sample of every iteration, and
    the standard deviation is taken over all pooled samples.

    Usage:
        agg = EventLogAggregator(iterations=3)
        agg.add_iteration({"random_id": [Sample("random_id.a[0]", 0.1, 1), ...]})
        stats = agg.finalize()
    """

    def __init__(self, iterations: int):
        if iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {iterations}")
        self.iterations = iterations
        self._types: dict[str, _TypeAccumulator] = {}

    def add_iteration(self, samples_by_type: dict[str, list[Sample]]) -> None:
        for resource_type, samples in samples_by_type.items():
            if not samples:
                continue
            acc = self._types.setdefault(resource_type, _TypeAccumulator())
            durations = [s.duration for s in samples]
            acc.mean_total += statistics.fmean(durations)
            acc.count = max(acc.count, len({s.address for s in samples}))
            acc.pooled.extend(durations)
            for sample in samples:
                if acc.minimum is None or sample.duration < acc.minimum.duration:
                    acc.minimum = sample
                if acc.maximum is None or sample.duration > acc.maximum.duration:
                    acc.maximum = sample

    def finalize(self) -> list[ResourceStat]:
        """Statistics per type, in first-observed order."""
        results = []
        for name, acc in self._types.items():
            results.append(ResourceStat(
                name=name,
                count=acc.count,
                mean=acc.mean_total / self.iterations,
                minimum=acc.minimum.duration,
                min_address=acc.minimum.address,
                maximum=acc.maximum.duration,
                max_address=acc.maximum.address,
                stddev=statistics.pstdev(acc.pooled),
            ))
        return results


def rank_resources(stats: Iterable[ResourceStat]) -> list[ResourceStat]:
    """Order by descending mean * count; ties keep their input order."""
    return sorted(stats, key=lambda s: s.cost, reverse=True)
