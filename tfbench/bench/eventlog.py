"""
Event-log strategy: time every resource from one combined refresh.

Each iteration runs `terraform plan -refresh-only -json` against the
workspace and reads its line-delimited event stream while it runs.
Every managed resource address is tracked from its `refresh_start` to
its `refresh_complete` event:

    AWAITING --refresh_start--> STARTED --refresh_complete--> COMPLETED

Addresses that never reach COMPLETED (resources that were not refreshed)
are dropped, as are lines that are not JSON events.
"""

import datetime
import enum
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from ..core.exceptions import ExecutionError, MeasurementError
from ..core.logging import BenchmarkContext, set_benchmark_context, update_benchmark_context
from ..terraform.state import ResourceTypeGroup
from ..terraform.version import EVENT_LOG
from .stats import EventLogAggregator, Sample
from .strategy import Strategy, StrategyResult

logger = logging.getLogger("tfbench.bench.eventlog")

REFRESH_START = "refresh_start"
REFRESH_COMPLETE = "refresh_complete"

_RFC3339_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt ](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?(?P<offset>[Zz]|[+-]\d{2}:\d{2})$"
)
_MODULE_PREFIX_RE = re.compile(r"^(?:module\.[^.\[]+(?:\[[^\]]*\])?\.)*")

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
_ONE_SECOND = datetime.timedelta(seconds=1)


def parse_timestamp(value: str) -> int:
    """Parse an RFC3339 timestamp into integer nanoseconds since the epoch.

    Fractions up to nanosecond precision are kept exactly.

    Raises:
        ValueError: not an RFC3339 timestamp
    """
    match = _RFC3339_RE.match(value)
    if match is None:
        raise ValueError(f"invalid RFC3339 timestamp: {value!r}")
    offset = match.group("offset")
    if offset in ("Z", "z"):
        offset = "+00:00"
    whole = datetime.datetime.fromisoformat(f"{match.group('date')}T{match.group('time')}{offset}")
    seconds = (whole - _EPOCH) // _ONE_SECOND
    fraction = (match.group("fraction") or "").ljust(9, "0")[:9]
    return seconds * 1_000_000_000 + int(fraction)


def is_data_address(address: str) -> bool:
    """Whether an address names a data source, inside modules or not."""
    return _MODULE_PREFIX_RE.sub("", address, count=1).startswith("data.")


def address_type(address: str) -> str:
    """Resource type part of a managed resource address."""
    return _MODULE_PREFIX_RE.sub("", address, count=1).split(".", 1)[0]


class AddressState(enum.Enum):
    AWAITING = "awaiting"
    STARTED = "started"
    COMPLETED = "completed"


@dataclass
class _Tracked:
    resource_type: str
    state: AddressState = AddressState.AWAITING
    start: int = 0
    end: int = 0


class RefreshEventParser:
    """Incremental parser of one iteration's event stream.

    Usage:
        parser = RefreshEventParser()
        for line in stream:
            if parser.feed(line):
                ...  # one more address completed
        samples = parser.samples(iteration=1)
    """

    def __init__(self):
        self._addresses: dict[str, _Tracked] = {}

    def feed(self, line: Union[bytes, str]) -> Optional[str]:
        """Consume one line; return the address it completed, if any."""
        logger.trace(f"event: {line!r}")
        try:
            event = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.debug(f"could not decode JSON object from event log: {e}")
            return None
        if not isinstance(event, dict):
            return None

        kind = event.get("type")
        if kind not in (REFRESH_START, REFRESH_COMPLETE):
            return None

        hook = event.get("hook")
        resource = hook.get("resource") if isinstance(hook, dict) else None
        if not isinstance(resource, dict):
            logger.debug(f"{kind} event without a resource object")
            return None
        address = resource.get("addr")
        if not isinstance(address, str) or not address or is_data_address(address):
            return None
        try:
            timestamp = parse_timestamp(str(event.get("@timestamp", "")))
        except ValueError as e:
            logger.debug(f"skipping {kind} of {address}: {e}")
            return None

        tracked = self._addresses.get(address)
        if kind == REFRESH_START:
            resource_type = resource.get("resource_type")
            if not isinstance(resource_type, str) or not resource_type:
                resource_type = address_type(address)
            self._addresses[address] = _Tracked(
                resource_type=resource_type, state=AddressState.STARTED, start=timestamp,
            )
            return None

        if tracked is None or tracked.state is not AddressState.STARTED:
            logger.debug(f"{REFRESH_COMPLETE} without {REFRESH_START} for {address}")
            return None
        tracked.end = timestamp
        tracked.state = AddressState.COMPLETED
        return address

    def state_of(self, address: str) -> AddressState:
        tracked = self._addresses.get(address)
        return tracked.state if tracked else AddressState.AWAITING

    def samples(self, iteration: int = 0) -> dict[str, list[Sample]]:
        """Durations of every completed address, grouped by resource type."""
        grouped: dict[str, list[Sample]] = {}
        for address, tracked in self._addresses.items():
            if tracked.state is not AddressState.COMPLETED:
                continue
            duration = (tracked.end - tracked.start) / 1e9
            grouped.setdefault(tracked.resource_type, []).append(
                Sample(address=address, duration=duration, iteration=iteration)
            )
        return grouped


class EventLogStrategy(Strategy):
    """Times every resource from `terraform plan -refresh-only -json` events."""

    name = "event-log"
    required_capability = EVENT_LOG
    feature_description = "event log measurement method"
    fallback_hint = (
        "Set --no-event-log flag to use the temporary directory measurement method."
    )

    def _plan_args(self) -> list[str]:
        args = ["plan", "-refresh-only", "-json"]
        if self.var_file:
            args.append(f"-var-file={self.var_file}")
        return args

    def _run_iteration(self, parser: RefreshEventParser) -> float:
        operation = "terraform plan -refresh-only -json"
        begin = self.clock()
        try:
            stream, wait = self.runner.run_async(*self._plan_args(), cwd=self.config.workspace)
        except ExecutionError as e:
            raise MeasurementError(operation, str(e), output=e.output) from e

        try:
            for line in stream:
                if parser.feed(line):
                    self.progress.advance()
        except BaseException:
            wait(kill=True)
            raise

        try:
            wait()
        except ExecutionError as e:
            raise MeasurementError(operation, str(e), output=e.output) from e
        return self.clock() - begin

    def run(self, groups: list[ResourceTypeGroup], raw_state: bytes) -> StrategyResult:
        """Run `iterations` combined refreshes and aggregate per type.

        Raises:
            CapabilityError: terraform is older than 0.15.4
            MeasurementError: a plan could not be run to completion
        """
        self.ensure_supported()
        iterations = self.config.iterations
        total = sum(g.count for g in groups)
        aggregator = EventLogAggregator(iterations)
        wall_clock = 0.0

        set_benchmark_context(BenchmarkContext(strategy=self.name, total_iterations=iterations))
        try:
            for i in range(1, iterations + 1):
                update_benchmark_context(iteration=i)
                parser = RefreshEventParser()
                self.progress.start(f"Iteration {i}", total=total or None)
                elapsed = self._run_iteration(parser)
                samples = parser.samples(iteration=i)
                self.progress.finish(f"{elapsed:.3f}s")
                logger.info(
                    f"plan took {elapsed:.3f}s, "
                    f"{sum(len(s) for s in samples.values())} resources timed"
                )
                wall_clock += elapsed
                aggregator.add_iteration(samples)
        finally:
            self.progress.finish()
            set_benchmark_context(None)

        resources = aggregator.finalize()
        measured = {stat.name for stat in resources}
        skipped = {
            g.type: "no refresh events observed"
            for g in groups if g.type not in measured
        }
        return StrategyResult(
            strategy=self.name,
            total_time=wall_clock / iterations,
            resources=resources,
            skipped=skipped,
        )
