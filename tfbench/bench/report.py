"""
Benchmark report model.

Reports are immutable once produced. `render()` gives the plain-text
form that is printed and persisted; `to_dict()` the JSON form.
"""

import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from ..controller import ControllerVersion
from ..core.config import BenchmarkConfig
from ..terraform.version import TerraformVersion
from .stats import ResourceStat

REFRESH_REPORT_PREFIX = "tf-bench-report-"
APPLY_REPORT_PREFIX = "tf-bench-apply-report-"

EVENT_LOG_STRATEGY = "event-log"


def format_duration(seconds: float) -> str:
    """Duration rounded to milliseconds: "350ms", "1.204s", "2m3.5s"."""
    ms = round(seconds * 1000)
    if ms == 0:
        return "0s"
    if abs(ms) < 1000:
        return f"{ms}ms"
    minutes, rest = divmod(ms, 60_000)
    secs = f"{rest / 1000:.3f}".rstrip("0").rstrip(".")
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def report_timestamp(when: datetime) -> str:
    """RFC3339 timestamp with the local offset, e.g. 2021-06-03T10:11:12-07:00."""
    return when.astimezone().isoformat(timespec="seconds")


def _render_tables(*tables: Table) -> str:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, color_system=None, force_terminal=False)
    for table in tables:
        console.print(table)
    return buffer.getvalue()


@dataclass(frozen=True)
class RefreshReport:
    """Outcome of a refresh benchmark.

    Attributes:
        timestamp: Start of the benchmark
        total_time: Mean refresh time of the whole workspace in seconds
        terraform_version: Detected terraform, if detection succeeded
        controller_version: Controller release, if looked up
        resources: Per-type statistics, ranked by mean * count
        config: Settings the report was produced with
        build_version: tfbench version
        strategy: "event-log" or "isolation"
        skipped: Types that could not be measured, with the reason
    """
    timestamp: datetime
    total_time: float
    config: BenchmarkConfig
    build_version: str
    strategy: str
    terraform_version: Optional[TerraformVersion] = None
    controller_version: Optional[ControllerVersion] = None
    resources: tuple[ResourceStat, ...] = ()
    skipped: dict[str, str] = field(default_factory=dict)

    def filename(self, prefix: str = REFRESH_REPORT_PREFIX) -> str:
        return prefix + report_timestamp(self.timestamp)

    def _header(self) -> str:
        lines = [f"tf-bench ({self.build_version}) Refresh Report {self.timestamp.astimezone().isoformat()}"]
        if self.controller_version is not None:
            lines.append(f"controller version: {self.controller_version}")
        lines.append(f"iterations per measurement: {self.config.iterations}")
        if self.terraform_version is not None:
            lines.append(f"terraform version: v{self.terraform_version.terraform_version}")
            lines.append("")
            lines.append("provider versions:")
            for name, version in self.terraform_version.provider_selections.items():
                lines.append(f"{name}={version}")
            lines.append("")
        lines.append(f"Refresh Time for Whole Workspace: {format_duration(self.total_time)}")
        return "\n".join(lines)

    def _event_log_tables(self) -> list[Table]:
        table = Table(box=box.ASCII)
        for title in ("Resource Type", "Count", "Average Time Per Resource", "Average*Count",
                      "Minimum", "Maximum", "StdDev"):
            table.add_column(title)
        extremes = Table(box=box.ASCII)
        for title in ("Resource Type", "Fastest", "Slowest"):
            extremes.add_column(title)

        for stat in self.resources:
            table.add_row(
                stat.name,
                str(stat.count),
                format_duration(stat.mean),
                format_duration(stat.cost),
                format_duration(stat.minimum),
                format_duration(stat.maximum),
                format_duration(stat.stddev),
            )
            extremes.add_row(stat.name, stat.min_address or "", stat.max_address or "")
        return [table, extremes]

    def _isolation_tables(self) -> list[Table]:
        table = Table(box=box.ASCII)
        table.add_column("Resource Type")
        table.add_column("Count")
        table.add_column(f"Average Refresh Time of {self.config.iterations} Measurements")
        for stat in self.resources:
            table.add_row(stat.name, str(stat.count), format_duration(stat.mean))
        return [table]

    def render(self) -> str:
        if self.strategy == EVENT_LOG_STRATEGY:
            tables = self._event_log_tables()
        else:
            tables = self._isolation_tables()
        text = self._header() + "\n" + _render_tables(*tables)
        if self.skipped:
            text += "\nSkipped resource types:\n"
            for name, reason in self.skipped.items():
                first_line = reason.splitlines()[0] if reason else ""
                text += f"  {name}: {first_line}\n"
        return text

    def __str__(self) -> str:
        return self.render()

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.astimezone().isoformat(),
            "build_version": self.build_version,
            "strategy": self.strategy,
            "total_time": self.total_time,
            "terraform_version": self.terraform_version.to_dict() if self.terraform_version else None,
            "controller_version": str(self.controller_version) if self.controller_version else None,
            "config": self.config.to_dict(),
            "resources": [stat.to_dict() for stat in self.resources],
            "skipped": dict(self.skipped),
        }


@dataclass(frozen=True)
class ApplyReport:
    """Outcome of an apply benchmark. Apply is not measured yet."""
    timestamp: datetime
    config: BenchmarkConfig
    build_version: str
    total_time: float = 0.0
    terraform_version: Optional[TerraformVersion] = None
    controller_version: Optional[ControllerVersion] = None
    resources: tuple[ResourceStat, ...] = ()

    def filename(self, prefix: str = APPLY_REPORT_PREFIX) -> str:
        return prefix + report_timestamp(self.timestamp)

    def render(self) -> str:
        return ""

    def __str__(self) -> str:
        return self.render()

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.astimezone().isoformat(),
            "build_version": self.build_version,
            "total_time": self.total_time,
            "config": self.config.to_dict(),
            "resources": [stat.to_dict() for stat in self.resources],
        }
