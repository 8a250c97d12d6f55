"""
Configuration file loading for tfbench.

Loads .tfbench.yaml from the project root or home directory.
Config values provide defaults that can be overridden by CLI options.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

CONFIG_FILENAME = ".tfbench.yaml"

DEFAULT_ITERATIONS = 3
DEFAULT_PARALLELISM = 10


@dataclass
class ConfigTerraform:
    """How terraform is invoked."""
    executable: str = "terraform"
    timeout: Optional[float] = None  # seconds per invocation, None = no deadline


@dataclass
class ConfigBenchmark:
    """Default benchmark settings."""
    iterations: int = DEFAULT_ITERATIONS
    parallelism: int = DEFAULT_PARALLELISM
    event_log: bool = True


@dataclass
class ConfigReport:
    """Where reports are written."""
    directory: str = "."


@dataclass
class Config:
    """Loaded configuration."""
    terraform: ConfigTerraform = field(default_factory=ConfigTerraform)
    benchmark: ConfigBenchmark = field(default_factory=ConfigBenchmark)
    report: ConfigReport = field(default_factory=ConfigReport)
    source_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> "Config":
        """Create Config from parsed YAML dict."""
        config = cls(source_path=source_path)

        if "terraform" in data and isinstance(data["terraform"], dict):
            tf = data["terraform"]
            config.terraform.executable = tf.get("executable", config.terraform.executable)
            timeout = tf.get("timeout")
            if isinstance(timeout, (int, float)) and timeout > 0:
                config.terraform.timeout = float(timeout)

        if "benchmark" in data and isinstance(data["benchmark"], dict):
            bench = data["benchmark"]
            iterations = bench.get("iterations", config.benchmark.iterations)
            if isinstance(iterations, int) and iterations > 0:
                config.benchmark.iterations = iterations
            parallelism = bench.get("parallelism", config.benchmark.parallelism)
            if isinstance(parallelism, int) and parallelism > 0:
                config.benchmark.parallelism = parallelism
            event_log = bench.get("event_log", config.benchmark.event_log)
            if isinstance(event_log, bool):
                config.benchmark.event_log = event_log

        if "report" in data and isinstance(data["report"], dict):
            config.report.directory = str(data["report"].get("directory", config.report.directory))

        return config


_cached_config: Optional[Config] = None


def load_config(path: Optional[Path] = None, use_cache: bool = True) -> Config:
    """Load .tfbench.yaml from project root or home.

    Search order:
    1. Explicit path if provided
    2. .tfbench.yaml in current directory
    3. .tfbench.yaml in parent directories (up to git root or /)
    4. ~/.tfbench.yaml in home directory

    Returns:
        Loaded Config, or default Config if no file found
    """
    global _cached_config

    if use_cache and _cached_config is not None:
        return _cached_config

    config_path = None

    if path and path.exists():
        config_path = path
    else:
        search_dir = Path.cwd()
        while search_dir != search_dir.parent:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                config_path = candidate
                break
            if (search_dir / ".git").exists():
                break
            search_dir = search_dir.parent

        if config_path is None:
            home_config = Path.home() / CONFIG_FILENAME
            if home_config.exists():
                config_path = home_config

    if config_path is None:
        config = Config()
    else:
        try:
            data = yaml.safe_load(config_path.read_text())
            config = Config.from_dict(data if isinstance(data, dict) else {}, source_path=config_path)
        except (yaml.YAMLError, OSError) as e:
            logging.getLogger("tfbench.core.config").warning(
                f"Failed to load config from {config_path}: {e}"
            )
            config = Config()

    if use_cache:
        _cached_config = config

    return config


def clear_config_cache() -> None:
    """Clear the cached config (useful for testing)."""
    global _cached_config
    _cached_config = None


@dataclass(frozen=True)
class BenchmarkConfig:
    """Settings of one benchmark run, embedded in its report."""
    skip_controller_version: bool = False
    iterations: int = DEFAULT_ITERATIONS
    var_file: Optional[str] = None
    event_log: bool = True
    parallelism: int = DEFAULT_PARALLELISM
    workspace: Path = Path(".")

    def __post_init__(self):
        if self.iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {self.iterations}")
        if self.parallelism < 1:
            raise ValueError(f"parallelism must be at least 1, got {self.parallelism}")

    def var_file_path(self) -> Optional[Path]:
        """Absolute path of the var-file, resolved against the workspace."""
        if not self.var_file:
            return None
        path = Path(self.var_file)
        if not path.is_absolute():
            path = self.workspace.resolve() / path
        return path

    def to_dict(self) -> dict:
        return {
            "skip_controller_version": self.skip_controller_version,
            "iterations": self.iterations,
            "var_file": self.var_file,
            "event_log": self.event_log,
            "parallelism": self.parallelism,
            "workspace": str(self.workspace),
        }
