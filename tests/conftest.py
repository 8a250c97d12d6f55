"""Shared pytest fixtures for tfbench tests."""

import logging

import pytest

from fixtures.fakes import FakeClock, FakeRunner, RecordingProgress
from tfbench.core.config import clear_config_cache
from tfbench.core.logging import set_benchmark_context
from tfbench.core.progress import set_quiet, set_timestamps


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset module-level state touched by the CLI between tests."""
    root_level = logging.getLogger().level
    yield
    logging.getLogger().setLevel(root_level)
    set_quiet(False)
    set_timestamps(False)
    set_benchmark_context(None)
    clear_config_cache()
    # setup_logging binds a handler to the stderr of the invocation
    tfbench_logger = logging.getLogger("tfbench")
    tfbench_logger.handlers.clear()
    tfbench_logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_runner(clock):
    return FakeRunner(clock)


@pytest.fixture
def recorder():
    return RecordingProgress()
