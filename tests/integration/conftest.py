"""Pytest configuration for integration tests.

Everything under tests/integration drives the CLI end to end and is
marked as an integration test automatically.
"""

import pytest


def pytest_collection_modifyitems(items):
    """Mark every test collected from this directory."""
    for item in items:
        if "integration" in item.nodeid.split("/"):
            item.add_marker(pytest.mark.integration)
