"""Shared pytest configuration for the tonton_lite test suite."""

from typing import Any


def pytest_configure(config: Any) -> None:
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "fast: Tests that finish well under a second")
    config.addinivalue_line("markers", "integration: Engine components exercised together")
