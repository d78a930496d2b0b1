"""Shared pytest configuration for stacker_lite tests."""

from typing import Any

import pytest


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "critical_path: Core functionality tests")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> None:
    """Keep STACKER_* overrides from leaking into (or between) tests."""
    for key in (
        "STACKER_TEST_DATE",
        "STACKER_DEBUG",
        "STACKER_LOG_LEVEL",
        "STACKER_LOOKBACK_DAYS",
        "STACKER_PROJECTION_BUFFER_DAYS",
        "STACKER_MAX_OCCURRENCES",
        "STACKER_STORE_PATH",
    ):
        monkeypatch.delenv(key, raising=False)
