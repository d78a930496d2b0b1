"""Shared fixtures for stacker_lite tests."""

import datetime
from collections.abc import Callable, Iterator
from types import SimpleNamespace
from typing import Any

import pytest

from stacker_lite.lite_models import MasterTask


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object used across lite tests.

    Fields:
      - lookback_days: rollover scan depth in days
      - projection_buffer_days: extra days expanded past the view
      - max_occurrences_per_rule: expansion cap per rule
    """
    return SimpleNamespace(
        lookback_days=60,
        projection_buffer_days=30,
        max_occurrences_per_rule=1000,
    )


@pytest.fixture
def fixed_today() -> datetime.date:
    """Deterministic "today" used by rollover tests."""
    return datetime.date(2024, 1, 8)


@pytest.fixture
def fixed_clock(fixed_today: datetime.date) -> Callable[[], datetime.date]:
    return lambda: fixed_today


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic id source: new-1, new-2, ..."""
    counter = iter(range(1, 10_000))
    return lambda: f"new-{next(counter)}"


@pytest.fixture
def make_task() -> Callable[..., MasterTask]:
    """Factory for MasterTask objects with sensible defaults."""

    def _make(task_id: str = "t1", date: str = "2024-01-01", **fields: Any) -> MasterTask:
        fields.setdefault("title", f"Task {task_id}")
        return MasterTask(id=task_id, date=date, **fields)

    return _make


@pytest.fixture
def daily_master(make_task: Callable[..., MasterTask]) -> MasterTask:
    return make_task("daily", "2024-01-01", recurrence_rule="FREQ=DAILY")


@pytest.fixture
def store_path(tmp_path: Any) -> Iterator[Any]:
    yield tmp_path / "tasks.json"
