"""Unit tests for stacker_lite.lite_sanitizer."""

import datetime
import logging

import pytest

from stacker_lite.lite_models import MasterTask
from stacker_lite.lite_sanitizer import drop_ghost_records, sanitize_all, sanitize_task

pytestmark = pytest.mark.unit


def _clock():
    return datetime.date(2024, 1, 8)


class TestSanitizeTask:
    """Repair and rejection of single records."""

    def test_sanitize_task_strips_time_from_date_and_recovers_it(self):
        task = sanitize_task({"id": "a", "title": "A", "date": "2024-01-05T09:30:00"}, _clock)
        assert task.date == "2024-01-05"
        assert task.time == "09:30"

    def test_sanitize_task_keeps_existing_time(self):
        task = sanitize_task({"id": "a", "title": "A", "date": "2024-01-05T09:30:00", "time": "14:00"}, _clock)
        assert task.time == "14:00"

    def test_sanitize_task_defaults_missing_date_to_today(self):
        task = sanitize_task({"id": "a", "title": "A"}, _clock)
        assert task.date == "2024-01-08"

    def test_sanitize_task_defaults_collections(self):
        task = sanitize_task({"id": "a", "title": "A", "date": "2024-01-05", "completedDates": None}, _clock)
        assert task.completed_dates == []
        assert task.exception_dates == []
        assert task.subtasks == []
        assert task.instance_progress == {}
        assert task.instance_subtasks == {}
        assert task.tag_ids == []

    def test_sanitize_task_normalizes_date_lists_and_keys(self):
        raw = {
            "id": "a",
            "title": "A",
            "date": "2024-01-01",
            "recurrenceRule": "FREQ=DAILY",
            "completedDates": ["2024-01-02T08:00:00", "2024-01-02", "junk"],
            "exceptionDates": ["2024-01-03T00:00:00.000Z"],
            "instanceProgress": {"2024-01-04T00:00:00": 50, "bad": 10},
        }
        task = sanitize_task(raw, _clock)
        assert task.completed_dates == ["2024-01-02"]
        assert task.exception_dates == ["2024-01-03"]
        assert task.instance_progress == {"2024-01-04": 50}

    def test_sanitize_task_reads_camel_case_fields(self):
        raw = {
            "id": "a",
            "title": "A",
            "date": "2024-01-05",
            "estimatedTime": "30m",
            "tagIds": ["work"],
            "type": "event",
            "createdAt": 1700000000,
            "subtasks": [{"id": "s1", "title": "Step", "completed": True}],
        }
        task = sanitize_task(raw, _clock)
        assert task.estimated_time == "30m"
        assert task.tag_ids == ["work"]
        assert task.task_type == "event"
        assert task.created_at == 1700000000
        assert task.subtasks[0].completed is True

    def test_sanitize_task_migrates_legacy_rrule_key(self):
        task = sanitize_task({"id": "a", "title": "A", "date": "2024-01-01", "rrule": "FREQ=WEEKLY"}, _clock)
        assert task.recurrence_rule == "FREQ=WEEKLY"
        assert task.is_recurring

    def test_sanitize_task_builds_rule_from_structured_recurrence(self):
        raw = {
            "id": "a",
            "title": "A",
            "date": "2024-01-01",
            "recurrence": {"frequency": "weekly", "interval": 2, "daysOfWeek": ["MO"]},
        }
        task = sanitize_task(raw, _clock)
        assert task.recurrence_rule == "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO"
        assert task.recurrence.days_of_week == ["MO"]

    def test_sanitize_task_drops_invalid_structured_recurrence(self, caplog):
        raw = {"id": "a", "title": "A", "date": "2024-01-01", "recurrence": {"frequency": "hourly"}}
        with caplog.at_level(logging.WARNING):
            task = sanitize_task(raw, _clock)
        assert task.recurrence is None
        assert not task.is_recurring
        assert "invalid recurrence" in caplog.text

    def test_sanitize_task_resets_days_rolled_on_recurring_masters(self):
        raw = {"id": "a", "title": "A", "date": "2024-01-01", "recurrenceRule": "FREQ=DAILY", "daysRolled": 4}
        assert sanitize_task(raw, _clock).days_rolled == 0

    @pytest.mark.parametrize("value,expected", [(3, 3), (-2, 0), ("5", 0), (None, 0)])
    def test_sanitize_task_keeps_only_positive_integer_days_rolled(self, value, expected):
        raw = {"id": "a", "title": "A", "date": "2024-01-01", "daysRolled": value}
        assert sanitize_task(raw, _clock).days_rolled == expected

    def test_sanitize_task_converts_legacy_completed_flag(self):
        raw = {"id": "a", "title": "A", "date": "2024-01-05", "completed": True}
        assert sanitize_task(raw, _clock).completed_dates == ["2024-01-05"]

    def test_sanitize_task_stringifies_ids(self):
        task = sanitize_task({"id": 42, "title": "A", "date": "2024-01-05"}, _clock)
        assert task.id == "42"

    def test_sanitize_task_gives_id_less_subtasks_a_stable_id(self):
        raw = {
            "id": "a",
            "title": "A",
            "date": "2024-01-05",
            "subtasks": [{"title": "no id"}, "junk", {"id": 7, "title": None, "progress": "half"}],
        }
        task = sanitize_task(raw, _clock)
        assert [(s.id, s.title, s.progress) for s in task.subtasks] == [("a-1", "no id", None), ("7", "", None)]
        assert sanitize_task(raw, _clock).subtasks[0].id == "a-1"

    @pytest.mark.parametrize(
        "field,value,attr,expected",
        [
            ("estimatedTime", 30, "estimated_time", None),
            ("time", 930, "time", None),
            ("color", ["red"], "color", None),
            ("reminderTime", False, "reminder_time", None),
            ("reminderOffset", "15", "reminder_offset", None),
            ("reminderOffset", 15.0, "reminder_offset", 15),
            ("createdAt", "yesterday", "created_at", None),
            ("importance", "high", "importance", 0),
            ("type", 3, "task_type", "task"),
            ("tagIds", ["work", 1, None], "tag_ids", ["work"]),
            ("progress", True, "progress", 0),
        ],
    )
    def test_sanitize_task_resets_wrongly_typed_fields(self, field, value, attr, expected):
        task = sanitize_task({"id": "a", "title": "A", "date": "2024-01-05", field: value}, _clock)
        assert task is not None
        assert getattr(task, attr) == expected

    def test_sanitize_task_repairs_instance_overrides(self):
        raw = {
            "id": "m",
            "title": "M",
            "date": "2024-01-01",
            "recurrenceRule": "FREQ=DAILY",
            "instanceProgress": {"2024-01-02": "done", "2024-01-03": 40},
            "instanceSubtasks": {"2024-01-02": [{"title": "Step"}], "2024-01-03": "junk"},
        }
        task = sanitize_task(raw, _clock)
        assert task.instance_progress == {"2024-01-03": 40}
        assert [s.id for s in task.instance_subtasks["2024-01-02"]] == ["m-2024-01-02-1"]
        assert task.instance_subtasks["2024-01-03"] == []

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "a string",
            ["list"],
            {"title": "no id"},
            {"id": "no-title"},
        ],
    )
    def test_sanitize_task_rejects_unrepairable_records(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            assert sanitize_task(raw, _clock) is None
        assert "Dropping malformed task record" in caplog.text


class TestSanitizeAll:
    """Batch behaviour."""

    def test_sanitize_all_preserves_order_and_drops_rejects(self):
        raws = [
            {"id": "a", "title": "A", "date": "2024-01-01"},
            {"id": "broken"},
            {"id": "b", "title": "B", "date": "2024-01-02"},
        ]
        assert [t.id for t in sanitize_all(raws, _clock)] == ["a", "b"]

    @pytest.mark.parametrize("raws", [None, {"id": "a"}, "tasks"])
    def test_sanitize_all_when_not_a_list_then_empty(self, raws):
        assert sanitize_all(raws, _clock) == []

    def test_sanitize_all_output_always_has_pure_dates(self):
        raws = [
            {"id": str(i), "title": "T", "date": f"2024-01-0{i}T1{i}:00:00", "deadline": "2024-02-01T00:00:00"}
            for i in range(1, 6)
        ]
        for task in sanitize_all(raws, _clock):
            assert len(task.date) == 10
            assert task.deadline == "2024-02-01"


def test_drop_ghost_records_removes_leaked_occurrences_only():
    tasks = [
        MasterTask(id="m1", title="Series", date="2024-01-01", recurrence_rule="FREQ=DAILY"),
        MasterTask(id="m1_2024-01-02", title="Leaked ghost", date="2024-01-02"),
        MasterTask(id="detached-1", title="Detached", date="2024-01-03", original_task_id="m1", original_date="2024-01-03"),
    ]
    assert [t.id for t in drop_ghost_records(tasks)] == ["m1", "detached-1"]
