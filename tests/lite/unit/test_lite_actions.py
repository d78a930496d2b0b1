"""Unit tests for stacker_lite.lite_actions."""

import datetime

import pytest

from stacker_lite.lite_actions import (
    create_task,
    delete_occurrence,
    find_task,
    toggle_completion,
    update_occurrence,
    update_occurrence_subtasks,
)
from stacker_lite.lite_exceptions import TaskNotFoundError
from stacker_lite.lite_models import Subtask
from stacker_lite.lite_projector import project
from stacker_lite.lite_rrule_expander import expand

pytestmark = pytest.mark.unit

D = datetime.date


def _by_id(tasks, task_id):
    return find_task(tasks, task_id)


class TestToggleCompletion:
    """Checking and unchecking occurrences."""

    def test_toggle_ghost_marks_master_completed_on_that_date(self, daily_master):
        result = toggle_completion([daily_master], "daily_2024-01-03")
        assert _by_id(result.tasks, "daily").completed_dates == ["2024-01-03"]
        assert "2024-01-03" not in [o.date for o in project(result.tasks, D(2024, 1, 1), 5)]

    def test_toggle_twice_restores(self, daily_master):
        once = toggle_completion([daily_master], "daily_2024-01-03").tasks
        twice = toggle_completion(once, "daily_2024-01-03").tasks
        assert _by_id(twice, "daily").completed_dates == []

    def test_toggle_standalone_uses_own_date(self, make_task):
        result = toggle_completion([make_task("a", "2024-01-05")], "a")
        assert _by_id(result.tasks, "a").completed_dates == ["2024-01-05"]

    def test_toggle_master_id_with_explicit_date(self, daily_master):
        result = toggle_completion([daily_master], "daily", date="2024-01-04")
        assert _by_id(result.tasks, "daily").completed_dates == ["2024-01-04"]

    def test_toggle_does_not_mutate_input(self, daily_master):
        toggle_completion([daily_master], "daily_2024-01-03")
        assert daily_master.completed_dates == []

    def test_toggle_unknown_master_raises(self, daily_master):
        with pytest.raises(TaskNotFoundError, match="Task not found: missing"):
            toggle_completion([daily_master], "missing_2024-01-03")


class TestUpdateOccurrence:
    """Edits with single/future/all scope."""

    def test_single_edit_detaches_occurrence(self, daily_master, id_factory):
        result = update_occurrence(
            [daily_master], "daily_2024-01-03", {"title": "Special"}, "single", id_factory=id_factory
        )
        (created,) = result.created
        assert created.title == "Special"
        assert created.date == "2024-01-03"
        assert created.original_task_id == "daily"
        assert created.original_date == "2024-01-03"
        assert not created.is_recurring
        assert _by_id(result.tasks, "daily").exception_dates == ["2024-01-03"]

        occurrences = project(result.tasks, D(2024, 1, 2), 3)
        assert [(o.date, o.title) for o in occurrences] == [
            ("2024-01-02", "Task daily"),
            ("2024-01-03", "Special"),
            ("2024-01-04", "Task daily"),
        ]

    def test_single_edit_can_move_occurrence(self, daily_master, id_factory):
        result = update_occurrence(
            [daily_master], "daily_2024-01-03", {"date": "2024-01-10"}, "single", id_factory=id_factory
        )
        assert result.created[0].date == "2024-01-10"
        assert result.created[0].original_date == "2024-01-03"

    def test_single_edit_keeps_completion_of_the_occurrence(self, daily_master, id_factory):
        master = daily_master.model_copy(update={"completed_dates": ["2024-01-03"]})
        result = update_occurrence(
            [master], "daily_2024-01-03", {"date": "2024-01-04"}, "single", id_factory=id_factory
        )
        assert result.created[0].completed_dates == ["2024-01-04"]

    def test_all_edit_updates_master(self, daily_master):
        result = update_occurrence([daily_master], "daily_2024-01-03", {"title": "Renamed", "time": "07:00"}, "all")
        master = _by_id(result.tasks, "daily")
        assert (master.title, master.time) == ("Renamed", "07:00")
        assert result.created == []

    def test_edit_on_standalone_task_updates_it(self, make_task):
        result = update_occurrence([make_task("a", "2024-01-05")], "a", {"title": "New"}, "single")
        assert _by_id(result.tasks, "a").title == "New"
        assert result.created == []

    def test_future_edit_splits_series(self, daily_master, id_factory):
        master = daily_master.model_copy(
            update={"completed_dates": ["2024-01-02", "2024-01-12"], "exception_dates": ["2024-01-13"]}
        )
        result = update_occurrence(
            [master], "daily_2024-01-10", {"title": "Later"}, "future", id_factory=id_factory
        )
        old = _by_id(result.tasks, "daily")
        (new,) = result.created

        assert old.recurrence_rule == "FREQ=DAILY;UNTIL=20240109"
        assert old.completed_dates == ["2024-01-02"]
        assert old.exception_dates == []
        assert new.id == "new-1"
        assert new.date == "2024-01-10"
        assert new.title == "Later"
        assert new.recurrence_rule == "FREQ=DAILY"
        assert new.completed_dates == ["2024-01-12"]
        assert new.exception_dates == ["2024-01-13"]

        occurrences = project(result.tasks, D(2024, 1, 8), 4)
        assert [(o.date, o.title) for o in occurrences] == [
            ("2024-01-08", "Task daily"),
            ("2024-01-09", "Task daily"),
            ("2024-01-10", "Later"),
            ("2024-01-11", "Later"),
        ]

    def test_future_edit_rebases_count(self, make_task, id_factory):
        master = make_task("m", "2024-01-01", recurrence_rule="FREQ=DAILY;COUNT=5")
        result = update_occurrence([master], "m_2024-01-03", {"title": "x"}, "future", id_factory=id_factory)
        new = result.created[0]
        assert new.recurrence_rule == "FREQ=DAILY;COUNT=3"
        assert expand(new.recurrence_rule, D(2024, 1, 1), D(2024, 1, 31), anchor=D(2024, 1, 3)) == [
            D(2024, 1, 3),
            D(2024, 1, 4),
            D(2024, 1, 5),
        ]

    def test_future_edit_from_first_occurrence_edits_whole_series(self, daily_master):
        result = update_occurrence([daily_master], "daily_2024-01-01", {"title": "All"}, "future")
        assert len(result.tasks) == 1
        assert _by_id(result.tasks, "daily").title == "All"

    def test_edit_rejects_protected_fields(self, daily_master):
        with pytest.raises(ValueError, match="protected"):
            update_occurrence([daily_master], "daily_2024-01-03", {"id": "other"}, "all")

    def test_edit_rejects_invalid_values(self, daily_master):
        with pytest.raises(ValueError):
            update_occurrence([daily_master], "daily_2024-01-03", {"date": "someday"}, "all")

    def test_edit_unknown_task_raises(self, daily_master):
        with pytest.raises(TaskNotFoundError):
            update_occurrence([daily_master], "nope", {"title": "x"}, "all")


class TestDeleteOccurrence:
    """Deletes with single/future/all scope."""

    def test_single_delete_adds_exception(self, daily_master):
        result = delete_occurrence([daily_master], "daily_2024-01-03", "single")
        assert _by_id(result.tasks, "daily").exception_dates == ["2024-01-03"]
        assert result.removed == []

    def test_single_delete_is_idempotent(self, daily_master):
        once = delete_occurrence([daily_master], "daily_2024-01-03", "single").tasks
        twice = delete_occurrence(once, "daily_2024-01-03", "single").tasks
        assert _by_id(twice, "daily").exception_dates == ["2024-01-03"]

    def test_future_delete_ends_series(self, daily_master):
        result = delete_occurrence([daily_master], "daily_2024-01-05", "future")
        assert _by_id(result.tasks, "daily").recurrence_rule == "FREQ=DAILY;UNTIL=20240104"
        assert [o.date for o in project(result.tasks, D(2024, 1, 3), 5)] == ["2024-01-03", "2024-01-04"]

    def test_future_delete_from_anchor_removes_series(self, daily_master):
        result = delete_occurrence([daily_master], "daily_2024-01-01", "future")
        assert result.tasks == []
        assert [t.id for t in result.removed] == ["daily"]

    def test_all_delete_removes_master(self, daily_master, make_task):
        result = delete_occurrence([daily_master, make_task("a")], "daily_2024-01-05", "all")
        assert [t.id for t in result.tasks] == ["a"]

    def test_delete_standalone_removes_it(self, make_task):
        result = delete_occurrence([make_task("a")], "a", "single")
        assert result.tasks == []
        assert result.removed[0].id == "a"


class TestUpdateOccurrenceSubtasks:
    """Per-occurrence checklists."""

    def test_ghost_subtasks_go_to_instance_override(self, make_task):
        master = make_task("m", recurrence_rule="FREQ=DAILY", subtasks=[Subtask(id="s1", title="Template")])
        edited = [Subtask(id="s1", title="Template", completed=True)]
        result = update_occurrence_subtasks([master], "m_2024-01-02", edited, progress=100)

        updated = _by_id(result.tasks, "m")
        assert updated.subtasks[0].completed is False
        assert updated.instance_subtasks["2024-01-02"][0].completed is True
        assert updated.instance_progress == {"2024-01-02": 100}

        by_date = {o.date: o for o in project(result.tasks, D(2024, 1, 1), 3)}
        assert by_date["2024-01-02"].subtasks[0].completed is True
        assert by_date["2024-01-03"].subtasks[0].completed is False

    def test_standalone_subtasks_replaced_in_place(self, make_task):
        result = update_occurrence_subtasks([make_task("a")], "a", [Subtask(id="x", title="New")], progress=50)
        updated = _by_id(result.tasks, "a")
        assert [s.title for s in updated.subtasks] == ["New"]
        assert updated.progress == 50


class TestCreateTask:
    """New tasks."""

    def test_create_task_defaults_to_today(self, id_factory):
        result = create_task([], {"title": "Fresh"}, today=D(2024, 1, 8), id_factory=id_factory)
        (task,) = result.tasks
        assert (task.id, task.date, task.title) == ("new-1", "2024-01-08", "Fresh")

    def test_create_task_accepts_camel_case_fields(self, id_factory):
        result = create_task(
            [],
            {"title": "Series", "date": "2024-01-02", "recurrenceRule": "FREQ=WEEKLY"},
            today=D(2024, 1, 8),
            id_factory=id_factory,
        )
        assert result.created[0].is_recurring

    def test_create_task_rejects_invalid(self):
        with pytest.raises(ValueError):
            create_task([], {"date": "2024-01-02"}, today=D(2024, 1, 8))


class TestTimestamps:
    """Every mutation stamps updated_at; new tasks also get created_at."""

    STAMP = 1_704_700_000_000

    def _now(self):
        return self.STAMP

    def test_toggle_stamps_updated_at(self, daily_master):
        result = toggle_completion([daily_master], "daily_2024-01-03", now=self._now)
        assert _by_id(result.tasks, "daily").updated_at == self.STAMP

    def test_edit_all_stamps_master(self, daily_master):
        result = update_occurrence([daily_master], "daily_2024-01-03", {"title": "x"}, "all", now=self._now)
        assert _by_id(result.tasks, "daily").updated_at == self.STAMP

    def test_single_edit_stamps_master_and_detached_task(self, daily_master, id_factory):
        result = update_occurrence(
            [daily_master], "daily_2024-01-03", {"title": "x"}, "single", id_factory=id_factory, now=self._now
        )
        assert _by_id(result.tasks, "daily").updated_at == self.STAMP
        (created,) = result.created
        assert (created.created_at, created.updated_at) == (self.STAMP, self.STAMP)

    def test_future_edit_stamps_both_series(self, daily_master, id_factory):
        result = update_occurrence(
            [daily_master], "daily_2024-01-05", {"title": "x"}, "future", id_factory=id_factory, now=self._now
        )
        assert _by_id(result.tasks, "daily").updated_at == self.STAMP
        assert result.created[0].created_at == self.STAMP

    @pytest.mark.parametrize("mode", ["single", "future"])
    def test_delete_stamps_remaining_master(self, daily_master, mode):
        result = delete_occurrence([daily_master], "daily_2024-01-05", mode, now=self._now)
        assert _by_id(result.tasks, "daily").updated_at == self.STAMP

    def test_subtask_edits_stamp_task(self, daily_master, make_task):
        series = update_occurrence_subtasks([daily_master], "daily_2024-01-02", [], now=self._now)
        assert _by_id(series.tasks, "daily").updated_at == self.STAMP
        single = update_occurrence_subtasks([make_task("a")], "a", [], now=self._now)
        assert _by_id(single.tasks, "a").updated_at == self.STAMP

    def test_create_task_stamps_created_and_updated(self, id_factory):
        result = create_task([], {"title": "Fresh"}, today=D(2024, 1, 8), id_factory=id_factory, now=self._now)
        (task,) = result.tasks
        assert (task.created_at, task.updated_at) == (self.STAMP, self.STAMP)
