"""Rollover of missed occurrences - stacker_lite.

Tasks the user never completed or explicitly handled must not silently
vanish; they are pulled forward to "today". One-off tasks are moved; missed
occurrences of a series are detached into their own standalone task and
recorded as exceptions on the master.

The functions here are the single rollover computation: the persisted
migration (``compute_rollover_actions``) and the display-only rollover in
``lite_projector.project_with_rollover`` both call ``find_missed_dates`` and
``rolled_days`` so the two paths cannot disagree on ``days_rolled``.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable, Iterable
from typing import Any, Optional

from .config_manager import DEFAULT_LOOKBACK_DAYS
from .lite_datetime_utils import add_days, days_between, parse_iso_date, to_iso
from .lite_exceptions import RuleParseError
from .lite_id_resolver import new_task_id
from .lite_models import MasterTask, RolloverActions, Subtask
from .lite_rrule_expander import LiteRRuleExpander

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]


def elapsed_days(source: str | datetime.date, today: datetime.date) -> int:
    """Whole days an occurrence dated ``source`` has been carried to ``today`` (never negative)."""
    return max(days_between(parse_iso_date(source), today), 0)


def rolled_days(task: MasterTask, occurrence_date: str, today: datetime.date) -> int:
    """``days_rolled`` for an occurrence carried from ``occurrence_date`` to ``today``.

    One-off tasks accumulate on top of what they already rolled; an occurrence
    of a series starts counting from zero.
    """
    carried = elapsed_days(occurrence_date, today)
    if task.is_recurring:
        return carried
    return task.days_rolled + carried


def lookback_window(today: datetime.date, lookback_days: int) -> tuple[datetime.date, datetime.date]:
    """Inclusive ``(start, end)`` of the rollover scan: ``[today - lookback_days, today)``."""
    return add_days(today, -lookback_days), add_days(today, -1)


def is_overdue(task: MasterTask, today: datetime.date, lookback_days: int) -> bool:
    """True for an incomplete one-off task dated inside the lookback window."""
    if task.is_recurring or task.is_completed_on(task.date):
        return False
    start, end = lookback_window(today, lookback_days)
    task_date = parse_iso_date(task.date)
    return start <= task_date <= end


def find_missed_dates(
    master: MasterTask,
    today: datetime.date,
    lookback_days: int,
    expander: Optional[LiteRRuleExpander] = None,
) -> list[str]:
    """Occurrence dates of a series inside the lookback window that were neither completed nor excepted.

    Raises:
        RuleParseError: If the master's rule cannot be parsed
    """
    if not master.recurrence_rule or lookback_days <= 0:
        return []
    expander = expander or LiteRRuleExpander()
    start, end = lookback_window(today, lookback_days)
    missed: list[str] = []
    for occurrence in expander.expand(
        master.recurrence_rule, start, end, anchor=parse_iso_date(master.date)
    ):
        date_str = to_iso(occurrence)
        if master.is_excepted_on(date_str) or master.is_completed_on(date_str):
            continue
        missed.append(date_str)
    return missed


def occurrence_subtasks(master: MasterTask, occurrence_date: str) -> list[Subtask]:
    """Subtasks of one occurrence: its override if present, else the template reset to incomplete."""
    override = master.instance_subtasks.get(occurrence_date)
    if override is not None:
        return [s.model_copy(deep=True) for s in override]
    return [s.model_copy(update={"completed": False, "progress": 0}) for s in master.subtasks]


def detach_occurrence(
    master: MasterTask,
    occurrence_date: str,
    *,
    new_date: str,
    days_rolled: int = 0,
    changes: Optional[dict[str, Any]] = None,
    id_factory: IdFactory = new_task_id,
) -> MasterTask:
    """Build the standalone task that replaces one occurrence of a series.

    The new task has a fresh id, no recurrence, fresh subtask ids and
    back-references (``series_id``, ``original_task_id``, ``original_date``)
    to the occurrence it came from. ``changes`` are applied last.
    """
    subtasks = [
        s.model_copy(update={"id": id_factory()})
        for s in occurrence_subtasks(master, occurrence_date)
    ]
    fields: dict[str, Any] = {
        "id": id_factory(),
        "date": new_date,
        "recurrence_rule": None,
        "recurrence": None,
        "completed_dates": [],
        "exception_dates": [],
        "instance_progress": {},
        "instance_subtasks": {},
        "subtasks": subtasks,
        "progress": master.instance_progress.get(occurrence_date, 0),
        "days_rolled": days_rolled,
        "series_id": master.id,
        "original_task_id": master.id,
        "original_date": occurrence_date,
    }
    if changes:
        fields.update(changes)
    return master.model_copy(deep=True, update=fields)


def compute_rollover_actions(
    tasks: Iterable[MasterTask],
    today: datetime.date,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    *,
    expander: Optional[LiteRRuleExpander] = None,
    id_factory: IdFactory = new_task_id,
) -> RolloverActions:
    """Determine what needs to be rolled over to ``today``.

    Pure: the caller persists the returned updates and creations (see
    ``apply_rollover_actions``). Occurrences already excepted or completed are
    never reprocessed, so applying the result and calling again with the same
    ``today`` yields no further actions.

    Args:
        tasks: All current tasks
        today: The date missed work is carried to
        lookback_days: How far back to look for missed occurrences
        expander: Rule expander (a default one is created if omitted)
        id_factory: Source of fresh task/subtask ids

    Returns:
        RolloverActions with one update per moved task or per master gaining
        exceptions, and one creation per detached occurrence
    """
    expander = expander or LiteRRuleExpander()
    actions = RolloverActions()
    today_str = to_iso(today)

    for task in tasks:
        if not task.is_recurring:
            if is_overdue(task, today, lookback_days):
                actions.updates.append(
                    task.model_copy(
                        update={
                            "date": today_str,
                            "days_rolled": rolled_days(task, task.date, today),
                            "original_date": task.original_date or task.date,
                        }
                    )
                )
            continue

        try:
            missed = find_missed_dates(task, today, lookback_days, expander)
        except RuleParseError as e:
            logger.warning("Skipping rollover for task %s: %s", task.id, e)
            continue
        if not missed:
            continue

        for occurrence_date in missed:
            actions.creations.append(
                detach_occurrence(
                    task,
                    occurrence_date,
                    new_date=today_str,
                    days_rolled=rolled_days(task, occurrence_date, today),
                    id_factory=id_factory,
                )
            )
        actions.updates.append(
            task.model_copy(update={"exception_dates": [*task.exception_dates, *missed]})
        )

    logger.debug(
        "Rollover for %s: %d updates, %d creations",
        today_str,
        len(actions.updates),
        len(actions.creations),
    )
    return actions


def apply_rollover_actions(tasks: Iterable[MasterTask], actions: RolloverActions) -> list[MasterTask]:
    """Merge rollover actions into a task list: updates replace by id, creations are appended."""
    updates = {t.id: t for t in actions.updates}
    merged = [updates.pop(t.id, t) for t in tasks]
    if updates:
        logger.warning("Rollover updates for unknown tasks ignored: %s", ", ".join(updates))
    merged.extend(actions.creations)
    return merged
