"""User-intent mutations over the task list - stacker_lite.

Every action takes the id the host got from a projected occurrence, resolves
it with ``parse_occurrence_ref`` and decides whether it targets a series
master, one occurrence of a series (which may require a detach) or an
ordinary standalone task. Actions are pure: they return a new task list and
leave persistence to the caller.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import ValidationError

from .lite_datetime_utils import Timestamp, add_days, now_ms, parse_iso_date, to_iso
from .lite_exceptions import RuleParseError, TaskNotFoundError
from .lite_id_resolver import GhostRef, new_task_id, parse_occurrence_ref
from .lite_models import MasterTask, Subtask
from .lite_rollover import IdFactory, detach_occurrence
from .lite_rrule_expander import LiteRRuleExpander, clamp_rule_until, format_rrule, parse_rrule_string

logger = logging.getLogger(__name__)

EditMode = Literal["single", "future", "all"]

# Fields an edit may never overwrite
_PROTECTED_FIELDS = frozenset({"id", "completed_dates", "exception_dates"})


@dataclass
class ActionResult:
    """Outcome of an action: the new task list plus what was created or removed."""

    tasks: list[MasterTask]
    created: list[MasterTask] = field(default_factory=list)
    removed: list[MasterTask] = field(default_factory=list)


def find_task(tasks: Sequence[MasterTask], task_id: str) -> MasterTask:
    """Return the task with ``task_id``.

    Raises:
        TaskNotFoundError: If no task has that id
    """
    for task in tasks:
        if task.id == task_id:
            return task
    raise TaskNotFoundError(task_id)


def _replace(tasks: Sequence[MasterTask], updated: MasterTask) -> list[MasterTask]:
    return [updated if t.id == updated.id else t for t in tasks]


def _without(tasks: Sequence[MasterTask], task_id: str) -> list[MasterTask]:
    return [t for t in tasks if t.id != task_id]


def _apply_changes(task: MasterTask, changes: dict[str, Any]) -> MasterTask:
    """Return ``task`` with validated field changes applied.

    Raises:
        ValueError: If a change touches a protected field or fails validation
    """
    blocked = _PROTECTED_FIELDS.intersection(changes)
    if blocked:
        raise ValueError(f"Cannot edit protected fields: {', '.join(sorted(blocked))}")
    try:
        return MasterTask.model_validate({**task.model_dump(), **changes})
    except ValidationError as e:
        raise ValueError(f"Invalid changes for task {task.id}: {e}") from e


def _target(tasks: Sequence[MasterTask], occurrence_id: str, date: Optional[str]) -> tuple[MasterTask, str]:
    """Resolve an occurrence id to its master task and occurrence date."""
    ref = parse_occurrence_ref(occurrence_id)
    if isinstance(ref, GhostRef):
        return find_task(tasks, ref.master_id), ref.date
    task = find_task(tasks, ref.task_id)
    return task, date or task.date


def toggle_completion(
    tasks: Sequence[MasterTask],
    occurrence_id: str,
    date: Optional[str] = None,
    *,
    now: Timestamp = now_ms,
) -> ActionResult:
    """Check or uncheck one occurrence.

    Completion is recorded in the master's ``completed_dates``; a standalone
    task is completed on its own date.
    """
    task, occurrence_date = _target(tasks, occurrence_id, date)
    if not task.is_recurring:
        occurrence_date = task.date

    completed = list(task.completed_dates)
    if occurrence_date in completed:
        completed.remove(occurrence_date)
        logger.debug("Uncompleted %s on %s", task.id, occurrence_date)
    else:
        completed.append(occurrence_date)
        logger.debug("Completed %s on %s", task.id, occurrence_date)
    updated = task.model_copy(update={"completed_dates": completed, "updated_at": now()})
    return ActionResult(tasks=_replace(tasks, updated))


def _rebase_rule(
    master: MasterTask, cutoff: datetime.date, expander: LiteRRuleExpander
) -> Optional[str]:
    """RRULE for a series continuing ``master`` from ``cutoff`` on (None if it has no occurrences left)."""
    components = parse_rrule_string(master.recurrence_rule or "")
    components["dtstart"] = None
    if components["count"] is not None:
        consumed = expander.expand(
            master.recurrence_rule or "",
            parse_iso_date(master.date),
            add_days(cutoff, -1),
            anchor=parse_iso_date(master.date),
        )
        remaining = components["count"] - len(consumed)
        if remaining <= 0:
            return None
        components["count"] = remaining
    if components["until"] is not None and components["until"] < cutoff:
        return None
    return format_rrule(components)


def _split_series(
    tasks: Sequence[MasterTask],
    master: MasterTask,
    occurrence_date: str,
    changes: dict[str, Any],
    id_factory: IdFactory,
    stamp: int,
) -> ActionResult:
    """Edit "this and following": end the old series before the occurrence and start a new one on it."""
    cutoff = parse_iso_date(occurrence_date)
    expander = LiteRRuleExpander()
    new_rule = changes.get("recurrence_rule") or _rebase_rule(master, cutoff, expander)

    def _before_cutoff(values: dict[str, Any]) -> dict[str, Any]:
        return {d: v for d, v in values.items() if d < occurrence_date}

    def _from_cutoff(values: dict[str, Any]) -> dict[str, Any]:
        return {d: v for d, v in values.items() if d >= occurrence_date}

    old = master.model_copy(
        update={
            "recurrence_rule": clamp_rule_until(master.recurrence_rule or "", cutoff),
            "recurrence": None,
            "completed_dates": [d for d in master.completed_dates if d < occurrence_date],
            "exception_dates": [d for d in master.exception_dates if d < occurrence_date],
            "instance_progress": _before_cutoff(master.instance_progress),
            "instance_subtasks": _before_cutoff(master.instance_subtasks),
            "updated_at": stamp,
        }
    )
    if new_rule is None:
        logger.info("Series %s has no occurrences from %s, ending it", master.id, occurrence_date)
        return ActionResult(tasks=_replace(tasks, old))

    successor = master.model_copy(
        deep=True,
        update={
            "id": id_factory(),
            "date": occurrence_date,
            "recurrence_rule": new_rule,
            "recurrence": None,
            "completed_dates": [d for d in master.completed_dates if d >= occurrence_date],
            "exception_dates": [d for d in master.exception_dates if d >= occurrence_date],
            "instance_progress": _from_cutoff(master.instance_progress),
            "instance_subtasks": _from_cutoff(master.instance_subtasks),
            "created_at": stamp,
            "updated_at": stamp,
        },
    )
    successor = _apply_changes(successor, {k: v for k, v in changes.items() if k != "recurrence_rule"})

    logger.info("Split series %s at %s into %s", master.id, occurrence_date, successor.id)
    return ActionResult(tasks=[*_replace(tasks, old), successor], created=[successor])


def update_occurrence(
    tasks: Sequence[MasterTask],
    occurrence_id: str,
    changes: dict[str, Any],
    mode: EditMode = "single",
    *,
    date: Optional[str] = None,
    id_factory: IdFactory = new_task_id,
    now: Timestamp = now_ms,
) -> ActionResult:
    """Apply an edit to one occurrence, the following occurrences, or the whole series.

    Args:
        tasks: Current task list
        occurrence_id: Projected occurrence id (composite or plain)
        changes: Field changes keyed by MasterTask field name
        mode: "single" detaches the occurrence, "future" splits the series,
            "all" edits the master
        date: Occurrence date when ``occurrence_id`` is a plain master id
        id_factory: Source of fresh ids for created tasks
        now: Source of the ``updated_at`` timestamp

    Raises:
        TaskNotFoundError: If the master task does not exist
        ValueError: If the changes are invalid
        RuleParseError: If a "future" split hits an unparsable rule
    """
    master, occurrence_date = _target(tasks, occurrence_id, date)
    stamp = now()

    if not master.is_recurring or mode == "all" or (mode == "future" and occurrence_date <= master.date):
        edited = _apply_changes(master, changes).model_copy(update={"updated_at": stamp})
        return ActionResult(tasks=_replace(tasks, edited))

    if mode == "future":
        return _split_series(tasks, master, occurrence_date, changes, id_factory, stamp)

    # single: detach the occurrence into its own task
    blocked = _PROTECTED_FIELDS.intersection(changes)
    if blocked:
        raise ValueError(f"Cannot edit protected fields: {', '.join(sorted(blocked))}")
    detached = detach_occurrence(
        master,
        occurrence_date,
        new_date=changes.get("date", occurrence_date),
        id_factory=id_factory,
    )
    detached = _apply_changes(detached, {k: v for k, v in changes.items() if k != "date"})
    update: dict[str, Any] = {"created_at": stamp, "updated_at": stamp}
    if master.is_completed_on(occurrence_date):
        update["completed_dates"] = [detached.date]
    detached = detached.model_copy(update=update)

    exceptions = list(master.exception_dates)
    if occurrence_date not in exceptions:
        exceptions.append(occurrence_date)
    updated_master = master.model_copy(update={"exception_dates": exceptions, "updated_at": stamp})

    logger.info("Detached %s on %s into %s", master.id, occurrence_date, detached.id)
    return ActionResult(tasks=[*_replace(tasks, updated_master), detached], created=[detached])


def delete_occurrence(
    tasks: Sequence[MasterTask],
    occurrence_id: str,
    mode: EditMode = "single",
    *,
    date: Optional[str] = None,
    now: Timestamp = now_ms,
) -> ActionResult:
    """Delete one occurrence, the following occurrences, or the whole task.

    Standalone tasks are always removed. For a series, "single" records an
    exception, "future" ends the series before the occurrence (removing it
    entirely when deleting from its first date) and "all" removes the master.

    Raises:
        TaskNotFoundError: If the master task does not exist
    """
    master, occurrence_date = _target(tasks, occurrence_id, date)

    if not master.is_recurring or mode == "all" or (mode == "future" and occurrence_date <= master.date):
        logger.info("Deleted task %s", master.id)
        return ActionResult(tasks=_without(tasks, master.id), removed=[master])

    if mode == "single":
        exceptions = list(master.exception_dates)
        if occurrence_date not in exceptions:
            exceptions.append(occurrence_date)
        updated = master.model_copy(update={"exception_dates": exceptions, "updated_at": now()})
        return ActionResult(tasks=_replace(tasks, updated))

    try:
        clamped = clamp_rule_until(master.recurrence_rule or "", parse_iso_date(occurrence_date))
    except RuleParseError as e:
        logger.warning("Failed to clamp recurrence of %s, deleting series: %s", master.id, e)
        return ActionResult(tasks=_without(tasks, master.id), removed=[master])
    updated = master.model_copy(update={"recurrence_rule": clamped, "recurrence": None, "updated_at": now()})
    return ActionResult(tasks=_replace(tasks, updated))


def update_occurrence_subtasks(
    tasks: Sequence[MasterTask],
    occurrence_id: str,
    subtasks: Sequence[Subtask],
    progress: Optional[float] = None,
    *,
    now: Timestamp = now_ms,
) -> ActionResult:
    """Replace the checklist (and optionally progress) of one occurrence.

    Occurrences of a series diverge from the template through
    ``instance_subtasks``/``instance_progress``; standalone tasks are
    updated in place.
    """
    ref = parse_occurrence_ref(occurrence_id)
    if isinstance(ref, GhostRef):
        master = find_task(tasks, ref.master_id)
        if master.is_recurring:
            instance_subtasks = dict(master.instance_subtasks)
            instance_subtasks[ref.date] = [s.model_copy() for s in subtasks]
            update: dict[str, Any] = {"instance_subtasks": instance_subtasks, "updated_at": now()}
            if progress is not None:
                instance_progress = dict(master.instance_progress)
                instance_progress[ref.date] = progress
                update["instance_progress"] = instance_progress
            return ActionResult(tasks=_replace(tasks, master.model_copy(update=update)))
        task = master
    else:
        task = find_task(tasks, ref.task_id)

    update = {"subtasks": [s.model_copy() for s in subtasks], "updated_at": now()}
    if progress is not None:
        update["progress"] = progress
    return ActionResult(tasks=_replace(tasks, task.model_copy(update=update)))


def create_task(
    tasks: Sequence[MasterTask],
    fields: dict[str, Any],
    *,
    today: datetime.date,
    id_factory: IdFactory = new_task_id,
    now: Timestamp = now_ms,
) -> ActionResult:
    """Create a new task with a fresh id (dated ``today`` unless a date is given).

    Raises:
        ValueError: If the fields do not form a valid task
    """
    stamp = now()
    record = {"date": to_iso(today), "createdAt": stamp, "updatedAt": stamp, **fields, "id": id_factory()}
    try:
        task = MasterTask.model_validate(record)
    except ValidationError as e:
        raise ValueError(f"Invalid task: {e}") from e
    return ActionResult(tasks=[*tasks, task], created=[task])
