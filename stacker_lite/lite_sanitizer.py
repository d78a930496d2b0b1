"""Validation and repair of raw persisted task records.

The sanitizer is the firewall between the host's key-value store and the
engine: every MasterTask handed downstream has pure ``YYYY-MM-DD`` dates and
empty-but-present collections. Fields of the wrong type are reset to their
defaults; only records without an id or title are rejected.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from pydantic import ValidationError

from .lite_datetime_utils import Clock, extract_time, strip_time, to_iso
from .lite_datetime_utils import today as default_today
from .lite_exceptions import MalformedRecordError
from .lite_id_resolver import is_ghost_id
from .lite_models import MasterTask, RecurrenceRule
from .lite_rrule_expander import build_rrule_string

logger = logging.getLogger(__name__)

# Legacy key -> current camelCase key
_LEGACY_KEYS = {
    "rrule": "recurrenceRule",
    "taskType": "type",
}


def _clean_date_list(values: Any) -> list[str]:
    if not isinstance(values, (list, tuple, set)):
        return []
    cleaned: list[str] = []
    for value in values:
        d = strip_time(value)
        if d and d not in cleaned:
            cleaned.append(d)
    return cleaned


def _clean_date_keyed(mapping: Any) -> dict[str, Any]:
    if not isinstance(mapping, Mapping):
        return {}
    cleaned: dict[str, Any] = {}
    for key, value in mapping.items():
        d = strip_time(key)
        if d and value is not None:
            cleaned[d] = value
    return cleaned


# Optional fields reset to their default when the stored value has the wrong type
_OPTIONAL_STRING_KEYS = (
    "time",
    "deadline",
    "estimatedTime",
    "reminderTime",
    "color",
    "seriesId",
    "originalTaskId",
    "originalDate",
)
_OPTIONAL_INT_KEYS = ("reminderOffset", "createdAt", "updatedAt")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_int(value: Any) -> Optional[int]:
    if not _is_number(value):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    return value


def _clean_subtasks(values: Any, task_id: str) -> list[dict[str, Any]]:
    """Repair a subtask list; entries without an id get one derived from the task and position."""
    if not isinstance(values, list):
        return []
    cleaned: list[dict[str, Any]] = []
    for index, raw in enumerate(values):
        if not isinstance(raw, Mapping):
            logger.warning("Dropping non-mapping subtask on task %s", task_id)
            continue
        subtask = dict(raw)
        subtask["id"] = str(subtask["id"]) if subtask.get("id") else f"{task_id}-{index + 1}"
        title = subtask.get("title")
        subtask["title"] = title if isinstance(title, str) else ("" if title is None else str(title))
        subtask["completed"] = bool(subtask.get("completed", False))
        for key in ("deadline", "estimatedTime"):
            if key in subtask and not isinstance(subtask[key], str):
                subtask[key] = None
        if "progress" in subtask and not _is_number(subtask["progress"]):
            subtask["progress"] = None
        cleaned.append(subtask)
    return cleaned


def _recover_rule(record: dict[str, Any]) -> Optional[str]:
    """Return the RRULE string, deriving it from a structured recurrence if needed."""
    structured = None
    recurrence = record.pop("recurrence", None)
    if isinstance(recurrence, Mapping):
        try:
            structured = RecurrenceRule.model_validate(recurrence)
            record["recurrence"] = structured.to_record()
        except ValidationError as e:
            logger.warning("Dropping invalid recurrence on task %s: %s", record.get("id"), e)

    rule = record.get("recurrenceRule")
    if isinstance(rule, str) and rule.strip():
        return rule.strip()
    if structured is not None:
        return build_rrule_string(structured)
    return None


def _repair_record(raw: Any, today: datetime.date) -> dict[str, Any]:
    """Normalize a raw record into the MasterTask record shape.

    Raises:
        MalformedRecordError: If the record cannot be repaired
    """
    if not isinstance(raw, Mapping):
        raise MalformedRecordError(f"Task record must be a mapping, got {type(raw).__name__}")

    record_id = raw.get("id")
    title = raw.get("title")
    if not record_id or not title:
        raise MalformedRecordError("Task record missing id or title", record_id=record_id)

    record = dict(raw)
    for legacy, current in _LEGACY_KEYS.items():
        if legacy in record and current not in record:
            record[current] = record.pop(legacy)
        else:
            record.pop(legacy, None)

    record["id"] = str(record_id)
    record["title"] = str(title)

    for key in _OPTIONAL_STRING_KEYS:
        if key in record and not isinstance(record[key], str):
            record[key] = None
    for key in _OPTIONAL_INT_KEYS:
        if key in record:
            record[key] = _as_int(record[key])
    record["importance"] = _as_int(record.get("importance")) or 0
    if not isinstance(record.get("type"), str):
        record["type"] = "task"

    # Date sanitization: recover time that got stuck in the date
    raw_date = record.get("date")
    record["date"] = strip_time(raw_date) or to_iso(today)
    recovered_time = extract_time(raw_date)
    if recovered_time and not record.get("time"):
        record["time"] = recovered_time

    for key in ("deadline", "originalDate"):
        if key in record:
            record[key] = strip_time(record[key])

    record["completedDates"] = _clean_date_list(record.get("completedDates"))
    record["exceptionDates"] = _clean_date_list(record.get("exceptionDates"))
    record["instanceProgress"] = {
        d: v for d, v in _clean_date_keyed(record.get("instanceProgress")).items() if _is_number(v)
    }
    record["instanceSubtasks"] = {
        d: _clean_subtasks(v, f"{record['id']}-{d}")
        for d, v in _clean_date_keyed(record.get("instanceSubtasks")).items()
    }
    record["subtasks"] = _clean_subtasks(record.get("subtasks"), record["id"])
    tag_ids = record.get("tagIds")
    record["tagIds"] = [t for t in tag_ids if isinstance(t, str)] if isinstance(tag_ids, list) else []

    if not _is_number(record.get("progress")):
        record["progress"] = 0
    days_rolled = record.get("daysRolled")
    record["daysRolled"] = days_rolled if isinstance(days_rolled, int) and days_rolled > 0 else 0

    rule = _recover_rule(record)
    record["recurrenceRule"] = rule
    if rule:
        record["daysRolled"] = 0

    # Legacy boolean completion on one-off tasks becomes a completed date
    legacy_completed = record.pop("completed", False)
    legacy_done = bool(record.pop("isCompleted", False) or legacy_completed)
    if legacy_done and not rule and record["date"] not in record["completedDates"]:
        record["completedDates"].append(record["date"])

    return record


def sanitize_task(raw: Any, clock: Clock = default_today) -> Optional[MasterTask]:
    """Clean a single raw record, fixing or stripping invalid data.

    Args:
        raw: Raw persisted record (mapping)
        clock: Source of "today", used when the record has no usable date

    Returns:
        The repaired MasterTask, or None if the record was rejected
    """
    try:
        record = _repair_record(raw, clock())
        try:
            return MasterTask.model_validate(record)
        except ValidationError as e:
            raise MalformedRecordError(str(e), record_id=record.get("id")) from e
    except MalformedRecordError as e:
        logger.warning("Dropping malformed task record %r: %s", e.record_id, e)
        return None


def sanitize_all(raws: Any, clock: Clock = default_today) -> list[MasterTask]:
    """Batch sanitize, preserving order and dropping rejected records."""
    if not isinstance(raws, (list, tuple)):
        if raws is not None:
            logger.warning("Expected a list of task records, got %s", type(raws).__name__)
        return []

    tasks = [t for t in (sanitize_task(raw, clock) for raw in raws) if t is not None]
    dropped = len(raws) - len(tasks)
    if dropped:
        logger.info("Sanitizer dropped %d of %d task records", dropped, len(raws))
    return tasks


def drop_ghost_records(tasks: Iterable[MasterTask]) -> list[MasterTask]:
    """Remove accidentally persisted ghost occurrences.

    A non-recurring record whose id has the composite ``masterId_YYYY-MM-DD``
    shape is a projected occurrence that leaked into storage. Detached
    instances always get fresh ids, so they are unaffected.
    """
    kept: list[MasterTask] = []
    for task in tasks:
        if not task.is_recurring and is_ghost_id(task.id):
            logger.info("Removing persisted ghost occurrence %s", task.id)
            continue
        kept.append(task)
    return kept
