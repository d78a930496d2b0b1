"""Projection of master tasks into visible occurrences - stacker_lite.

Recurring masters are expanded into ephemeral "ghost" occurrences on demand;
nothing is materialized or cached beyond the call. Standalone (one-off or
detached) tasks are emitted as "real" occurrences. All functions here are
pure and safe to call on every render.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable
from typing import Any, Optional

from .config_manager import EngineConfig
from .lite_datetime_utils import add_days, in_range, parse_iso_date, to_iso, window_end
from .lite_exceptions import DuplicateOccurrenceError, RuleParseError
from .lite_id_resolver import make_instance_id
from .lite_models import MasterTask, ProjectedOccurrence, ProjectionResult
from .lite_rollover import (
    find_missed_dates,
    is_overdue,
    lookback_window,
    occurrence_subtasks,
    rolled_days,
)
from .lite_rrule_expander import LiteRRuleExpander

logger = logging.getLogger(__name__)


def _ghost(
    master: MasterTask, date: str, display_date: Optional[str] = None, days_rolled: int = 0
) -> ProjectedOccurrence:
    return ProjectedOccurrence(
        id=make_instance_id(master.id, date),
        original_task_id=master.id,
        title=master.title,
        date=display_date or date,
        original_date=date,
        time=master.time,
        is_ghost=True,
        days_rolled=days_rolled,
        subtasks=occurrence_subtasks(master, date),
        progress=master.instance_progress.get(date, 0),
        deadline=master.deadline,
        estimated_time=master.estimated_time,
        recurrence_rule=master.recurrence_rule,
        tag_ids=list(master.tag_ids),
        color=master.color,
        task_type=master.task_type,
        importance=master.importance,
        created_at=master.created_at,
    )


def _real(
    task: MasterTask, display_date: Optional[str] = None, days_rolled: Optional[int] = None
) -> ProjectedOccurrence:
    return ProjectedOccurrence(
        id=task.id,
        original_task_id=task.original_task_id or task.id,
        title=task.title,
        date=display_date or task.date,
        original_date=task.original_date or task.date,
        time=task.time,
        is_ghost=False,
        days_rolled=task.days_rolled if days_rolled is None else days_rolled,
        subtasks=[s.model_copy() for s in task.subtasks],
        progress=task.progress,
        deadline=task.deadline,
        estimated_time=task.estimated_time,
        tag_ids=list(task.tag_ids),
        color=task.color,
        task_type=task.task_type,
        importance=task.importance,
        created_at=task.created_at,
    )


class Projector:
    """Computes the occurrences visible in a date window."""

    def __init__(self, settings: Any = None, expander: Optional[LiteRRuleExpander] = None):
        """Initialize projector.

        Args:
            settings: EngineConfig, mapping or object with engine settings
            expander: Rule expander to share (created from settings if omitted)
        """
        self.config = settings if isinstance(settings, EngineConfig) else EngineConfig.from_settings(settings)
        self.expander = expander or LiteRRuleExpander(self.config)

    # ---- public API ----

    def project(
        self, tasks: Iterable[MasterTask], view_start: datetime.date, number_of_days: int
    ) -> list[ProjectedOccurrence]:
        """Occurrences dated inside ``number_of_days`` days starting at ``view_start``."""
        return self.project_detailed(tasks, view_start, number_of_days).occurrences

    def project_detailed(
        self,
        tasks: Iterable[MasterTask],
        view_start: datetime.date,
        number_of_days: int,
        today: Optional[datetime.date] = None,
        lookback_days: int = 0,
    ) -> ProjectionResult:
        """Project tasks and return occurrences plus diagnostics.

        With ``today`` and a positive ``lookback_days``, incomplete occurrences
        from ``[today - lookback_days, today)`` are displayed on ``today``
        (display only, storage is not touched).
        """
        result = ProjectionResult()
        if number_of_days <= 0:
            return result

        task_list = list(tasks)
        view_end = window_end(view_start, number_of_days)
        rollover = today is not None and lookback_days > 0
        items: list[ProjectedOccurrence] = []

        for task in task_list:
            if task.is_recurring:
                try:
                    rolled = lookback_window(today, lookback_days) if rollover else None
                    items.extend(self._project_series(task, view_start, view_end, rolled))
                    if rollover:
                        items.extend(self._roll_series(task, view_start, view_end, today, lookback_days))
                    continue
                except RuleParseError as e:
                    logger.warning("Failed to project task %s, showing it as one-off: %s", task.id, e)
                    result.fallback_task_ids.append(task.id)
                    result.add_warning(f"Task {task.id}: {e}")

            item = self._project_single(task, view_start, view_end, today if rollover else None, lookback_days)
            if item is not None:
                items.append(item)

        order = {task.id: i for i, task in enumerate(task_list)}
        result.occurrences = self._deduplicate_and_sort(items, order, result)
        logger.debug(
            "Projected %d tasks over %s..%s -> %d occurrences",
            len(task_list),
            view_start,
            view_end,
            len(result.occurrences),
        )
        return result

    def project_with_rollover(
        self,
        tasks: Iterable[MasterTask],
        view_start: datetime.date,
        number_of_days: int,
        today: datetime.date,
        lookback_days: Optional[int] = None,
    ) -> list[ProjectedOccurrence]:
        """Like ``project`` but overdue occurrences surface on ``today``'s view."""
        if lookback_days is None:
            lookback_days = self.config.lookback_days
        return self.project_detailed(tasks, view_start, number_of_days, today, lookback_days).occurrences

    # ---- helpers ----

    def _project_series(
        self,
        master: MasterTask,
        view_start: datetime.date,
        view_end: datetime.date,
        rolled: Optional[tuple[datetime.date, datetime.date]] = None,
    ) -> list[ProjectedOccurrence]:
        buffered_end = add_days(view_end, self.config.projection_buffer_days)
        ghosts = []
        for occurrence in self.expander.expand(
            master.recurrence_rule or "", view_start, buffered_end, anchor=parse_iso_date(master.date)
        ):
            if occurrence > view_end:
                break
            if rolled is not None and rolled[0] <= occurrence <= rolled[1]:
                # shown on today by _roll_series when still incomplete
                continue
            date_str = to_iso(occurrence)
            if master.is_excepted_on(date_str) or master.is_completed_on(date_str):
                continue
            ghosts.append(_ghost(master, date_str))
        return ghosts

    def _roll_series(
        self,
        master: MasterTask,
        view_start: datetime.date,
        view_end: datetime.date,
        today: datetime.date,
        lookback_days: int,
    ) -> list[ProjectedOccurrence]:
        today_str = to_iso(today)
        if not in_range(today_str, view_start, view_end):
            return []
        return [
            _ghost(master, date_str, display_date=today_str, days_rolled=rolled_days(master, date_str, today))
            for date_str in find_missed_dates(master, today, lookback_days, self.expander)
        ]

    def _project_single(
        self,
        task: MasterTask,
        view_start: datetime.date,
        view_end: datetime.date,
        today: Optional[datetime.date],
        lookback_days: int,
    ) -> Optional[ProjectedOccurrence]:
        if task.is_completed_on(task.date):
            return None
        if today is not None and is_overdue(task, today, lookback_days):
            today_str = to_iso(today)
            if in_range(today_str, view_start, view_end):
                return _real(task, display_date=today_str, days_rolled=rolled_days(task, task.date, today))
            return None
        if in_range(task.date, view_start, view_end):
            return _real(task)
        return None

    @staticmethod
    def _deduplicate_and_sort(
        items: list[ProjectedOccurrence], order: dict[str, int], result: ProjectionResult
    ) -> list[ProjectedOccurrence]:
        """Resolve collisions (real beats ghost per slot), enforce id uniqueness, then sort."""
        by_slot: dict[str, ProjectedOccurrence] = {}
        for item in items:
            existing = by_slot.get(item.slot_key)
            if existing is None or (existing.is_ghost and not item.is_ghost):
                by_slot[item.slot_key] = item

        unique: list[ProjectedOccurrence] = []
        seen_ids: set[str] = set()
        for item in by_slot.values():
            if item.id in seen_ids:
                anomaly = DuplicateOccurrenceError(item.id)
                logger.warning("%s", anomaly)
                result.duplicate_ids.append(item.id)
                result.add_warning(str(anomaly))
                continue
            seen_ids.add(item.id)
            unique.append(item)

        def sort_key(item: ProjectedOccurrence) -> tuple[Any, ...]:
            source = order.get(item.original_task_id, order.get(item.id, len(order)))
            return (
                item.date,
                item.time is None,
                item.time or "",
                item.created_at if item.created_at is not None else 0,
                source,
                item.original_date,
            )

        return sorted(unique, key=sort_key)


def project(
    tasks: Iterable[MasterTask],
    view_start: datetime.date,
    number_of_days: int,
    settings: Any = None,
) -> list[ProjectedOccurrence]:
    """Project ``tasks`` over a window (module-level convenience)."""
    return Projector(settings).project(tasks, view_start, number_of_days)


def project_with_rollover(
    tasks: Iterable[MasterTask],
    view_start: datetime.date,
    number_of_days: int,
    today: datetime.date,
    lookback_days: Optional[int] = None,
    settings: Any = None,
) -> list[ProjectedOccurrence]:
    """Lookback-aware projection (module-level convenience)."""
    return Projector(settings).project_with_rollover(tasks, view_start, number_of_days, today, lookback_days)
