"""Planner service wiring the engine to a task store - stacker_lite.

``PlannerService`` is the host-facing facade: it loads tasks from the store,
runs the pure engine functions and persists the outcome inside a single
store transaction.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from .config_manager import EngineConfig
from .lite_actions import (
    ActionResult,
    EditMode,
    create_task,
    delete_occurrence,
    toggle_completion,
    update_occurrence,
    update_occurrence_subtasks,
)
from .lite_datetime_utils import Clock, today
from .lite_models import ProjectionResult, RolloverActions, Subtask
from .lite_projector import Projector
from .lite_rollover import apply_rollover_actions, compute_rollover_actions
from .lite_store import TaskStore

logger = logging.getLogger(__name__)


class PlannerService:
    """Projection, rollover and user actions over one task store."""

    def __init__(self, store: TaskStore, clock: Clock = today, settings: Any = None):
        """Initialize service.

        Args:
            store: Task store owned by the host
            clock: Source of "today"
            settings: EngineConfig, mapping or object with engine settings
        """
        self.store = store
        self.clock = clock
        self.config = settings if isinstance(settings, EngineConfig) else EngineConfig.from_settings(settings)
        self.projector = Projector(self.config)

    def visible_occurrences(
        self, view_start: Optional[datetime.date] = None, number_of_days: int = 1
    ) -> ProjectionResult:
        """Project the stored tasks over a window, with overdue work shown on today."""
        current = self.clock()
        return self.projector.project_detailed(
            self.store.load(),
            view_start or current,
            number_of_days,
            today=current,
            lookback_days=self.config.lookback_days,
        )

    def run_rollover(self) -> RolloverActions:
        """Persist rollover of missed work to today.

        Safe to call repeatedly: a second run on the same day finds nothing
        left to move.
        """
        current = self.clock()
        with self.store.transaction() as txn:
            actions = compute_rollover_actions(
                txn.tasks, current, self.config.lookback_days, expander=self.projector.expander
            )
            if not actions.is_empty:
                txn.tasks = apply_rollover_actions(txn.tasks, actions)

        if actions.is_empty:
            logger.debug("Rollover for %s: nothing to do", current)
        else:
            logger.info(
                "Rollover for %s: moved %d tasks, detached %d occurrences",
                current,
                len(actions.updates),
                len(actions.creations),
            )
        return actions

    # ---- actions ----

    def toggle_completion(self, occurrence_id: str, date: Optional[str] = None) -> ActionResult:
        with self.store.transaction() as txn:
            result = toggle_completion(txn.tasks, occurrence_id, date)
            txn.tasks = result.tasks
        return result

    def update_occurrence(
        self,
        occurrence_id: str,
        changes: dict[str, Any],
        mode: EditMode = "single",
        date: Optional[str] = None,
    ) -> ActionResult:
        with self.store.transaction() as txn:
            result = update_occurrence(txn.tasks, occurrence_id, changes, mode, date=date)
            txn.tasks = result.tasks
        return result

    def delete_occurrence(
        self, occurrence_id: str, mode: EditMode = "single", date: Optional[str] = None
    ) -> ActionResult:
        """Delete and move removed tasks to the history archive."""
        with self.store.transaction() as txn:
            result = delete_occurrence(txn.tasks, occurrence_id, mode, date=date)
            txn.tasks = result.tasks
            txn.archive(result.removed)
        return result

    def update_occurrence_subtasks(
        self, occurrence_id: str, subtasks: list[Subtask], progress: Optional[float] = None
    ) -> ActionResult:
        with self.store.transaction() as txn:
            result = update_occurrence_subtasks(txn.tasks, occurrence_id, subtasks, progress)
            txn.tasks = result.tasks
        return result

    def create_task(self, fields: dict[str, Any]) -> ActionResult:
        with self.store.transaction() as txn:
            result = create_task(txn.tasks, fields, today=self.clock())
            txn.tasks = result.tasks
        return result
