"""stacker_lite - recurrence projection and rollover engine for a day planner.

Tasks are stored as masters; recurring masters are projected into ephemeral
"ghost" occurrences per view, and work the user never got to is rolled over
to today instead of silently disappearing.
"""

__version__ = "0.1.0"

from typing import Optional

from .config_manager import ConfigManager, EngineConfig
from .lite_actions import (
    ActionResult,
    create_task,
    delete_occurrence,
    toggle_completion,
    update_occurrence,
    update_occurrence_subtasks,
)
from .lite_exceptions import (
    DuplicateOccurrenceError,
    MalformedRecordError,
    RuleExpansionError,
    RuleParseError,
    StackerError,
    StoreError,
    TaskNotFoundError,
)
from .lite_id_resolver import GhostRef, StandaloneRef, make_instance_id, parse_occurrence_ref, resolve_id
from .lite_models import MasterTask, ProjectedOccurrence, ProjectionResult, RecurrenceRule, RolloverActions, Subtask
from .lite_projector import Projector, project, project_with_rollover
from .lite_rollover import apply_rollover_actions, compute_rollover_actions
from .lite_rrule_expander import LiteRRuleExpander
from .lite_sanitizer import drop_ghost_records, sanitize_all, sanitize_task
from .lite_service import PlannerService
from .lite_store import InMemoryTaskStore, JsonTaskStore, TaskStore

__all__ = [
    "ActionResult",
    "ConfigManager",
    "DuplicateOccurrenceError",
    "EngineConfig",
    "GhostRef",
    "InMemoryTaskStore",
    "JsonTaskStore",
    "LiteRRuleExpander",
    "MalformedRecordError",
    "MasterTask",
    "PlannerService",
    "ProjectedOccurrence",
    "ProjectionResult",
    "Projector",
    "RecurrenceRule",
    "RolloverActions",
    "RuleExpansionError",
    "RuleParseError",
    "StackerError",
    "StandaloneRef",
    "StoreError",
    "Subtask",
    "TaskNotFoundError",
    "TaskStore",
    "apply_rollover_actions",
    "compute_rollover_actions",
    "create_task",
    "delete_occurrence",
    "drop_ghost_records",
    "make_instance_id",
    "parse_occurrence_ref",
    "project",
    "project_with_rollover",
    "resolve_id",
    "sanitize_all",
    "sanitize_task",
    "toggle_completion",
    "update_occurrence",
    "update_occurrence_subtasks",
]


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized console handler so CLI runs show engine warnings
    (dropped records, unparsable rules) as they happen. Callers may adjust the
    level later (e.g. from config).

    Honors the STACKER_DEBUG environment variable (truthy values: "1", "true",
    "yes", "on"), which forces DEBUG verbosity.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("STACKER_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))
