"""Data models for task projection - stacker_lite.

``MasterTask`` is the only persisted unit. Records travel to and from the
host's key-value store as camelCase mappings; the models accept both the
camelCase aliases and the snake_case field names.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .lite_datetime_utils import is_iso_date

RecurrenceFrequency = Literal["daily", "weekly", "monthly", "yearly"]
WeekDay = Literal["MO", "TU", "WE", "TH", "FR", "SA", "SU"]

WEEKDAY_CODES: tuple[str, ...] = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


class _RecordModel(BaseModel):
    """Base for models exchanged with the host as camelCase records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the persisted camelCase record shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Subtask(_RecordModel):
    """Checklist item on a task (or on one occurrence of a series)."""

    id: str
    title: str = ""
    completed: bool = False
    deadline: Optional[str] = None
    estimated_time: Optional[str] = None
    progress: Optional[float] = None


class RecurrenceRule(_RecordModel):
    """Structured recurrence definition as edited by the host UI.

    Converted to and from the RRULE string by
    ``lite_rrule_expander.build_rrule_string`` / ``recurrence_from_rrule``.
    """

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    days_of_week: Optional[list[WeekDay]] = None
    end_date: Optional[str] = None
    occurrence_count: Optional[int] = Field(default=None, ge=1)

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_iso_date(v):
            raise ValueError(f"end_date must be YYYY-MM-DD, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_end_condition(self) -> RecurrenceRule:
        if self.end_date is not None and self.occurrence_count is not None:
            raise ValueError("end_date and occurrence_count are mutually exclusive")
        if self.days_of_week and self.frequency != "weekly":
            raise ValueError("days_of_week is only supported for weekly rules")
        return self


class MasterTask(_RecordModel):
    """A persisted task: a one-off task, a recurring series master, or a detached instance."""

    id: str
    title: str
    date: str = Field(..., description="Anchor/display date, YYYY-MM-DD")
    time: Optional[str] = Field(default=None, description="Optional HH:mm")
    deadline: Optional[str] = None
    estimated_time: Optional[str] = None

    # Recurrence
    recurrence_rule: Optional[str] = Field(default=None, description="RRULE string")
    recurrence: Optional[RecurrenceRule] = None
    completed_dates: list[str] = Field(default_factory=list)
    exception_dates: list[str] = Field(default_factory=list)
    instance_progress: dict[str, float] = Field(default_factory=dict)
    instance_subtasks: dict[str, list[Subtask]] = Field(default_factory=dict)

    # Content
    subtasks: list[Subtask] = Field(default_factory=list)
    progress: float = 0

    # Rollover / detach bookkeeping
    days_rolled: int = Field(default=0, ge=0)
    series_id: Optional[str] = None
    original_task_id: Optional[str] = None
    original_date: Optional[str] = None

    # Fields read by host collaborators (notifications, tags, styling)
    reminder_time: Optional[str] = None
    reminder_offset: Optional[int] = None
    tag_ids: list[str] = Field(default_factory=list)
    color: Optional[str] = None
    task_type: str = Field(default="task", alias="type")
    importance: int = 0
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        if not is_iso_date(v):
            raise ValueError(f"date must be YYYY-MM-DD, got {v!r}")
        return v

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    @property
    def is_detached(self) -> bool:
        """True for a standalone task born from one occurrence of a series."""
        return bool(self.series_id or self.original_task_id)

    def is_completed_on(self, date: str) -> bool:
        return date in self.completed_dates

    def is_excepted_on(self, date: str) -> bool:
        return date in self.exception_dates


class ProjectedOccurrence(_RecordModel):
    """One visible occurrence produced by the projector. Never persisted."""

    id: str = Field(..., description="Composite id for ghosts, master id for real tasks")
    original_task_id: str
    title: str
    date: str = Field(..., description="Display date")
    original_date: str = Field(..., description="Occurrence date before display rollover")
    time: Optional[str] = None
    is_ghost: bool
    is_completed: bool = False
    days_rolled: int = 0

    subtasks: list[Subtask] = Field(default_factory=list)
    progress: float = 0
    deadline: Optional[str] = None
    estimated_time: Optional[str] = None
    recurrence_rule: Optional[str] = None
    tag_ids: list[str] = Field(default_factory=list)
    color: Optional[str] = None
    task_type: str = Field(default="task", alias="type")
    importance: int = 0
    created_at: Optional[int] = None

    @property
    def slot_key(self) -> str:
        """Deduplication key: one visible occurrence per (master, occurrence date)."""
        return f"{self.original_task_id}_{self.original_date}"


class RolloverActions(BaseModel):
    """Result of a rollover scan; the caller persists it."""

    updates: list[MasterTask] = Field(default_factory=list)
    creations: list[MasterTask] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.updates and not self.creations


class ProjectionResult(BaseModel):
    """Projected occurrences plus diagnostic signals for the host."""

    occurrences: list[ProjectedOccurrence] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    duplicate_ids: list[str] = Field(default_factory=list)
    fallback_task_ids: list[str] = Field(
        default_factory=list, description="Recurring tasks projected as one-off after a rule parse error"
    )

    def add_warning(self, warning: str) -> None:
        """Add a warning message."""
        self.warnings.append(warning)
