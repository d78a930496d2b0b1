"""Composite occurrence ids for stacker_lite.

A ghost occurrence of a recurring series is addressed on the wire as
``f"{master_id}_{YYYY-MM-DD}"``. Master ids may themselves contain
underscores, so only the trailing date-shaped segment after the *last*
underscore is significant.

Inside the engine the string form is parsed once into a tagged reference
(``GhostRef`` or ``StandaloneRef``) so callers branch on a type instead of
re-sniffing strings.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Optional, Union

_DATE_SUFFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class ResolvedId:
    """Decoded form of an occurrence id."""

    master_id: str
    date: Optional[str]
    is_instance: bool


@dataclass(frozen=True)
class GhostRef:
    """One occurrence of a recurring series."""

    master_id: str
    date: str

    def to_wire(self) -> str:
        return make_instance_id(self.master_id, self.date)


@dataclass(frozen=True)
class StandaloneRef:
    """A persisted task addressed by its own id."""

    task_id: str

    def to_wire(self) -> str:
        return self.task_id


OccurrenceRef = Union[GhostRef, StandaloneRef]


def make_instance_id(master_id: str, date: str) -> str:
    """Build the composite id of the occurrence of ``master_id`` on ``date``."""
    return f"{master_id}_{date}"


def resolve_id(occurrence_id: str) -> ResolvedId:
    """Split an id into master id and occurrence date.

    An id is an instance id iff it contains an underscore and the segment after
    the last underscore matches YYYY-MM-DD. Everything before that underscore is
    the master id.

    Examples:
        >>> resolve_id("task_a_2024-01-01")
        ResolvedId(master_id='task_a', date='2024-01-01', is_instance=True)
        >>> resolve_id("task_a")
        ResolvedId(master_id='task_a', date=None, is_instance=False)
    """
    if occurrence_id and "_" in occurrence_id:
        head, _, tail = occurrence_id.rpartition("_")
        if _DATE_SUFFIX_RE.match(tail):
            return ResolvedId(master_id=head, date=tail, is_instance=True)
    return ResolvedId(master_id=occurrence_id, date=None, is_instance=False)


def parse_occurrence_ref(occurrence_id: str) -> OccurrenceRef:
    """Parse the wire id into a tagged reference."""
    resolved = resolve_id(occurrence_id)
    if resolved.is_instance and resolved.date is not None:
        return GhostRef(master_id=resolved.master_id, date=resolved.date)
    return StandaloneRef(task_id=resolved.master_id)


def is_ghost_id(occurrence_id: str) -> bool:
    return resolve_id(occurrence_id).is_instance


def new_task_id() -> str:
    """Fresh opaque id for a new task or subtask (never date-suffixed)."""
    return str(uuid.uuid4())
