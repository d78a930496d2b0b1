"""Custom exception hierarchy for the stacker_lite engine.

Engine code raises these internally and degrades per task: a record or rule
that fails is logged and skipped while the rest of the task list is
processed. Only the action service and the stores let errors reach the host.
"""


class StackerError(Exception):
    """Base exception for all stacker_lite errors."""


class MalformedRecordError(StackerError):
    """A persisted task record could not be turned into a MasterTask.

    Raised when:
    - The record is not a mapping
    - The record has no ``id`` or no ``title``
    - Field values fail model validation

    The sanitizer catches this, logs it and drops the record from the batch.
    """

    def __init__(self, message: str, record_id: object = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class RuleExpansionError(StackerError):
    """Base exception for recurrence rule expansion errors."""


class RuleParseError(RuleExpansionError):
    """Error parsing an RRULE string.

    Raised when:
    - The string is empty or has no FREQ
    - FREQ is not one of DAILY, WEEKLY, MONTHLY, YEARLY
    - INTERVAL or COUNT is not a positive integer
    - BYDAY is used with a non-weekly frequency or names an unknown weekday
    - UNTIL and COUNT are both present
    """


class DuplicateOccurrenceError(StackerError):
    """Two projected occurrences ended up with the same id.

    Recorded by the projector's uniqueness pass as a diagnostic; never raised
    to callers.
    """

    def __init__(self, occurrence_id: str) -> None:
        super().__init__(f"Duplicate occurrence id filtered out: {occurrence_id}")
        self.occurrence_id = occurrence_id


class TaskNotFoundError(StackerError):
    """An action addressed a master task id that is not in the task list."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class StoreError(StackerError):
    """Reading or writing the task store failed."""
