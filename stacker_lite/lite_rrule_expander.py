"""RRULE parsing and expansion for stacker_lite.

Supports the RFC 5545 subset the planner produces:
``FREQ=DAILY|WEEKLY|MONTHLY|YEARLY;INTERVAL=n;BYDAY=MO,WE;UNTIL=...|COUNT=n``,
optionally preceded by a ``DTSTART`` line and/or an ``RRULE:`` prefix.
Expansion is always bounded by a caller-supplied window.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Optional

from dateutil import parser as date_parser
from dateutil.rrule import rrule, rruleset, rrulestr

from .config_manager import EngineConfig
from .lite_datetime_utils import parse_iso_date
from .lite_exceptions import RuleParseError
from .lite_models import WEEKDAY_CODES, RecurrenceRule

logger = logging.getLogger(__name__)

SUPPORTED_FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "YEARLY")

_FREQ_UNITS = {"DAILY": "day", "WEEKLY": "week", "MONTHLY": "month", "YEARLY": "year"}
_WEEKDAY_NAMES = dict(zip(WEEKDAY_CODES, ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")))


def _split_rule_lines(rule_string: str) -> tuple[Optional[str], str]:
    """Separate an optional DTSTART line from the RRULE body."""
    dtstart_value = None
    body_parts = []
    for raw in rule_string.replace("\r", "\n").split("\n"):
        line = raw.strip()
        if not line:
            continue
        upper = line.upper()
        if upper.startswith("DTSTART"):
            dtstart_value = line.split(":", 1)[1].strip() if ":" in line else line.split("=", 1)[-1]
        elif upper.startswith("RRULE:"):
            body_parts.append(line[len("RRULE:"):])
        else:
            body_parts.append(line)
    return dtstart_value, ";".join(body_parts)


def _parse_rule_date(value: str, label: str) -> datetime.date:
    try:
        return date_parser.parse(value, ignoretz=True).date()
    except (ValueError, OverflowError) as e:
        raise RuleParseError(f"Invalid {label} value: {value!r}") from e


def parse_rrule_string(rule_string: str) -> dict[str, Any]:
    """Parse and validate an RRULE string into components.

    Args:
        rule_string: RRULE string (e.g. "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO")

    Returns:
        Dictionary with keys ``freq``, ``interval``, ``byday``, ``until`` (date),
        ``count``, ``dtstart`` (date) and any other parameters verbatim.

    Raises:
        RuleParseError: If the RRULE string is invalid or uses unsupported parts
    """
    if not rule_string or not isinstance(rule_string, str) or not rule_string.strip():
        raise RuleParseError("Empty RRULE string")

    dtstart_value, body = _split_rule_lines(rule_string)
    components: dict[str, Any] = {
        "freq": None,
        "interval": 1,
        "byday": None,
        "until": None,
        "count": None,
        "dtstart": _parse_rule_date(dtstart_value, "DTSTART") if dtstart_value else None,
    }

    for part in body.split(";"):
        if not part.strip():
            continue
        if "=" not in part:
            raise RuleParseError(f"Malformed RRULE part {part!r} in {rule_string!r}")
        key, value = part.split("=", 1)
        key = key.strip().lower()
        value = value.strip()

        if key == "freq":
            components["freq"] = value.upper()
        elif key == "interval":
            try:
                components["interval"] = int(value)
            except ValueError as e:
                raise RuleParseError(f"Invalid INTERVAL: {value!r}") from e
        elif key == "byday":
            components["byday"] = [day.strip().upper() for day in value.split(",") if day.strip()]
        elif key == "until":
            components["until"] = _parse_rule_date(value, "UNTIL")
        elif key == "count":
            try:
                components["count"] = int(value)
            except ValueError as e:
                raise RuleParseError(f"Invalid COUNT: {value!r}") from e
        else:
            components[key] = value

    freq = components["freq"]
    if not freq:
        raise RuleParseError("RRULE missing required FREQ parameter")
    if freq not in SUPPORTED_FREQUENCIES:
        raise RuleParseError(f"Unsupported FREQ={freq}")
    if components["interval"] < 1:
        raise RuleParseError(f"INTERVAL must be positive, got {components['interval']}")
    if components["count"] is not None and components["count"] < 1:
        raise RuleParseError(f"COUNT must be positive, got {components['count']}")
    if components["count"] is not None and components["until"] is not None:
        raise RuleParseError("UNTIL and COUNT are mutually exclusive")

    byday = components["byday"]
    if byday:
        if freq != "WEEKLY":
            raise RuleParseError("BYDAY is only supported for WEEKLY rules")
        unknown = [d for d in byday if d not in WEEKDAY_CODES]
        if unknown:
            raise RuleParseError(f"Unknown BYDAY values: {', '.join(unknown)}")

    return components


def format_rrule(components: dict[str, Any]) -> str:
    """Serialize parsed components back to an RRULE string.

    ``dtstart`` is emitted as a leading ``DTSTART`` line when present.
    """
    parts = [f"FREQ={components['freq']}"]
    if components.get("interval", 1) != 1:
        parts.append(f"INTERVAL={components['interval']}")
    if components.get("byday"):
        parts.append(f"BYDAY={','.join(components['byday'])}")
    if components.get("until") is not None:
        parts.append(f"UNTIL={components['until'].strftime('%Y%m%d')}")
    if components.get("count") is not None:
        parts.append(f"COUNT={components['count']}")

    reserved = {"freq", "interval", "byday", "until", "count", "dtstart"}
    parts.extend(f"{k.upper()}={v}" for k, v in components.items() if k not in reserved)

    body = ";".join(parts)
    dtstart = components.get("dtstart")
    if dtstart is not None:
        return f"DTSTART:{dtstart.strftime('%Y%m%d')}\nRRULE:{body}"
    return body


def build_rrule_string(recurrence: RecurrenceRule) -> str:
    """Build an RRULE string from the structured recurrence object."""
    return format_rrule(
        {
            "freq": recurrence.frequency.upper(),
            "interval": recurrence.interval,
            "byday": list(recurrence.days_of_week) if recurrence.days_of_week else None,
            "until": parse_iso_date(recurrence.end_date) if recurrence.end_date else None,
            "count": recurrence.occurrence_count,
        }
    )


def recurrence_from_rrule(rule_string: str) -> RecurrenceRule:
    """Convert an RRULE string into the structured recurrence object.

    Raises:
        RuleParseError: If the RRULE string is invalid
    """
    components = parse_rrule_string(rule_string)
    return RecurrenceRule(
        frequency=components["freq"].lower(),
        interval=components["interval"],
        days_of_week=components["byday"] or None,
        end_date=components["until"].isoformat() if components["until"] else None,
        occurrence_count=components["count"],
    )


def clamp_rule_until(rule_string: str, cutoff: datetime.date) -> str:
    """End a series on the day before ``cutoff``.

    COUNT is dropped and UNTIL set, so occurrences on or after ``cutoff`` are
    no longer produced. An existing earlier UNTIL is kept.

    Raises:
        RuleParseError: If the RRULE string is invalid
    """
    components = parse_rrule_string(rule_string)
    new_until = cutoff - datetime.timedelta(days=1)
    if components["until"] is None or components["until"] > new_until:
        components["until"] = new_until
    components["count"] = None
    return format_rrule(components)


def describe_rule(rule_string: str) -> str:
    """Human-readable summary of an RRULE, e.g. "Every 2 weeks on Mon, Wed".

    Unparsable rules are described as "Custom".
    """
    try:
        components = parse_rrule_string(rule_string)
    except RuleParseError:
        return "Custom"

    freq = components["freq"]
    interval = components["interval"]
    if interval == 1:
        text = freq.capitalize()
    else:
        text = f"Every {interval} {_FREQ_UNITS[freq]}s"
    if components["byday"]:
        text += " on " + ", ".join(_WEEKDAY_NAMES[d] for d in components["byday"])
    if components["count"] is not None:
        text += f", {components['count']} times"
    elif components["until"] is not None:
        text += f" until {components['until'].isoformat()}"
    return text


class LiteRRuleExpander:
    """Expands RRULE strings into occurrence dates within a finite window."""

    def __init__(self, settings: Any = None):
        """Initialize expander with configuration settings.

        Args:
            settings: EngineConfig, mapping or object with engine settings
        """
        config = settings if isinstance(settings, EngineConfig) else EngineConfig.from_settings(settings)
        self.max_occurrences = config.max_occurrences_per_rule

    def build_rule(self, rule_string: str, anchor: Optional[datetime.date] = None) -> rrule | rruleset:
        """Validate and compile an RRULE string with dateutil.

        The series starts at the DTSTART inside the string when present, else at
        ``anchor`` (the task's date).

        Raises:
            RuleParseError: If the rule is invalid or has no start date
        """
        components = parse_rrule_string(rule_string)
        start = components["dtstart"] or anchor
        if start is None:
            raise RuleParseError(f"RRULE has no DTSTART and no anchor date: {rule_string!r}")

        _, body = _split_rule_lines(rule_string)
        dtstart = datetime.datetime.combine(start, datetime.time.min)
        try:
            return rrulestr(body, dtstart=dtstart, ignoretz=True)
        except (ValueError, TypeError) as e:
            raise RuleParseError(f"Invalid RRULE format: {rule_string!r}") from e

    def expand(
        self,
        rule_string: str,
        window_start: datetime.date,
        window_end: datetime.date,
        anchor: Optional[datetime.date] = None,
    ) -> list[datetime.date]:
        """Expand a rule into sorted occurrence dates in ``[window_start, window_end]``.

        Args:
            rule_string: RRULE string
            window_start: First date of the window
            window_end: Last date of the window (inclusive)
            anchor: Series start used when the rule carries no DTSTART

        Returns:
            Sorted list of unique occurrence dates

        Raises:
            RuleParseError: If the rule is invalid
        """
        if window_end < window_start:
            return []

        rule = self.build_rule(rule_string, anchor)
        start_dt = datetime.datetime.combine(window_start, datetime.time.min)
        end_dt = datetime.datetime.combine(window_end, datetime.time.max)

        dates: list[datetime.date] = []
        seen: set[datetime.date] = set()
        for occurrence in rule.between(start_dt, end_dt, inc=True):
            if len(dates) >= self.max_occurrences:
                logger.warning(
                    "RRULE expansion limited to %d occurrences for rule %r",
                    self.max_occurrences,
                    rule_string,
                )
                break
            day = occurrence.date()
            if day not in seen:
                seen.add(day)
                dates.append(day)

        logger.debug(
            "Expanded %r over %s..%s -> %d dates", rule_string, window_start, window_end, len(dates)
        )
        return dates


def expand(
    rule_string: str,
    window_start: datetime.date,
    window_end: datetime.date,
    anchor: Optional[datetime.date] = None,
    settings: Any = None,
) -> list[datetime.date]:
    """Expand ``rule_string`` over an inclusive window (module-level convenience)."""
    return LiteRRuleExpander(settings).expand(rule_string, window_start, window_end, anchor)
