"""Recurrence policy: when a task is due, plus parsing and describing schedules.

Due-ness is date-local. ``is_due`` never looks at the current date, only at
the date it is asked about and the task's completion history, so browsing
past or future days gives stable answers.
"""

import logging
import re
from collections.abc import Iterable
from datetime import date

from croniter import croniter

from fantastic_task.core.config import constants
from fantastic_task.core.errors import ErrorCode, ValidationError
from fantastic_task.domain.completion import Completion
from fantastic_task.domain.task import (
    FixedDaysRecurrence,
    FlexibleIntervalRecurrence,
    OnceRecurrence,
    Recurrence,
    Task,
    Weekday,
)


logger = logging.getLogger(__name__)

WEEKDAYS = frozenset({Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY})
WEEKENDS = frozenset({Weekday.SATURDAY, Weekday.SUNDAY})

_DAY_NAMES = {
    "sun": Weekday.SUNDAY,
    "mon": Weekday.MONDAY,
    "tue": Weekday.TUESDAY,
    "wed": Weekday.WEDNESDAY,
    "thu": Weekday.THURSDAY,
    "fri": Weekday.FRIDAY,
    "sat": Weekday.SATURDAY,
}

_FULL_DAY_NAMES = re.compile(
    r"^(sun|mon|tue|tues|wed|thu|thur|thurs|fri|sat)(day|nesday|rsday|urday|sday)?$",
)


def weekday_of(day: date) -> Weekday:
    """Return the weekday of a date with Sunday as 0."""
    return Weekday((day.weekday() + 1) % 7)


def _live_completion_dates(history: Iterable[Completion]) -> list[date]:
    return [completion.completion_date for completion in history if completion.is_live]


def is_recurrence_due(recurrence: Recurrence, day: date, history: Iterable[Completion]) -> bool:
    """Decide whether a recurrence is due on a date given the task's completions.

    Rejected completions are ignored, so a rejected task becomes available
    again.
    """
    if isinstance(recurrence, OnceRecurrence):
        return not _live_completion_dates(history)

    if isinstance(recurrence, FlexibleIntervalRecurrence):
        dates = _live_completion_dates(history)
        if not dates:
            return True
        # Calendar-day difference; time of day plays no part
        return (day - max(dates)).days > recurrence.days

    if isinstance(recurrence, FixedDaysRecurrence):
        return not recurrence.days or weekday_of(day) in recurrence.days

    logger.warning("Unknown recurrence, treating as due every day", extra={"recurrence": repr(recurrence)})
    return True


def is_due(task: Task, day: date, history: Iterable[Completion]) -> bool:
    """Decide whether a task is due on a date.

    Args:
        task: The task to check
        day: Calendar date being viewed
        history: Completions of this task, in any order and from any member

    Returns:
        True if the task should be offered on that date
    """
    return is_recurrence_due(task.recurrence, day, (c for c in history if c.task_id == task.id))


def _parse_day_name(token: str) -> Weekday | None:
    match = _FULL_DAY_NAMES.match(token)
    if not match:
        return None
    return _DAY_NAMES[match.group(1)[:3]]


def _parse_day_list(text: str) -> frozenset[Weekday] | None:
    tokens = [t for t in re.split(r"[\s,/&]+|\band\b", text) if t]
    if not tokens:
        return None
    days = set()
    for token in tokens:
        day = _parse_day_name(token)
        if day is None:
            return None
        days.add(day)
    return frozenset(days)


def _parse_cron(text: str) -> FixedDaysRecurrence | None:
    """Read the day-of-week field of a CRON expression, ignoring its time of day."""
    if not croniter.is_valid(text):
        return None

    expanded, _ = croniter.expand(text)
    day_of_month, month, day_of_week = expanded[2], expanded[3], expanded[4]
    if day_of_month != ["*"] or month != ["*"]:
        msg = f"CRON expression '{text}' restricts day of month or month; only weekday schedules are supported"
        raise ValidationError(msg, code=ErrorCode.ERR_INVALID_RECURRENCE_PATTERN)

    if day_of_week == ["*"]:
        return FixedDaysRecurrence()
    return FixedDaysRecurrence(days=frozenset(Weekday(int(d) % 7) for d in day_of_week))


def parse_recurrence(text: str) -> Recurrence:
    """Parse a recurrence from user input.

    Supports:
    - "once" / "one time"
    - "daily" / "every day"
    - "every N days" (flexible interval)
    - "weekly" / "monthly" (flexible 7 and 30 day intervals)
    - "weekdays" / "weekends"
    - weekday lists such as "Mon,Wed" or "every tuesday and thursday"
    - CRON expressions such as "0 8 * * 1,3" (only the weekday field is used)

    Args:
        text: Recurrence string

    Returns:
        The parsed recurrence

    Raises:
        ValidationError: If the text matches none of the formats
    """
    normalized = (text or "").strip().lower()
    if not normalized:
        msg = "Recurrence cannot be empty"
        raise ValidationError(msg, code=ErrorCode.ERR_INVALID_RECURRENCE_PATTERN)

    if normalized in {"once", "one time", "one-time"}:
        return OnceRecurrence()
    if normalized in {"daily", "every day"}:
        return FixedDaysRecurrence()
    if normalized in {"weekly", "every week"}:
        return FlexibleIntervalRecurrence(days=constants.WEEKLY_FLEXIBLE_INTERVAL)
    if normalized in {"monthly", "every month"}:
        return FlexibleIntervalRecurrence(days=constants.MONTHLY_FLEXIBLE_INTERVAL)
    if normalized in {"weekdays", "every weekday"}:
        return FixedDaysRecurrence(days=WEEKDAYS)
    if normalized in {"weekends", "every weekend"}:
        return FixedDaysRecurrence(days=WEEKENDS)

    match = re.match(r"^every\s+(\d+)\s+days?$", normalized)
    if match:
        days = int(match.group(1))
        if days < 1:
            msg = "Interval must be at least 1 day"
            raise ValidationError(msg, code=ErrorCode.ERR_INVALID_RECURRENCE_PATTERN)
        return FlexibleIntervalRecurrence(days=days)

    day_list = _parse_day_list(re.sub(r"^(every|on)\s+", "", normalized))
    if day_list:
        return FixedDaysRecurrence(days=day_list)

    cron = _parse_cron(text.strip())
    if cron is not None:
        return cron

    msg = f"Invalid recurrence format: {text}. Use 'daily', 'every 3 days', 'Mon,Wed', 'once' or a CRON expression"
    raise ValidationError(msg, code=ErrorCode.ERR_INVALID_RECURRENCE_PATTERN)


def describe_recurrence(recurrence: Recurrence) -> str:
    """Convert a recurrence to human-readable text."""
    if isinstance(recurrence, OnceRecurrence):
        return "once"

    if isinstance(recurrence, FlexibleIntervalRecurrence):
        if recurrence.days == 1:
            return "every day after the last completion"
        return f"every {recurrence.days} days after the last completion"

    if not recurrence.days or len(recurrence.days) == len(Weekday):
        return "every day"
    if recurrence.days == WEEKDAYS:
        return "weekdays"
    if recurrence.days == WEEKENDS:
        return "weekends"
    names = [day.name.capitalize() for day in sorted(recurrence.days)]
    return f"every {', '.join(names)}"
