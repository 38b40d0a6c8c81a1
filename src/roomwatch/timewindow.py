"""Day-of-week and time-of-day arithmetic for timetable sessions.

Session times are "HH:MM" strings on a 24h clock. They are compared as
minute-of-day integers in [0, 1440) on a single day; there is no cross-day
window. A session like 23:00-01:00 never satisfies start <= now < end, so it
reports as not started or already over. That limitation is intentional.
"""

import math
import re
from datetime import date, datetime
from enum import Enum

from roomwatch.errors import InvalidInputError

MINUTES_PER_DAY = 24 * 60

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class Weekday(str, Enum):
    """Named day of the week, in datetime.weekday() order."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def parse(cls, value: str) -> "Weekday":
        """Look up a weekday by name, ignoring case and surrounding whitespace."""
        if not value or not value.strip():
            raise InvalidInputError("Day is required")
        normalized = value.strip().capitalize()
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidInputError(f"Unknown day {value!r}") from None


# datetime.weekday() index -> Weekday (0 = Monday)
_WEEKDAYS: tuple[Weekday, ...] = tuple(Weekday)


def weekday_of(moment: date) -> Weekday:
    """Weekday of an evaluation instant (locale independent)."""
    return _WEEKDAYS[moment.weekday()]


def minute_of(moment: datetime) -> int:
    """Minute of day of an evaluation instant; seconds are ignored."""
    return moment.hour * 60 + moment.minute


def parse_hhmm(value: str | None) -> int:
    """Convert an "HH:MM" string to a minute of day.

    Raises:
        InvalidInputError: If the value is missing or not a valid 24h time.
    """
    if value is None or not str(value).strip():
        raise InvalidInputError("Time is required")

    match = _HHMM_RE.match(str(value).strip())
    if not match:
        raise InvalidInputError(f"Time {value!r} is not in HH:MM format")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidInputError(f"Time {value!r} is out of range")
    return hours * 60 + minutes


def format_hhmm(minute: int) -> str:
    """Convert a minute count back to "HH:MM", wrapping at midnight."""
    minute %= MINUTES_PER_DAY
    return f"{minute // 60:02d}:{minute % 60:02d}"


def add_hours(hhmm: str, hours: int) -> str:
    """Shift a time of day by whole hours on the same day.

    "23:30" + 1 gives "00:30"; the session's day is left as it was.
    """
    return format_hhmm(parse_hhmm(hhmm) + hours * 60)


def duration_hours_between(start: str, end: str) -> int:
    """Whole-hour length of a start/end pair, rounded half up, never below 1."""
    delta_hours = (parse_hhmm(end) - parse_hhmm(start)) / 60
    return max(1, math.floor(delta_hours + 0.5))


def contains(start: str, end: str, now_minute: int) -> bool:
    """Whether now_minute lies in the same-day window [start, end)."""
    return parse_hhmm(start) <= now_minute < parse_hhmm(end)


def minutes_until(start: str, now_minute: int) -> int:
    """Signed minutes from now_minute until start (negative once started)."""
    return parse_hhmm(start) - now_minute
