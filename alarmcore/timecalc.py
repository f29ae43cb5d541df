"""Pure trigger-time arithmetic for alarms.

Nothing in here reads the clock or touches storage: every function takes
``now`` explicitly and returns a value derived only from its arguments.
Instants keep whatever ``tzinfo`` ``now`` carries, so the same code works for
naive and aware datetimes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import FrozenSet, Iterable, Optional, Tuple, Union

from .errors import InvalidRepeatDays, InvalidTimeFormat

# Python's datetime.weekday(): Mon=0 ... Sun=6
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
WEEKDAY_INDEX = {name: idx for idx, name in enumerate(WEEKDAYS)}

_FULL_NAMES = {
    "monday": "Mon",
    "tuesday": "Tue",
    "wednesday": "Wed",
    "thursday": "Thu",
    "friday": "Fri",
    "saturday": "Sat",
    "sunday": "Sun",
}

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


@dataclass(frozen=True)
class TimeOfDay:
    hour: int
    minute: int

    def __post_init__(self) -> None:
        _check_range(self.hour, self.minute)

    @classmethod
    def parse(cls, value: str) -> "TimeOfDay":
        return parse_time_of_day(value)

    def as_time(self) -> time:
        return time(self.hour, self.minute)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


TimeLike = Union[TimeOfDay, str]


def _check_range(hour, minute) -> None:
    if isinstance(hour, bool) or isinstance(minute, bool):
        raise InvalidTimeFormat(f"Invalid time {hour!r}:{minute!r}")
    if not isinstance(hour, int) or not isinstance(minute, int):
        raise InvalidTimeFormat(f"Invalid time {hour!r}:{minute!r}")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidTimeFormat(f"Hour/minute out of range: {hour}:{minute:02d}")


def parse_time_of_day(value: str) -> TimeOfDay:
    """Parse ``"HH:MM"`` (24-hour) into a :class:`TimeOfDay`."""
    if not isinstance(value, str):
        raise InvalidTimeFormat(f"Expected HH:MM string, got {value!r}")
    match = _TIME_RE.match(value)
    if not match:
        raise InvalidTimeFormat(f"Invalid time format {value!r}, expected HH:MM")
    return TimeOfDay(int(match.group(1)), int(match.group(2)))


def is_valid_time_string(value: str) -> bool:
    try:
        parse_time_of_day(value)
    except InvalidTimeFormat:
        return False
    return True


def coerce_time_of_day(value: TimeLike) -> TimeOfDay:
    if isinstance(value, TimeOfDay):
        return value
    return parse_time_of_day(value)


def normalize_repeat_days(days: Optional[Iterable[str]]) -> FrozenSet[str]:
    """Return canonical weekday labels (``Mon``..``Sun``) for ``days``.

    Accepts labels in any case and full English names. ``None`` and empty
    iterables mean a one-time alarm.
    """
    if days is None:
        return frozenset()
    if isinstance(days, str):
        raise InvalidRepeatDays(f"Repeat days must be a collection, got {days!r}")
    result = set()
    for raw in days:
        if not isinstance(raw, str):
            raise InvalidRepeatDays(f"Unknown weekday {raw!r}")
        key = raw.strip().lower()
        label = _FULL_NAMES.get(key) or key[:1].upper() + key[1:]
        if label not in WEEKDAY_INDEX:
            raise InvalidRepeatDays(f"Unknown weekday {raw!r}")
        result.add(label)
    return frozenset(result)


def sort_days(days: Iterable[str]) -> list:
    return sorted(days, key=WEEKDAY_INDEX.__getitem__)


def _at(now: datetime, day_offset: int, tod: TimeOfDay) -> datetime:
    target_date = now.date() + timedelta(days=day_offset)
    return datetime.combine(target_date, tod.as_time(), tzinfo=now.tzinfo)


def next_weekday_occurrence(day: str, time_of_day: TimeLike, now: datetime) -> datetime:
    """Next instant strictly after ``now`` that falls on ``day`` at ``time_of_day``.

    A ``day`` equal to today whose time has already passed is a week away.
    """
    tod = coerce_time_of_day(time_of_day)
    (label,) = normalize_repeat_days([day])
    offset = (WEEKDAY_INDEX[label] - now.weekday()) % 7
    if offset == 0 and _at(now, 0, tod) <= now:
        offset = 7
    return _at(now, offset, tod)


def compute_next_trigger(time_of_day: TimeLike, repeat_days: Iterable[str], now: datetime) -> datetime:
    """Compute the next instant an alarm must fire, strictly after ``now``.

    One-time alarms fire today if the time is still ahead, otherwise tomorrow.
    Repeating alarms fire on the earliest upcoming day from ``repeat_days``.
    """
    tod = coerce_time_of_day(time_of_day)
    days = normalize_repeat_days(repeat_days)
    candidate_today = _at(now, 0, tod)

    if not days:
        if candidate_today > now:
            return candidate_today
        return _at(now, 1, tod)

    if WEEKDAYS[now.weekday()] in days and candidate_today > now:
        return candidate_today
    return min(next_weekday_occurrence(day, tod, now) for day in days)


def describe_next_occurrence(time_of_day: TimeLike, repeat_days: Iterable[str], now: datetime) -> str:
    """``"Today"``, ``"Tomorrow"`` or the weekday label of the next trigger."""
    trigger = compute_next_trigger(time_of_day, repeat_days, now)
    delta_days = (trigger.date() - now.date()).days
    if delta_days == 0:
        return "Today"
    if delta_days == 1:
        return "Tomorrow"
    return WEEKDAYS[trigger.weekday()]


def format_time_of_day(time_of_day: TimeLike, use_24h: bool = True) -> str:
    tod = coerce_time_of_day(time_of_day)
    if use_24h:
        return str(tod)
    period = "PM" if tod.hour >= 12 else "AM"
    hour = tod.hour % 12 or 12
    return f"{hour}:{tod.minute:02d} {period}"


def format_repeat_days(repeat_days: Iterable[str]) -> str:
    days = normalize_repeat_days(repeat_days)
    if not days:
        return ""
    if len(days) == 7:
        return "Daily"
    if days == frozenset(WEEKDAYS[:5]):
        return "Weekdays"
    if days == frozenset(WEEKDAYS[5:]):
        return "Weekends"
    return ", ".join(sort_days(days))


def describe_alarm(time_of_day: TimeLike, repeat_days: Iterable[str], now: datetime, use_24h: bool = True) -> str:
    """Human readable summary such as ``"Tomorrow at 7:30 AM"``."""
    when = describe_next_occurrence(time_of_day, repeat_days, now)
    return f"{when} at {format_time_of_day(time_of_day, use_24h)}"


def time_remaining(time_of_day: TimeLike, repeat_days: Iterable[str], now: datetime) -> Tuple[int, int, int]:
    """Return ``(hours, minutes, total_minutes)`` until the next trigger."""
    trigger = compute_next_trigger(time_of_day, repeat_days, now)
    total = int((trigger - now).total_seconds() // 60)
    hours, minutes = divmod(total, 60)
    return hours, minutes, total
