"""Shared datetime parsing and weekday utilities."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, time

_TIME_KEYWORDS = {
    "noon": (12, 0),
    "midday": (12, 0),
    "midnight": (0, 0),
}

DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

DAY_NAME_MAP = {
    "mon": 0,
    "monday": 0,
    "tue": 1,
    "tues": 1,
    "tuesday": 1,
    "wed": 2,
    "wednesday": 2,
    "thu": 3,
    "thur": 3,
    "thurs": 3,
    "thursday": 3,
    "fri": 4,
    "friday": 4,
    "sat": 5,
    "saturday": 5,
    "sun": 6,
    "sunday": 6,
}

WEEKDAY_SET = {0, 1, 2, 3, 4}
WEEKEND_SET = {5, 6}


def local_now() -> datetime:
    """Get current datetime in local timezone."""
    return datetime.now().astimezone()


def truncate_time(value: time) -> time:
    """Drop seconds and sub-second precision from a time of day."""
    return value.replace(second=0, microsecond=0, tzinfo=None)


def parse_time_of_day(phrase: str | None) -> tuple[int, int] | None:
    """Parse time of day phrase into (hour, minute) tuple. Returns None if invalid."""
    if not phrase:
        return None
    cleaned = phrase.strip().lower()
    if not cleaned:
        return None
    keyword = _TIME_KEYWORDS.get(cleaned)
    if keyword:
        return keyword
    if cleaned.endswith(" o'clock"):
        cleaned = cleaned[: -len(" o'clock")].strip()
    match = re.match(r"^(\d{1,2})(?::(\d{2}))?(?::\d{2}(?:\.\d+)?)?\s*(am|pm)?$", cleaned)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    suffix = match.group(3)
    if suffix:
        if hour == 0 or hour > 12:
            return None
        if hour == 12:
            hour = 0
        if suffix == "pm":
            hour += 12
    if hour >= 24 or minute >= 60:
        return None
    return hour, minute


def parse_time_string(value: str) -> time:
    """Parse time string into a minute-precision time. Raises ValueError if invalid."""
    result = parse_time_of_day(value)
    if result is None:
        raise ValueError(f"Invalid time format: {value!r}")
    hour, minute = result
    return time(hour, minute)


def format_time_of_day(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def normalize_weekdays(days: Iterable[int] | None) -> frozenset[int]:
    """Validate weekday indexes (0=Monday .. 6=Sunday)."""
    if not days:
        return frozenset()
    normalized: set[int] = set()
    for day in days:
        if isinstance(day, bool) or not isinstance(day, int):
            raise ValueError(f"Weekday must be an integer, got {day!r}")
        if day < 0 or day > 6:
            raise ValueError(f"Weekday out of range 0..6: {day}")
        normalized.add(day)
    return frozenset(normalized)


def parse_day_tokens(value: str | None) -> list[int] | None:
    """Parse 'mon,wed', 'weekdays', 'daily' style tokens. None means one-shot."""
    if not value:
        return None
    lowered = value.strip().lower()
    condensed = lowered.replace(" ", "")
    if lowered in {"single", "once", "next"}:
        return None
    if lowered in {"weekdays", "weekday"}:
        return sorted(WEEKDAY_SET)
    if lowered in {"weekend", "weekends"}:
        return sorted(WEEKEND_SET)
    if condensed in {"everyday", "alldays"} or lowered in {"daily", "all"}:
        return list(range(7))
    days: set[int] = set()
    for chunk in re.split(r"[,\s]+", lowered):
        chunk = chunk.strip()
        if not chunk:
            continue
        idx = DAY_NAME_MAP.get(chunk[:3], DAY_NAME_MAP.get(chunk))
        if idx is None:
            continue
        days.add(idx)
    if not days:
        return None
    return sorted(days)


def day_indexes_to_names(indexes: Iterable[int] | None) -> list[str]:
    if not indexes:
        return []
    return [DAY_NAMES[i % 7] for i in sorted(indexes)]
