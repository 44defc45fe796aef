"""Next-occurrence computation for alarms."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, time, timedelta, timezone

from alarmclock.datetime_utils import normalize_weekdays, truncate_time

# Offsets 0..7 cover today plus a full week, so any non-empty day set matches.
_MAX_DAY_OFFSET = 7


def _is_local_offset(now: datetime) -> bool:
    """True for the fixed-offset tzinfo that ``datetime.astimezone()`` attaches to local times."""
    return isinstance(now.tzinfo, timezone) and now.astimezone().utcoffset() == now.utcoffset()


def _at(now: datetime, offset: int, time_of_day: time) -> datetime:
    day = now.date() + timedelta(days=offset)
    if _is_local_offset(now):
        # A fixed offset does not follow DST; resolve the wall-clock time in the local zone instead
        local = datetime.combine(day, time_of_day).astimezone()
        if local.utcoffset() != now.utcoffset():
            return local
    return datetime.combine(day, time_of_day, tzinfo=now.tzinfo)


def next_trigger_time(now: datetime, time_of_day: time, weekdays: Iterable[int] | None = None) -> datetime:
    """Return the next instant strictly after ``now`` at ``time_of_day``.

    With an empty ``weekdays`` the alarm is one-shot and fires today or
    tomorrow. Otherwise the first day (today included, if still ahead) whose
    weekday is in the set wins.
    """
    time_of_day = truncate_time(time_of_day)
    days = normalize_weekdays(weekdays)

    if not days:
        candidate = _at(now, 0, time_of_day)
        if candidate <= now:
            candidate = _at(now, 1, time_of_day)
        return candidate

    for offset in range(0, _MAX_DAY_OFFSET + 1):
        candidate = _at(now, offset, time_of_day)
        if candidate.weekday() not in days:
            continue
        if offset == 0 and candidate <= now:
            continue
        return candidate
    raise ValueError(f"No matching weekday in {sorted(days)}")
