"""
Alarm wake scheduling

Maps alarms onto timer registrations:

- Main registration: one per alarm id, re-armed with the next occurrence
- Snooze registration: separate one-shot slot per alarm id
- Exact-first: exact timers when the capability is granted, best-effort
  otherwise (logged as degraded precision, never raised)
- Cancellation clears both slots and is safe to repeat

Scheduling failures are reported through logging and the return value so a
data mutation never fails because a timer could not be armed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any

from alarmclock.datetime_utils import local_now

from .timers import TimerKey, TimerService
from .trigger_time import next_trigger_time

MAIN_SLOT = "main"
SNOOZE_SLOT = "snooze"

LOGGER = logging.getLogger("alarmclock.scheduler")


@dataclass(frozen=True)
class ScheduleResult:
    alarm_id: str
    instant: datetime
    exact: bool


def _main_key(alarm_id: str) -> TimerKey:
    return (alarm_id, MAIN_SLOT)


def _snooze_key(alarm_id: str) -> TimerKey:
    return (alarm_id, SNOOZE_SLOT)


def timer_payload(alarm_id: str, fire_at: datetime, *, snooze: bool = False) -> dict[str, Any]:
    return {
        "action": "trigger",
        "alarm_id": alarm_id,
        "hour": fire_at.hour,
        "minute": fire_at.minute,
        "fire_at": fire_at.isoformat(),
        "snooze": snooze,
    }


class AlarmScheduler:
    def __init__(
        self,
        timers: TimerService,
        *,
        clock: Callable[[], datetime] = local_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._timers = timers
        self._clock = clock
        self._logger = logger or LOGGER
        self._scheduled: dict[str, datetime] = {}

    def can_schedule_exact(self) -> bool:
        try:
            return self._timers.can_schedule_exact()
        except Exception:
            self._logger.debug("[scheduler] Exact capability query failed", exc_info=True)
            return False

    def scheduled_instant(self, alarm_id: str) -> datetime | None:
        """Next main fire instant, or None while unscheduled."""
        if not self._timers.is_registered(_main_key(alarm_id)):
            # fired one-shots drop back to unscheduled
            self._scheduled.pop(alarm_id, None)
            return None
        return self._scheduled.get(alarm_id)

    def has_pending_snooze(self, alarm_id: str) -> bool:
        return self._timers.is_registered(_snooze_key(alarm_id))

    def _register(self, key: TimerKey, instant: datetime, payload: dict[str, Any]) -> bool | None:
        """Register exact if possible. Returns the precision used, or None on failure."""
        if self.can_schedule_exact():
            try:
                self._timers.register(key, instant, payload, exact=True)
                return True
            except PermissionError as exc:
                self._logger.warning("[scheduler] Exact timer refused for %s: %s", key[0], exc)
        try:
            self._timers.register(key, instant, payload, exact=False)
        except Exception as exc:
            self._logger.error("[scheduler] Failed to register timer %s: %s", key, exc)
            return None
        self._logger.warning("[scheduler] Exact timer capability missing; %s scheduled with degraded precision", key[0])
        return False

    def schedule_alarm(
        self, alarm_id: str, time_of_day: time, weekdays: Iterable[int] | None = None
    ) -> ScheduleResult | None:
        instant = next_trigger_time(self._clock(), time_of_day, weekdays)
        exact = self._register(_main_key(alarm_id), instant, timer_payload(alarm_id, instant))
        if exact is None:
            self._scheduled.pop(alarm_id, None)
            return None
        self._scheduled[alarm_id] = instant
        self._logger.debug("[scheduler] Alarm scheduled: %s at %s (exact=%s)", alarm_id, instant.isoformat(), exact)
        return ScheduleResult(alarm_id=alarm_id, instant=instant, exact=exact)

    def schedule_snooze(self, alarm_id: str, minutes: int) -> ScheduleResult | None:
        minutes = max(1, int(minutes))
        instant = self._clock() + timedelta(minutes=minutes)
        exact = self._register(_snooze_key(alarm_id), instant, timer_payload(alarm_id, instant, snooze=True))
        if exact is None:
            return None
        self._logger.debug("[scheduler] Snooze scheduled: %s for %d min later", alarm_id, minutes)
        return ScheduleResult(alarm_id=alarm_id, instant=instant, exact=exact)

    def cancel_alarm(self, alarm_id: str) -> None:
        for key in (_main_key(alarm_id), _snooze_key(alarm_id)):
            try:
                self._timers.cancel(key)
            except Exception as exc:
                self._logger.warning("[scheduler] Failed to cancel timer %s: %s", key, exc)
        self._scheduled.pop(alarm_id, None)
        self._logger.debug("[scheduler] Alarm cancelled: %s", alarm_id)
