"""Cascade-aware mutations over the alarm list.

Every mutation takes the caller's current snapshot, computes the next list,
persists it through :class:`AlarmStore` and returns it, so callers never need
to re-read the store after writing.

Cascading fields (``enabled``, ``weekdays``, ``vibration_only``) flow from a
primary to its secondaries only. ``time_of_day`` and ``label`` never cascade.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import time

from alarmclock.datetime_utils import normalize_weekdays, truncate_time

from .models import Alarm, normalize_label
from .store import AlarmStore


def find(alarm_id: str, alarms: Iterable[Alarm]) -> Alarm | None:
    for alarm in alarms:
        if alarm.alarm_id == alarm_id:
            return alarm
    return None


def children_of(parent_id: str, alarms: Iterable[Alarm]) -> list[Alarm]:
    return [alarm for alarm in alarms if alarm.parent_id == parent_id]


def group_of(alarm_id: str, alarms: Iterable[Alarm]) -> list[Alarm]:
    """The alarm itself plus, for a primary, every secondary pointing at it."""
    return [alarm for alarm in alarms if alarm.alarm_id == alarm_id or alarm.parent_id == alarm_id]


class AlarmRepository:
    def __init__(self, store: AlarmStore) -> None:
        self._store = store

    @property
    def store(self) -> AlarmStore:
        return self._store

    async def _commit(self, alarms: list[Alarm]) -> list[Alarm]:
        await self._store.save(alarms)
        return alarms

    async def add_alarm(self, alarm: Alarm, current: Sequence[Alarm]) -> list[Alarm]:
        if find(alarm.alarm_id, current) is not None:
            raise ValueError(f"Alarm {alarm.alarm_id} already exists")
        if alarm.parent_id is not None:
            parent = find(alarm.parent_id, current)
            if parent is None or not parent.is_primary:
                raise ValueError(f"Parent alarm {alarm.parent_id} is not a live primary")
        return await self._commit([*current, alarm])

    async def remove_group(self, alarm_id: str, current: Sequence[Alarm]) -> list[Alarm]:
        return await self._commit(
            [alarm for alarm in current if alarm.alarm_id != alarm_id and alarm.parent_id != alarm_id]
        )

    async def restore_group(self, group: Sequence[Alarm], current: Sequence[Alarm]) -> list[Alarm]:
        existing = {alarm.alarm_id for alarm in current}
        return await self._commit([*current, *(alarm for alarm in group if alarm.alarm_id not in existing)])

    def _cascade(self, alarm_id: str, current: Sequence[Alarm], **changes: object) -> list[Alarm]:
        target = find(alarm_id, current)
        cascade = target is not None and target.is_primary
        updated: list[Alarm] = []
        for alarm in current:
            if alarm.alarm_id == alarm_id or (cascade and alarm.parent_id == alarm_id):
                updated.append(replace(alarm, **changes))
            else:
                updated.append(alarm)
        return updated

    def _single(self, alarm_id: str, current: Sequence[Alarm], **changes: object) -> list[Alarm]:
        return [replace(alarm, **changes) if alarm.alarm_id == alarm_id else alarm for alarm in current]

    async def set_enabled(self, alarm_id: str, enabled: bool, current: Sequence[Alarm]) -> list[Alarm]:
        return await self._commit(self._cascade(alarm_id, current, enabled=bool(enabled)))

    async def set_weekdays(self, alarm_id: str, weekdays: Iterable[int], current: Sequence[Alarm]) -> list[Alarm]:
        return await self._commit(self._cascade(alarm_id, current, weekdays=normalize_weekdays(weekdays)))

    async def set_vibration_only(self, alarm_id: str, vibration_only: bool, current: Sequence[Alarm]) -> list[Alarm]:
        return await self._commit(self._cascade(alarm_id, current, vibration_only=bool(vibration_only)))

    async def set_time(self, alarm_id: str, time_of_day: time, current: Sequence[Alarm]) -> list[Alarm]:
        return await self._commit(self._single(alarm_id, current, time_of_day=truncate_time(time_of_day)))

    async def set_label(self, alarm_id: str, label: str, current: Sequence[Alarm]) -> list[Alarm]:
        return await self._commit(self._single(alarm_id, current, label=normalize_label(label)))
