"""UI-facing alarm coordinator.

Keeps the latest alarm snapshot collected from the store, runs every mutation
through the repository against that snapshot and keeps the scheduler in step
with the result.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import time

from alarmclock.datetime_utils import normalize_weekdays

from .models import Alarm
from .repository import AlarmRepository, children_of, find, group_of
from .scheduler import AlarmScheduler
from .store import AlarmStore, AlarmSubscription
from .undo import UndoBuffer

DeletedCallback = Callable[[tuple[Alarm, ...]], None]
AlarmsCallback = Callable[[list[Alarm]], None]

LOGGER = logging.getLogger("alarmclock.service")


def _by_time(alarms: Iterable[Alarm]) -> list[Alarm]:
    return sorted(alarms, key=lambda alarm: alarm.time_of_day)


class AlarmService:
    def __init__(
        self,
        *,
        store: AlarmStore,
        scheduler: AlarmScheduler,
        repository: AlarmRepository | None = None,
        undo: UndoBuffer | None = None,
        on_deleted: DeletedCallback | None = None,
        on_alarms_changed: AlarmsCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._repository = repository or AlarmRepository(store)
        self._undo = undo or UndoBuffer()
        self._on_deleted = on_deleted
        self._on_alarms_changed = on_alarms_changed
        self._logger = logger or LOGGER
        self._alarms: list[Alarm] = []
        self._subscription: AlarmSubscription | None = None
        self._collector: asyncio.Task | None = None

    @property
    def alarms(self) -> list[Alarm]:
        return list(self._alarms)

    @property
    def undo_pending(self) -> bool:
        return self._undo.pending

    def set_deleted_callback(self, callback: DeletedCallback | None) -> None:
        self._on_deleted = callback

    def set_alarms_callback(self, callback: AlarmsCallback | None) -> None:
        self._on_alarms_changed = callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load the first snapshot, arm every enabled alarm and follow changes."""
        if self._collector is not None:
            return
        self._subscription = self._store.subscribe()
        first = await anext(self._subscription)
        self._apply_snapshot(first)
        count = self.reschedule_enabled()
        self._logger.info("[service] Loaded %d alarms (%d scheduled)", len(first), count)
        self._collector = asyncio.create_task(self._collect(self._subscription))

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        collector, self._collector = self._collector, None
        if collector is not None:
            collector.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await collector

    async def _collect(self, subscription: AlarmSubscription) -> None:
        async for snapshot in subscription:
            self._apply_snapshot(snapshot)

    def _apply_snapshot(self, alarms: Sequence[Alarm]) -> None:
        self._alarms = list(alarms)
        if not self._on_alarms_changed:
            return
        try:
            self._on_alarms_changed(self.alarms)
        except Exception:
            self._logger.debug("[service] Alarm change callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, alarm_id: str) -> Alarm | None:
        return find(alarm_id, self._alarms)

    def primaries(self) -> list[Alarm]:
        return _by_time(alarm for alarm in self._alarms if alarm.is_primary)

    def children_of(self, parent_id: str) -> list[Alarm]:
        return _by_time(children_of(parent_id, self._alarms))

    def _require(self, alarm_id: str) -> Alarm:
        alarm = find(alarm_id, self._alarms)
        if alarm is None:
            raise ValueError(f"Unknown alarm: {alarm_id}")
        return alarm

    # ------------------------------------------------------------------
    # Scheduling side effects
    # ------------------------------------------------------------------

    def _sync_schedule(self, alarms: Iterable[Alarm]) -> None:
        for alarm in alarms:
            if alarm.enabled:
                self._scheduler.schedule_alarm(alarm.alarm_id, alarm.time_of_day, alarm.weekdays)
            else:
                self._scheduler.cancel_alarm(alarm.alarm_id)

    def reschedule_enabled(self) -> int:
        """Resubmit every enabled alarm, as after a reboot."""
        count = 0
        for alarm in self._alarms:
            if alarm.enabled and self._scheduler.schedule_alarm(alarm.alarm_id, alarm.time_of_day, alarm.weekdays):
                count += 1
        return count

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_primary(
        self,
        time_of_day: time,
        weekdays: Iterable[int] | None = None,
        label: str | None = None,
    ) -> Alarm:
        alarm = Alarm.create_primary(time_of_day, weekdays=weekdays, label=label)
        self._alarms = await self._repository.add_alarm(alarm, self._alarms)
        self._sync_schedule([alarm])
        self._logger.info("[service] Added alarm %s at %s", alarm.alarm_id, alarm.time_of_day.strftime("%H:%M"))
        return alarm

    async def add_child(self, parent_id: str, time_of_day: time) -> Alarm:
        parent = find(parent_id, self._alarms)
        if parent is None or not parent.is_primary:
            raise ValueError(f"Alarm {parent_id} cannot take secondary alarms")
        child = Alarm.create_child(parent, time_of_day)
        self._alarms = await self._repository.add_alarm(child, self._alarms)
        if child.enabled:
            self._sync_schedule([child])
        self._logger.info("[service] Added secondary alarm %s under %s", child.alarm_id, parent_id)
        return child

    async def remove(self, alarm_id: str) -> tuple[Alarm, ...] | None:
        """Delete an alarm and, for a primary, its secondaries. The group can be restored once."""
        group = tuple(group_of(alarm_id, self._alarms))
        if not group:
            return None
        for alarm in group:
            self._scheduler.cancel_alarm(alarm.alarm_id)
        self._alarms = await self._repository.remove_group(alarm_id, self._alarms)
        self._undo.push(group)
        self._logger.info("[service] Deleted alarm %s (%d records)", alarm_id, len(group))
        if self._on_deleted:
            try:
                self._on_deleted(group)
            except Exception:
                self._logger.debug("[service] Deleted callback failed", exc_info=True)
        return group

    async def undo_delete(self) -> tuple[Alarm, ...] | None:
        group = self._undo.take()
        if group is None:
            return None
        self._alarms = await self._repository.restore_group(group, self._alarms)
        self._sync_schedule(alarm for alarm in group if alarm.enabled)
        self._logger.info("[service] Restored %d deleted alarms", len(group))
        return group

    async def set_enabled(self, alarm_id: str, enabled: bool) -> None:
        target = self._require(alarm_id)
        self._alarms = await self._repository.set_enabled(alarm_id, enabled, self._alarms)
        affected = group_of(alarm_id, self._alarms) if target.is_primary else [self._require(alarm_id)]
        self._sync_schedule(affected)

    async def set_weekdays(self, alarm_id: str, weekdays: Iterable[int]) -> None:
        target = self._require(alarm_id)
        days = normalize_weekdays(weekdays)
        self._alarms = await self._repository.set_weekdays(alarm_id, days, self._alarms)
        affected = group_of(alarm_id, self._alarms) if target.is_primary else [self._require(alarm_id)]
        self._sync_schedule(alarm for alarm in affected if alarm.enabled)

    async def set_time(self, alarm_id: str, time_of_day: time) -> None:
        self._require(alarm_id)
        self._alarms = await self._repository.set_time(alarm_id, time_of_day, self._alarms)
        self._scheduler.cancel_alarm(alarm_id)
        updated = self._require(alarm_id)
        if updated.enabled:
            self._sync_schedule([updated])

    async def set_label(self, alarm_id: str, label: str) -> None:
        self._require(alarm_id)
        self._alarms = await self._repository.set_label(alarm_id, label, self._alarms)

    async def set_vibration_only(self, alarm_id: str, vibration_only: bool) -> None:
        self._require(alarm_id)
        self._alarms = await self._repository.set_vibration_only(alarm_id, vibration_only, self._alarms)
