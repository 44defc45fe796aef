"""Ringing lifecycle: trigger, stop, snooze and auto-stop.

Trigger, stop and snooze events arrive from timers, notification actions and
MQTT commands, possibly more than once. Every handler runs under the ringing
context's lock, is keyed by the alarm id, and treats a redelivered event as a
no-op. At most one alarm rings at a time; a new trigger silences the previous
one (last trigger wins).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from alarmclock.datetime_utils import local_now
from alarmclock.utils import stable_id

from .config import AlertConfig
from .models import Alarm
from .scheduler import AlarmScheduler
from .store import AlarmStore
from .surfaces import (
    AlarmNotification,
    NotificationSurface,
    SoundHandle,
    SoundPlayer,
    VibrationHandle,
    Vibrator,
)

LifecyclePhase = Literal["idle", "ringing"]
Outcome = Literal["stopped", "snoozed", "auto_stopped", "superseded"]
StateCallback = Callable[[dict[str, Any]], None]
FireKey = tuple[str, int, datetime]

DEFAULT_TITLE = "Alarm"
DEFAULT_BODY = "Tap to stop the alarm"

LOGGER = logging.getLogger("alarmclock.lifecycle")


def notification_id_for(alarm_id: str, hour: int | None = None, minute: int | None = None) -> int:
    """Notification ids follow the fire time so a redelivered fire maps onto the same notification."""
    if hour is not None and minute is not None and 0 <= hour < 24 and 0 <= minute < 60:
        return hour * 60 + minute
    return 10_000 + stable_id(alarm_id)


def _parse_fire_at(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@dataclass
class RingingContext:
    """The single process-wide ringing slot, owned by whoever wires the controller."""

    alarm_id: str | None = None
    notification_id: int | None = None
    sound: SoundHandle | None = None
    vibration: VibrationHandle | None = None
    auto_stop_deadline: datetime | None = None
    auto_stop_task: asyncio.Task | None = None
    fade_task: asyncio.Task | None = None
    fade_cancel: asyncio.Event | None = None
    phase: LifecyclePhase = "idle"
    last_outcome: Outcome | None = None
    # Survives reset so a redelivered fire is recognised after teardown
    last_fire: FireKey | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def is_ringing(self) -> bool:
        return self.phase == "ringing"

    def reset(self) -> None:
        self.alarm_id = None
        self.notification_id = None
        self.sound = None
        self.vibration = None
        self.auto_stop_deadline = None
        self.auto_stop_task = None
        self.fade_task = None
        self.fade_cancel = None
        self.phase = "idle"


class AlarmLifecycleController:
    def __init__(
        self,
        *,
        context: RingingContext,
        store: AlarmStore,
        scheduler: AlarmScheduler,
        notifications: NotificationSurface,
        sound: SoundPlayer,
        vibrator: Vibrator,
        alert: AlertConfig | None = None,
        on_state_changed: StateCallback | None = None,
        clock: Callable[[], datetime] = local_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._context = context
        self._store = store
        self._scheduler = scheduler
        self._notifications = notifications
        self._sound = sound
        self._vibrator = vibrator
        self._alert = alert or AlertConfig.with_defaults()
        self._state_cb = on_state_changed
        self._clock = clock
        self._logger = logger or LOGGER

    def set_state_callback(self, callback: StateCallback | None) -> None:
        self._state_cb = callback

    @property
    def context(self) -> RingingContext:
        return self._context

    @property
    def is_ringing(self) -> bool:
        return self._context.is_ringing

    @property
    def ringing_alarm_id(self) -> str | None:
        return self._context.alarm_id if self._context.is_ringing else None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_timer_fire(self, payload: dict[str, Any]) -> None:
        alarm_id = payload.get("alarm_id")
        if not isinstance(alarm_id, str) or not alarm_id:
            self._logger.warning("[lifecycle] Ignoring timer payload without alarm id: %s", payload)
            return
        hour = payload.get("hour")
        minute = payload.get("minute")
        notification_id = notification_id_for(
            alarm_id,
            hour if isinstance(hour, int) else None,
            minute if isinstance(minute, int) else None,
        )
        await self.on_trigger(alarm_id, notification_id, occurrence=_parse_fire_at(payload.get("fire_at")))

    async def on_trigger(
        self,
        alarm_id: str,
        notification_id: int | None = None,
        *,
        occurrence: datetime | None = None,
    ) -> bool:
        """Ring ``alarm_id``. ``occurrence`` is the instant the fire was due, defaulting to now."""
        if notification_id is None:
            notification_id = notification_id_for(alarm_id)
        due = (occurrence or self._clock()).replace(second=0, microsecond=0)
        fire: FireKey = (alarm_id, notification_id, due)
        ctx = self._context
        async with ctx.lock:
            if ctx.last_fire == fire:
                self._logger.debug("[lifecycle] Fire for %s at %s already handled", alarm_id, due.isoformat())
                return False
            if ctx.is_ringing and ctx.alarm_id == alarm_id and ctx.notification_id == notification_id:
                self._logger.debug("[lifecycle] Duplicate trigger for ringing alarm %s ignored", alarm_id)
                return False
            if ctx.is_ringing:
                previous_id = ctx.notification_id
                self._logger.info("[lifecycle] Alarm %s superseded by %s", ctx.alarm_id, alarm_id)
                await self._teardown("superseded")
                if previous_id is not None and previous_id != notification_id:
                    await self._cancel_notification(previous_id)

            self._logger.info("[lifecycle] Triggering alarm %s (notification=%s)", alarm_id, notification_id)
            ctx.last_fire = fire
            ctx.phase = "ringing"
            ctx.alarm_id = alarm_id
            ctx.notification_id = notification_id
            ctx.last_outcome = None
            alarm: Alarm | None = None
            try:
                await self._start_vibration()
                alarm = await self._lookup(alarm_id)
                if alarm is not None and not alarm.vibration_only:
                    await self._start_sound()
                label = alarm.label if alarm else ""
                await self._show_notification(alarm_id, notification_id, label)
                self._arm_auto_stop(alarm_id, notification_id)
            finally:
                await self._rearm_or_disable(alarm_id, alarm)
            self._publish_state({"state": "ringing", "alarm_id": alarm_id, "label": alarm.label if alarm else ""})
        return True

    async def on_stop(self, alarm_id: str | None = None, notification_id: int | None = None) -> bool:
        ctx = self._context
        async with ctx.lock:
            if ctx.is_ringing and alarm_id is not None and ctx.alarm_id != alarm_id:
                self._logger.debug("[lifecycle] Stop for %s while %s rings; dismissing only", alarm_id, ctx.alarm_id)
                if notification_id is not None and notification_id != ctx.notification_id:
                    await self._cancel_notification(notification_id)
                return False
            target = notification_id if notification_id is not None else ctx.notification_id
            if target is None and alarm_id:
                target = notification_id_for(alarm_id)
            stopped_id = ctx.alarm_id
            was_ringing = await self._teardown("stopped")
            if target is not None:
                await self._cancel_notification(target)
            if was_ringing:
                self._logger.info("[lifecycle] Alarm %s stopped", stopped_id)
                self._publish_state({"state": "idle", "reason": "stopped", "alarm_id": stopped_id})
            else:
                self._logger.debug("[lifecycle] Stop for %s with nothing ringing", alarm_id)
            return was_ringing

    async def on_snooze(self, alarm_id: str, notification_id: int | None = None) -> bool:
        ctx = self._context
        async with ctx.lock:
            if not (ctx.is_ringing and ctx.alarm_id == alarm_id):
                # Redelivered after teardown, or aimed at an alarm that is no longer ringing
                if ctx.is_ringing:
                    self._logger.debug(
                        "[lifecycle] Snooze for %s while %s rings; dismissing only", alarm_id, ctx.alarm_id
                    )
                else:
                    self._logger.debug("[lifecycle] Snooze for %s with nothing ringing; dismissing only", alarm_id)
                if notification_id is not None and notification_id != ctx.notification_id:
                    await self._cancel_notification(notification_id)
                return False

            target = notification_id if notification_id is not None else ctx.notification_id
            await self._teardown("snoozed")
            if target is not None:
                await self._cancel_notification(target)

            minutes = self._alert.snooze_minutes
            self._logger.info("[lifecycle] Snoozing alarm %s for %d minutes", alarm_id, minutes)
            result = self._scheduler.schedule_snooze(alarm_id, minutes)
            self._publish_state(
                {
                    "state": "idle",
                    "reason": "snoozed",
                    "alarm_id": alarm_id,
                    "snooze_until": result.instant.isoformat() if result else None,
                }
            )
            return True

    async def shutdown(self) -> None:
        await self.on_stop()

    # ------------------------------------------------------------------
    # Alert side effects
    # ------------------------------------------------------------------

    async def _lookup(self, alarm_id: str) -> Alarm | None:
        try:
            alarm = await self._store.get(alarm_id)
        except Exception:
            self._logger.warning("[lifecycle] Failed to read alarm %s; ringing with defaults", alarm_id, exc_info=True)
            return None
        if alarm is None:
            self._logger.info("[lifecycle] Alarm %s not found; ringing with defaults", alarm_id)
        return alarm

    async def _start_vibration(self) -> None:
        try:
            self._context.vibration = await self._vibrator.vibrate(self._alert.vibration_pattern, repeat=0)
        except Exception:
            self._logger.warning("[lifecycle] Failed to start vibration", exc_info=True)

    async def _start_sound(self) -> None:
        ctx = self._context
        fade = self._alert.fade_seconds > 0
        try:
            handle = await self._sound.play_loop(self._alert.sound_file, volume=0.0 if fade else 1.0)
        except Exception:
            self._logger.error("[lifecycle] Failed to start alarm sound", exc_info=True)
            return
        ctx.sound = handle
        if fade:
            token = asyncio.Event()
            ctx.fade_cancel = token
            ctx.fade_task = asyncio.create_task(self._fade_in(handle, token))

    async def _fade_in(self, handle: SoundHandle, cancelled: asyncio.Event) -> None:
        steps = max(1, self._alert.fade_steps)
        step_delay = self._alert.fade_seconds / steps
        for step in range(1, steps + 1):
            if cancelled.is_set():
                return
            try:
                await handle.set_volume(step / steps)
            except Exception:
                self._logger.debug("[lifecycle] Fade-in aborted; sound handle unavailable", exc_info=True)
                return
            if step == steps or cancelled.is_set():
                return
            await asyncio.sleep(step_delay)

    async def _show_notification(self, alarm_id: str, notification_id: int, label: str) -> None:
        notification = AlarmNotification(
            notification_id=notification_id,
            alarm_id=alarm_id,
            title=label or DEFAULT_TITLE,
            body=DEFAULT_BODY,
            label=label,
            extras={"snooze_minutes": self._alert.snooze_minutes},
        )
        try:
            await self._notifications.show(notification)
        except Exception:
            self._logger.error("[lifecycle] Failed to show notification %s", notification_id, exc_info=True)

    async def _cancel_notification(self, notification_id: int) -> None:
        try:
            await self._notifications.cancel(notification_id)
        except Exception:
            self._logger.warning("[lifecycle] Failed to cancel notification %s", notification_id, exc_info=True)

    def _arm_auto_stop(self, alarm_id: str, notification_id: int) -> None:
        ctx = self._context
        timeout = self._alert.auto_stop_seconds
        ctx.auto_stop_deadline = self._clock() + timedelta(seconds=timeout)
        ctx.auto_stop_task = asyncio.create_task(self._auto_stop(alarm_id, notification_id, timeout))
        self._logger.debug("[lifecycle] Auto-stop scheduled in %ss", int(timeout))

    async def _auto_stop(self, alarm_id: str, notification_id: int, timeout: float) -> None:
        try:
            await asyncio.sleep(timeout)
        except asyncio.CancelledError:
            return
        ctx = self._context
        async with ctx.lock:
            if not (ctx.is_ringing and ctx.alarm_id == alarm_id and ctx.notification_id == notification_id):
                return
            self._logger.info("[lifecycle] Alarm %s auto-stopped after %ss", alarm_id, int(timeout))
            await self._teardown("auto_stopped")
            await self._cancel_notification(notification_id)
            self._publish_state({"state": "idle", "reason": "auto_timeout", "alarm_id": alarm_id})

    async def _rearm_or_disable(self, alarm_id: str, alarm: Alarm | None) -> None:
        """Move past this occurrence so it can never fire twice."""
        try:
            if alarm is not None and alarm.weekdays:
                if alarm.enabled:
                    self._scheduler.schedule_alarm(alarm.alarm_id, alarm.time_of_day, alarm.weekdays)
                    self._logger.debug("[lifecycle] Repeating alarm rescheduled: %s", alarm_id)
            else:
                await self._store.set_enabled_by_id(alarm_id, False)
                self._logger.debug("[lifecycle] One-shot alarm disabled: %s", alarm_id)
        except Exception:
            self._logger.error("[lifecycle] Failed to re-arm or disable alarm %s", alarm_id, exc_info=True)

    async def _teardown(self, outcome: Outcome) -> bool:
        """Release every alert resource and return to idle. Returns whether anything was ringing."""
        ctx = self._context
        was_ringing = ctx.is_ringing
        current = asyncio.current_task()
        try:
            if ctx.fade_cancel is not None:
                ctx.fade_cancel.set()
            if ctx.fade_task is not None and ctx.fade_task is not current:
                ctx.fade_task.cancel()
            if ctx.auto_stop_task is not None and ctx.auto_stop_task is not current:
                ctx.auto_stop_task.cancel()
            if ctx.sound is not None:
                try:
                    await ctx.sound.stop()
                except Exception:
                    self._logger.warning("[lifecycle] Failed to stop alarm sound", exc_info=True)
            if ctx.vibration is not None:
                try:
                    await ctx.vibration.stop()
                except Exception:
                    self._logger.warning("[lifecycle] Failed to stop vibration", exc_info=True)
        finally:
            ctx.reset()
            if was_ringing:
                ctx.last_outcome = outcome
        return was_ringing

    def _publish_state(self, payload: dict[str, Any]) -> None:
        if not self._state_cb:
            return
        try:
            self._state_cb(payload)
        except Exception:
            self._logger.debug("[lifecycle] State callback failed", exc_info=True)
