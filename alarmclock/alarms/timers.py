"""
Wake timers backed by asyncio tasks

Provides the timer registrations the scheduler relies on:

- Keyed registrations: registering a key replaces the previous timer for it
- Exact timers: fire at the requested instant (requires the exact capability)
- Best-effort timers: batched onto the next window boundary at or after the
  requested instant, the way an OS batches inexact wakeups
- Idempotent cancellation: cancelling an unknown key is a no-op

Fired timers hand their payload to a single async callback.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from alarmclock.datetime_utils import local_now

TimerKey = tuple[str, str]
FireCallback = Callable[[dict[str, Any]], Awaitable[None]]

LOGGER = logging.getLogger("alarmclock.timers")


class TimerService(Protocol):
    def register(self, key: TimerKey, instant: datetime, payload: dict[str, Any], *, exact: bool) -> bool: ...

    def cancel(self, key: TimerKey) -> bool: ...

    def is_registered(self, key: TimerKey) -> bool: ...

    def can_schedule_exact(self) -> bool: ...

    def set_callback(self, callback: FireCallback) -> None: ...


@dataclass
class TimerRegistration:
    key: TimerKey
    instant: datetime
    due: datetime
    exact: bool
    payload: dict[str, Any] = field(default_factory=dict)
    task: asyncio.Task | None = None


class AsyncioTimerService:
    def __init__(
        self,
        *,
        exact_allowed: bool | Callable[[], bool] = True,
        best_effort_window: float = 60.0,
        callback: FireCallback | None = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._exact_allowed = exact_allowed
        self._window = max(1.0, float(best_effort_window))
        self._callback = callback
        self._clock = clock
        self._timers: dict[TimerKey, TimerRegistration] = {}

    def set_callback(self, callback: FireCallback) -> None:
        self._callback = callback

    def can_schedule_exact(self) -> bool:
        allowed = self._exact_allowed
        return bool(allowed()) if callable(allowed) else bool(allowed)

    def register(self, key: TimerKey, instant: datetime, payload: dict[str, Any], *, exact: bool) -> bool:
        if exact and not self.can_schedule_exact():
            raise PermissionError("Exact timers are not permitted")
        self.cancel(key)
        due = instant if exact else self._align(instant)
        registration = TimerRegistration(key=key, instant=instant, due=due, exact=exact, payload=dict(payload))
        registration.task = asyncio.create_task(self._wait(registration))
        self._timers[key] = registration
        return True

    def cancel(self, key: TimerKey) -> bool:
        registration = self._timers.pop(key, None)
        if registration is None:
            return False
        if registration.task and registration.task is not asyncio.current_task():
            registration.task.cancel()
        return True

    def is_registered(self, key: TimerKey) -> bool:
        return key in self._timers

    def registration(self, key: TimerKey) -> TimerRegistration | None:
        return self._timers.get(key)

    def cancel_all(self) -> None:
        for key in list(self._timers):
            self.cancel(key)

    def _align(self, instant: datetime) -> datetime:
        stamp = instant.timestamp()
        aligned = math.ceil(stamp / self._window) * self._window
        return instant + timedelta(seconds=aligned - stamp)

    async def _wait(self, registration: TimerRegistration) -> None:
        delay = (registration.due - self._clock()).total_seconds()
        if delay > 0:
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                return
        if self._timers.get(registration.key) is registration:
            del self._timers[registration.key]
        else:
            return
        if not self._callback:
            LOGGER.warning("[timers] Timer %s fired with no callback registered", registration.key)
            return
        try:
            await self._callback(registration.payload)
        except Exception:
            LOGGER.exception("[timers] Timer callback failed for %s", registration.key)
