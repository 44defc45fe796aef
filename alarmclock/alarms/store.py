"""Durable alarm list with change notifications."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from typing import Any

from .kvstore import KeyValueStore
from .models import Alarm

LOGGER = logging.getLogger("alarmclock.store")

ALARMS_KEY = "alarms"


def encode_alarms(alarms: Iterable[Alarm]) -> bytes:
    return json.dumps([alarm.to_json_dict() for alarm in alarms], indent=2).encode("utf-8")


def _load_entries(payload: bytes | None) -> list[Any] | None:
    """Parse the raw JSON list, or None when the payload is absent or unreadable."""
    if payload is None:
        return None
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        LOGGER.warning("[store] Ignoring unreadable alarm payload: %s", exc)
        return None
    if not isinstance(data, list):
        LOGGER.warning("[store] Ignoring alarm payload of type %s", type(data).__name__)
        return None
    return data


def decode_alarms(payload: bytes | None) -> list[Alarm]:
    entries = _load_entries(payload)
    if entries is None:
        return []
    alarms: list[Alarm] = []
    for item in entries:
        try:
            alarms.append(Alarm.from_dict(item))
        except (KeyError, TypeError, ValueError, AttributeError):
            LOGGER.debug("[store] Skipping invalid alarm entry: %s", item, exc_info=True)
    return alarms


class AlarmSubscription:
    """Async iterator over alarm list snapshots.

    The latest snapshot is queued on creation, then one per change.
    """

    def __init__(self, store: AlarmStore, initial: list[Alarm]) -> None:
        self._store = store
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[list[Alarm]] = asyncio.Queue()
        self._queue.put_nowait(initial)
        self._closed = False

    def _push(self, snapshot: list[Alarm]) -> None:
        if self._closed:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(snapshot)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, snapshot)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._unsubscribe(self)

    def __aiter__(self) -> AlarmSubscription:
        return self

    async def __anext__(self) -> list[Alarm]:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()

    async def __aenter__(self) -> AlarmSubscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class AlarmStore:
    """Persist the alarm list under a single key and fan out changes."""

    def __init__(self, kv: KeyValueStore, *, key: str = ALARMS_KEY) -> None:
        self._kv = kv
        self._key = key
        self._subscribers: list[AlarmSubscription] = []
        self._kv.add_listener(self._on_key_changed)

    def _read(self) -> list[Alarm]:
        return decode_alarms(self._kv.get(self._key))

    async def load(self) -> list[Alarm]:
        return self._read()

    async def get(self, alarm_id: str) -> Alarm | None:
        for alarm in self._read():
            if alarm.alarm_id == alarm_id:
                return alarm
        return None

    def subscribe(self) -> AlarmSubscription:
        subscription = AlarmSubscription(self, self._read())
        self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: AlarmSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    async def save(self, alarms: Iterable[Alarm]) -> bool:
        alarms = list(alarms)
        ok = self._kv.set(self._key, encode_alarms(alarms))
        if not ok:
            LOGGER.error("[store] Failed to persist %d alarms", len(alarms))
        return ok

    async def set_enabled_by_id(self, alarm_id: str, enabled: bool) -> bool:
        """Flip ``enabled`` for one record directly on the stored payload."""

        def _transform(payload: bytes | None) -> bytes | None:
            entries = _load_entries(payload)
            if entries is None:
                return None
            found = False
            for entry in entries:
                if isinstance(entry, dict) and entry.get("id") == alarm_id:
                    entry["enabled"] = enabled
                    found = True
            if not found:
                return None
            return json.dumps(entries, indent=2).encode("utf-8")

        updated = self._kv.update(self._key, _transform)
        if updated:
            LOGGER.debug("[store] Set enabled=%s for alarm %s", enabled, alarm_id)
        return updated

    def _on_key_changed(self, key: str) -> None:
        if key != self._key or not self._subscribers:
            return
        snapshot = self._read()
        for subscription in list(self._subscribers):
            subscription._push(list(snapshot))
