"""Shared test fixtures for the alarm clock test suite.

This module provides reusable fixtures for:
- Stores backed by a temporary directory
- Timer services and schedulers with an injectable clock
- Recording fakes for the notification, sound and vibration surfaces
- MQTT client mocking
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import paho.mqtt.client as mqtt
import pytest
from alarmclock.alarms.config import AlertConfig, MqttConfig
from alarmclock.alarms.kvstore import FileKeyValueStore
from alarmclock.alarms.scheduler import AlarmScheduler
from alarmclock.alarms.store import AlarmStore
from alarmclock.alarms.surfaces import AlarmNotification

# A Monday
MONDAY_0600 = datetime(2024, 1, 1, 6, 0)

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture
def mock_logger():
    return Mock(spec=logging.Logger)


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(MONDAY_0600)


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest.fixture
def kv(tmp_path: Path):
    return FileKeyValueStore(tmp_path / "data")


@pytest.fixture
def store(kv):
    return AlarmStore(kv)


# ============================================================================
# Timer Fixtures
# ============================================================================


class FakeTimerService:
    """In-memory timer registry; nothing fires unless a test calls ``fire``."""

    def __init__(self, exact_allowed: bool = True) -> None:
        self.exact_allowed = exact_allowed
        self.registrations: dict[tuple[str, str], dict[str, Any]] = {}
        self.callback = None

    def register(self, key, instant, payload, *, exact):
        if exact and not self.exact_allowed:
            raise PermissionError("Exact timers are not permitted")
        self.registrations[key] = {"instant": instant, "payload": dict(payload), "exact": exact}
        return True

    def cancel(self, key):
        return self.registrations.pop(key, None) is not None

    def is_registered(self, key):
        return key in self.registrations

    def can_schedule_exact(self):
        return self.exact_allowed

    def set_callback(self, callback):
        self.callback = callback

    async def fire(self, key):
        registration = self.registrations.pop(key)
        await self.callback(registration["payload"])


@pytest.fixture
def timers():
    return FakeTimerService()


@pytest.fixture
def scheduler(timers, clock):
    return AlarmScheduler(timers, clock=clock)


# ============================================================================
# Alert Surface Fakes
# ============================================================================


@dataclass
class FakeNotifications:
    shown: list[AlarmNotification] = field(default_factory=list)
    cancelled: list[int] = field(default_factory=list)

    async def show(self, notification: AlarmNotification) -> None:
        self.shown.append(notification)

    async def cancel(self, notification_id: int) -> None:
        self.cancelled.append(notification_id)

    @property
    def visible(self) -> set[int]:
        visible: set[int] = set()
        for notification in self.shown:
            visible.add(notification.notification_id)
        return visible - set(self.cancelled)


class FakeSound:
    def __init__(self, source, volume: float) -> None:
        self.source = source
        self.volumes = [volume]
        self.stopped = False

    async def set_volume(self, level: float) -> None:
        self.volumes.append(level)

    async def stop(self) -> None:
        self.stopped = True


class FakeSoundPlayer:
    def __init__(self) -> None:
        self.handles: list[FakeSound] = []

    async def play_loop(self, source, volume: float = 0.0) -> FakeSound:
        handle = FakeSound(source, volume)
        self.handles.append(handle)
        return handle

    @property
    def playing(self) -> list[FakeSound]:
        return [handle for handle in self.handles if not handle.stopped]


class FakeVibration:
    def __init__(self, pattern, repeat) -> None:
        self.pattern = pattern
        self.repeat = repeat
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class FakeVibrator:
    def __init__(self) -> None:
        self.handles: list[FakeVibration] = []

    async def vibrate(self, pattern, repeat: int = 0) -> FakeVibration:
        handle = FakeVibration(pattern, repeat)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> list[FakeVibration]:
        return [handle for handle in self.handles if not handle.stopped]


@pytest.fixture
def notifications():
    return FakeNotifications()


@pytest.fixture
def sound_player():
    return FakeSoundPlayer()


@pytest.fixture
def vibrator():
    return FakeVibrator()


@pytest.fixture
def fast_alert():
    """Alert settings with a short fade so tests finish quickly."""
    return AlertConfig.with_defaults(fade_seconds=0.05, fade_steps=5)


# ============================================================================
# MQTT Fixtures
# ============================================================================


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        host="localhost",
        port=1883,
        username=None,
        password=None,
        tls_enabled=False,
        cert=None,
        key=None,
        ca_cert=None,
        topic_base="alarmclock/test-device",
    )


@pytest.fixture
def mock_mqtt_client():
    client = Mock(spec=mqtt.Client)
    client.subscribe = Mock(return_value=(mqtt.MQTT_ERR_SUCCESS, 1))
    client.is_connected = Mock(return_value=True)
    return client
