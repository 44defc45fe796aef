"""Alert surfaces used while an alarm rings.

The lifecycle controller only talks to the protocols below. The concrete
implementations drive the local sound card through PulseAudio and publish
notifications and haptics commands over MQTT for the UI and any paired
wearable.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import subprocess  # nosec B404 - player process handles only
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from alarmclock import audio as alarm_audio

from .mqtt import AlarmMqtt

LOGGER = logging.getLogger("alarmclock.surfaces")

ACTION_STOP = "stop"
ACTION_SNOOZE = "snooze"
STOP_SURFACE = "stop"


@dataclass(frozen=True)
class AlarmNotification:
    notification_id: int
    alarm_id: str
    title: str
    body: str
    label: str = ""
    actions: tuple[str, ...] = (ACTION_STOP, ACTION_SNOOZE)
    full_screen_target: str | None = STOP_SURFACE
    priority: str = "max"
    ongoing: bool = True
    extras: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "alarm_id": self.alarm_id,
            "title": self.title,
            "body": self.body,
            "label": self.label,
            "actions": list(self.actions),
            "full_screen": self.full_screen_target,
            "priority": self.priority,
            "ongoing": self.ongoing,
            **self.extras,
        }


class NotificationSurface(Protocol):
    async def show(self, notification: AlarmNotification) -> None: ...

    async def cancel(self, notification_id: int) -> None: ...


class SoundHandle(Protocol):
    async def set_volume(self, level: float) -> None: ...

    async def stop(self) -> None: ...


class SoundPlayer(Protocol):
    async def play_loop(self, source: Path | None, volume: float = 0.0) -> SoundHandle: ...


class VibrationHandle(Protocol):
    async def stop(self) -> None: ...


class Vibrator(Protocol):
    async def vibrate(self, pattern: tuple[int, ...], repeat: int = 0) -> VibrationHandle: ...


class MqttNotificationSurface:
    """Retained notification documents, cleared by an empty retained payload."""

    def __init__(self, mqtt: AlarmMqtt) -> None:
        self._mqtt = mqtt

    async def show(self, notification: AlarmNotification) -> None:
        topic = self._mqtt.notification_topic(notification.notification_id)
        self._mqtt.publish_json(topic, notification.to_payload(), retain=True)

    async def cancel(self, notification_id: int) -> None:
        self._mqtt.clear_retained(self._mqtt.notification_topic(notification_id))


class MqttVibration:
    def __init__(self, mqtt: AlarmMqtt) -> None:
        self._mqtt = mqtt
        self._stopped = False

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._mqtt.publish_json(self._mqtt.haptics_topic, {"state": "off"}, retain=True)


class MqttVibrator:
    def __init__(self, mqtt: AlarmMqtt) -> None:
        self._mqtt = mqtt

    async def vibrate(self, pattern: tuple[int, ...], repeat: int = 0) -> MqttVibration:
        payload = {"state": "on", "pattern": list(pattern), "repeat": repeat}
        self._mqtt.publish_json(self._mqtt.haptics_topic, payload, retain=True)
        return MqttVibration(self._mqtt)


class PulseAudioLoop:
    """Loops the alarm sample and maps 0..1 levels onto the sink volume."""

    def __init__(self, source: Path | None) -> None:
        self._source = source
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._sink: alarm_audio.Sink | None = None
        self._orig_volume: int | None = None
        self._sample: Path | None = None
        self._player: subprocess.Popen | None = None

    async def start(self, volume: float) -> None:
        self._sink = await asyncio.to_thread(alarm_audio.default_sink)
        if self._sink:
            current = await asyncio.to_thread(self._sink.volume)
            # Never save 0 as original volume, restoring to silence would hide the next alarm
            self._orig_volume = current if current and current > 0 else 20
        self._sample = await asyncio.to_thread(alarm_audio.resolve_sample, self._source)
        await self.set_volume(volume)
        self._task = asyncio.create_task(self._play_loop())

    async def set_volume(self, level: float) -> None:
        if self._stop_event.is_set() or not self._sink:
            return
        percent = int(round(max(0.0, min(1.0, level)) * 100))
        await asyncio.to_thread(self._sink.set_volume, percent)

    async def _play_loop(self) -> None:
        if self._sample is None:
            LOGGER.warning("[audio] No alarm sample available; ringing silently")
            return
        while not self._stop_event.is_set():
            player = await asyncio.to_thread(alarm_audio.start_player, self._sample)
            if player is None:
                return
            self._player = player
            try:
                await asyncio.to_thread(player.wait)
            finally:
                self._player = None
            await asyncio.sleep(0.2)

    async def stop(self) -> None:
        self._stop_event.set()
        player = self._player
        if player is not None:
            await asyncio.to_thread(alarm_audio.stop_player, player)
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        await self._restore_volume()

    async def _restore_volume(self) -> None:
        if self._sink is None or self._orig_volume is None:
            return
        await asyncio.to_thread(self._sink.set_volume, self._orig_volume)


class PulseAudioSoundPlayer:
    async def play_loop(self, source: Path | None, volume: float = 0.0) -> PulseAudioLoop:
        handle = PulseAudioLoop(source)
        await handle.start(volume)
        return handle
