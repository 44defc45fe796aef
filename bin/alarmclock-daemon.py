#!/usr/bin/env python3
"""Alarm clock daemon."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal

from alarmclock.alarms.commands import AlarmCommandProcessor
from alarmclock.alarms.config import AlarmClockConfig
from alarmclock.alarms.kvstore import FileKeyValueStore
from alarmclock.alarms.lifecycle import AlarmLifecycleController, RingingContext
from alarmclock.alarms.mqtt import AlarmMqtt
from alarmclock.alarms.scheduler import AlarmScheduler
from alarmclock.alarms.service import AlarmService
from alarmclock.alarms.store import AlarmStore
from alarmclock.alarms.surfaces import MqttNotificationSurface, MqttVibrator, PulseAudioSoundPlayer
from alarmclock.alarms.timers import AsyncioTimerService

LOGGER = logging.getLogger("alarmclock-daemon")


class AlarmClockDaemon:
    def __init__(self, config: AlarmClockConfig) -> None:
        self.config = config
        self.mqtt = AlarmMqtt(config.mqtt, logger=LOGGER)
        self.store = AlarmStore(FileKeyValueStore(config.data_dir))
        self.timers = AsyncioTimerService(
            exact_allowed=config.timers.exact_timers,
            best_effort_window=config.timers.best_effort_window_seconds,
        )
        self.scheduler = AlarmScheduler(self.timers)
        self.service = AlarmService(store=self.store, scheduler=self.scheduler)
        self.controller = AlarmLifecycleController(
            context=RingingContext(),
            store=self.store,
            scheduler=self.scheduler,
            notifications=MqttNotificationSurface(self.mqtt),
            sound=PulseAudioSoundPlayer(),
            vibrator=MqttVibrator(self.mqtt),
            alert=config.alert,
        )
        self.commands = AlarmCommandProcessor(self.service, self.controller, self.mqtt)
        self.timers.set_callback(self.controller.handle_timer_fire)
        self.service.set_alarms_callback(self.commands.handle_alarms_changed)
        self.service.set_deleted_callback(self.commands.handle_deleted)
        self.controller.set_state_callback(self.commands.handle_ringing_state)
        self._shutdown = asyncio.Event()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self.mqtt.connect()
        self.commands.start(loop)
        await self.service.start()
        LOGGER.info("Alarm clock ready (data_dir=%s, topic_base=%s)", self.config.data_dir, self.config.mqtt.topic_base)
        await self._shutdown.wait()

    async def shutdown(self) -> None:
        self._shutdown.set()
        await self.controller.shutdown()
        await self.service.stop()
        self.timers.cancel_all()
        self.mqtt.disconnect()


async def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = AlarmClockConfig.from_env()
    daemon = AlarmClockDaemon(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    run_task = asyncio.create_task(daemon.run())
    await stop_event.wait()
    await daemon.shutdown()
    run_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await run_task


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
