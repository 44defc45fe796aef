"""Alarm command processor for MQTT commands.

Routes JSON commands published on ``<base>/alarms/command`` to the
:class:`AlarmService` (edits) and the :class:`AlarmLifecycleController`
(trigger, stop and snooze events), and publishes the alarm list, deletion
signals and ringing state back to MQTT.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import time as dt_time
from typing import Any

from alarmclock.datetime_utils import DAY_NAME_MAP, parse_day_tokens, parse_time_string

from .lifecycle import AlarmLifecycleController
from .models import Alarm
from .mqtt import AlarmMqtt
from .service import AlarmService

LOGGER = logging.getLogger(__name__)


class AlarmCommandProcessor:
    """Processes MQTT alarm commands.

    Supported command actions:
    - Edits: add_alarm, add_child, delete, undo, set_enabled, set_weekdays,
             set_time, set_label, set_vibration_only
    - Events: trigger, stop, snooze, boot
    """

    def __init__(
        self,
        service: AlarmService,
        controller: AlarmLifecycleController,
        mqtt: AlarmMqtt,
        logger: logging.Logger | None = None,
    ) -> None:
        self.service = service
        self.controller = controller
        self.mqtt = mqtt
        self.logger = logger or LOGGER

        self._loop: asyncio.AbstractEventLoop | None = None

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self.mqtt.on_command(self.handle_command)
        self.logger.info("[commands] Listening for alarm commands on %s", self.mqtt.command_topic)

    # ========================================================================
    # MQTT Message Handler
    # ========================================================================

    def handle_command(self, command: dict[str, Any]) -> None:
        """MQTT network-thread callback; hands the command to the event loop."""
        if not self._loop:
            return
        asyncio.run_coroutine_threadsafe(self._process_command(command), self._loop)

    # ========================================================================
    # Outbound state
    # ========================================================================

    def handle_alarms_changed(self, alarms: list[Alarm]) -> None:
        message = {
            "alarms": [alarm.to_public_dict() for alarm in alarms],
            "updated_at": time.time(),
        }
        self.mqtt.publish_json(self.mqtt.state_topic, message, retain=True)

    def handle_deleted(self, group: tuple[Alarm, ...]) -> None:
        message = {
            "alarm_ids": [alarm.alarm_id for alarm in group],
            "count": len(group),
            "undo": True,
        }
        self.mqtt.publish_json(self.mqtt.deleted_topic, message)

    def handle_ringing_state(self, payload: dict[str, Any]) -> None:
        self.mqtt.publish_json(self.mqtt.ringing_topic, payload, retain=True)

    # ========================================================================
    # Command Processing
    # ========================================================================

    async def _process_command(self, payload: dict[str, Any]) -> None:
        if not isinstance(payload, dict):
            return
        action = str(payload.get("action") or "").lower()
        if not action:
            return
        try:
            await self._dispatch_action(action, payload)
        except Exception as exc:
            self.logger.debug("[commands] Command %s failed: %s", action, exc)

    async def _dispatch_action(self, action: str, payload: dict[str, Any]) -> None:
        # Edits
        if action in {"add_alarm", "create_alarm"}:
            await self.service.add_primary(
                self._require_time(payload),
                weekdays=self._coerce_days(payload.get("days", payload.get("weekdays"))),
                label=payload.get("label"),
            )
        elif action == "add_child":
            await self.service.add_child(self._require_id(payload, "parent_id"), self._require_time(payload))
        elif action in {"delete", "delete_alarm"}:
            await self.service.remove(self._require_id(payload))
        elif action == "undo":
            await self.service.undo_delete()
        elif action == "set_enabled":
            await self.service.set_enabled(self._require_id(payload), self._coerce_flag(payload.get("enabled")))
        elif action == "set_weekdays":
            days = self._coerce_days(payload.get("days", payload.get("weekdays"))) or []
            await self.service.set_weekdays(self._require_id(payload), days)
        elif action == "set_time":
            await self.service.set_time(self._require_id(payload), self._require_time(payload))
        elif action == "set_label":
            await self.service.set_label(self._require_id(payload), str(payload.get("label") or ""))
        elif action == "set_vibration_only":
            await self.service.set_vibration_only(
                self._require_id(payload), self._coerce_flag(payload.get("vibration_only"))
            )

        # Ringing events
        elif action == "trigger":
            await self.controller.on_trigger(self._require_id(payload), self._notification_id(payload))
        elif action in {"stop", "dismiss"}:
            alarm_id = payload.get("alarm_id")
            await self.controller.on_stop(str(alarm_id) if alarm_id else None, self._notification_id(payload))
        elif action == "snooze":
            await self.controller.on_snooze(self._require_id(payload), self._notification_id(payload))
        elif action == "boot":
            count = self.service.reschedule_enabled()
            self.logger.info("[commands] Boot resubmitted %d alarms", count)
        else:
            self.logger.debug("[commands] Unknown action: %s", action)

    # ========================================================================
    # Payload helpers
    # ========================================================================

    @staticmethod
    def _require_id(payload: dict[str, Any], key: str = "alarm_id") -> str:
        value = payload.get(key)
        if not value:
            raise ValueError(f"{key} is required")
        return str(value)

    @staticmethod
    def _require_time(payload: dict[str, Any]) -> dt_time:
        text = payload.get("time") or payload.get("time_of_day")
        if not text:
            raise ValueError("alarm time is required")
        return parse_time_string(str(text))

    @staticmethod
    def _coerce_flag(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)

    @staticmethod
    def _notification_id(payload: dict[str, Any]) -> int | None:
        value = payload.get("notification_id")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _coerce_days(value: Any) -> list[int] | None:
        if value is None:
            return None
        if isinstance(value, str):
            return parse_day_tokens(value)
        if isinstance(value, list):
            days: list[int] = []
            for item in value:
                if isinstance(item, int) and not isinstance(item, bool):
                    days.append(item)
                elif isinstance(item, str):
                    token = item.strip().lower()
                    if token.isdigit():
                        days.append(int(token))
                    elif token[:3] in DAY_NAME_MAP:
                        days.append(DAY_NAME_MAP[token[:3]])
            return days
        return None
