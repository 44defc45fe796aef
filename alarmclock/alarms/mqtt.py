"""
MQTT transport for the alarm daemon

Every alarm topic hangs off ``<topic_base>``:

- ``alarms/command``: inbound JSON commands, resubscribed on every reconnect
- ``alarms/state`` and ``alarms/ringing``: retained documents
- ``alarms/deleted``: one-off deletion signals carrying the undo offer
- ``notifications/<id>``: retained notification documents, cleared when dismissed
- ``haptics``: retained vibration state
- ``status``: ``online`` / ``offline`` availability, with ``offline`` as last will

All alarm traffic uses QoS 1 so a trigger or stop survives a broker hiccup.
"""

from __future__ import annotations

import json
import logging
import ssl
import threading
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from .config import MqttConfig

ALARM_QOS = 1
STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"

CommandHandler = Callable[[dict[str, Any]], None]


class AlarmMqtt:
    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()
        self._command_handler: CommandHandler | None = None

        base = config.topic_base
        self.command_topic = f"{base}/alarms/command"
        self.state_topic = f"{base}/alarms/state"
        self.deleted_topic = f"{base}/alarms/deleted"
        self.ringing_topic = f"{base}/alarms/ringing"
        self.haptics_topic = f"{base}/haptics"
        self.status_topic = f"{base}/status"

    def notification_topic(self, notification_id: int) -> str:
        return f"{self.config.topic_base}/notifications/{notification_id}"

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self) -> bool:
        """Open the broker connection. Returns False when MQTT is unconfigured or unreachable."""
        if not self.config.host:
            self._logger.debug("[mqtt] MQTT host not configured; alarm topics disabled")
            return False
        with self._lock:
            if self._client is not None:
                return True
            client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=f"alarmclock-{self.config.topic_base.replace('/', '-')}",
                clean_session=True,
            )
            if self.config.username:
                client.username_pw_set(self.config.username, self.config.password or "")
            if self.config.tls_enabled:
                client.tls_set(
                    ca_certs=self.config.ca_cert,
                    certfile=self.config.cert,
                    keyfile=self.config.key,
                    tls_version=ssl.PROTOCOL_TLS_CLIENT,
                )
            client.will_set(self.status_topic, STATUS_OFFLINE, qos=ALARM_QOS, retain=True)
            client.on_connect = self._on_connect
            client.message_callback_add(self.command_topic, self._on_command)
            try:
                client.connect(self.config.host, self.config.port, keepalive=30)
            except Exception as exc:
                self._logger.warning("[mqtt] Failed to connect to %s:%s: %s", self.config.host, self.config.port, exc)
                return False
            client.loop_start()
            self._client = client
            return True

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if not client:
            return
        # A clean disconnect never fires the last will
        try:
            client.publish(self.status_topic, STATUS_OFFLINE, qos=ALARM_QOS, retain=True)
        except Exception as exc:
            self._logger.debug("[mqtt] Failed to publish offline status: %s", exc)
        client.loop_stop()
        client.disconnect()

    def is_connected(self) -> bool:
        client = self._client
        try:
            return bool(client and client.is_connected())
        except Exception:
            return False

    def _on_connect(self, client, _userdata, _flags, reason_code, _properties=None):  # type: ignore[no-untyped-def]
        if reason_code.is_failure:
            self._logger.warning("[mqtt] Broker refused connection: %s", reason_code)
            return
        self._logger.info("[mqtt] Connected to %s:%s", self.config.host, self.config.port)
        client.publish(self.status_topic, STATUS_ONLINE, qos=ALARM_QOS, retain=True)
        if self._command_handler is not None:
            self._subscribe_commands(client)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def on_command(self, handler: CommandHandler) -> None:
        """Deliver decoded command documents to ``handler`` from the network thread."""
        self._command_handler = handler
        client = self._client
        if client is not None and self.is_connected():
            self._subscribe_commands(client)

    def _subscribe_commands(self, client: mqtt.Client) -> None:
        result, _mid = client.subscribe(self.command_topic, qos=ALARM_QOS)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Failed to subscribe to %s (rc=%s)", self.command_topic, result)

    def _on_command(self, _client, _userdata, message) -> None:  # type: ignore[no-untyped-def]
        handler = self._command_handler
        if handler is None:
            return
        text = message.payload.decode("utf-8", errors="ignore")
        try:
            document = json.loads(text)
        except json.JSONDecodeError:
            self._logger.debug("[mqtt] Ignoring malformed command: %s", text)
            return
        if not isinstance(document, dict):
            self._logger.debug("[mqtt] Ignoring non-object command: %s", text)
            return
        try:
            handler(document)
        except Exception as exc:
            self._logger.error("[mqtt] Command handler failed: %s", exc, exc_info=True)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish_json(self, topic: str, document: Any, *, retain: bool = False) -> None:
        self._publish(topic, json.dumps(document), retain=retain)

    def clear_retained(self, topic: str) -> None:
        self._publish(topic, "", retain=True)

    def _publish(self, topic: str, payload: str, *, retain: bool) -> None:
        client = self._client
        if not client:
            return
        try:
            client.publish(topic, payload=payload, qos=ALARM_QOS, retain=retain)
        except Exception as exc:
            self._logger.debug("[mqtt] Failed to publish to %s: %s", topic, exc)
