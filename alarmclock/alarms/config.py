"""Configuration helpers for the alarm daemon."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from pathlib import Path

from alarmclock.utils import (
    parse_bool,
    parse_float,
    parse_int,
    sanitize_hostname_for_topic,
    split_csv,
)

DEFAULT_SNOOZE_MINUTES = 5
DEFAULT_AUTO_STOP_SECONDS = 180.0
DEFAULT_FADE_SECONDS = 30.0
DEFAULT_FADE_STEPS = 60
DEFAULT_BEST_EFFORT_WINDOW_SECONDS = 60.0
DEFAULT_VIBRATION_PATTERN = (0, 1000, 500)


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _parse_pattern(value: str | None, default: tuple[int, ...]) -> tuple[int, ...]:
    tokens = split_csv(value)
    if not tokens:
        return default
    pattern: list[int] = []
    for token in tokens:
        if not token.isdigit():
            return default
        pattern.append(int(token))
    return tuple(pattern)


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class AlertConfig:
    snooze_minutes: int
    auto_stop_seconds: float
    fade_seconds: float
    fade_steps: int
    sound_file: Path | None
    vibration_pattern: tuple[int, ...]

    @classmethod
    def with_defaults(cls, **overrides: object) -> AlertConfig:
        values: dict[str, object] = {
            "snooze_minutes": DEFAULT_SNOOZE_MINUTES,
            "auto_stop_seconds": DEFAULT_AUTO_STOP_SECONDS,
            "fade_seconds": DEFAULT_FADE_SECONDS,
            "fade_steps": DEFAULT_FADE_STEPS,
            "sound_file": None,
            "vibration_pattern": DEFAULT_VIBRATION_PATTERN,
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]


@dataclass(frozen=True)
class TimerConfig:
    exact_timers: bool
    best_effort_window_seconds: float


@dataclass(frozen=True)
class AlarmClockConfig:
    hostname: str
    data_dir: Path
    alert: AlertConfig
    timers: TimerConfig
    mqtt: MqttConfig

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> AlarmClockConfig:
        source = env if env is not None else os.environ
        hostname = source.get("ALARMCLOCK_HOSTNAME") or socket.gethostname()

        data_dir_raw = _strip_or_none(source.get("ALARMCLOCK_DATA_DIR"))
        data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else Path.home() / ".local/share/alarmclock"

        sound_raw = _strip_or_none(source.get("ALARMCLOCK_SOUND_FILE"))
        alert = AlertConfig(
            snooze_minutes=max(1, parse_int(source.get("ALARMCLOCK_SNOOZE_MINUTES"), DEFAULT_SNOOZE_MINUTES)),
            auto_stop_seconds=max(
                1.0, parse_float(source.get("ALARMCLOCK_AUTO_STOP_SECONDS"), DEFAULT_AUTO_STOP_SECONDS)
            ),
            fade_seconds=max(0.0, parse_float(source.get("ALARMCLOCK_FADE_SECONDS"), DEFAULT_FADE_SECONDS)),
            fade_steps=max(1, parse_int(source.get("ALARMCLOCK_FADE_STEPS"), DEFAULT_FADE_STEPS)),
            sound_file=Path(sound_raw).expanduser() if sound_raw else None,
            vibration_pattern=_parse_pattern(source.get("ALARMCLOCK_VIBRATION_PATTERN"), DEFAULT_VIBRATION_PATTERN),
        )

        timers = TimerConfig(
            exact_timers=parse_bool(source.get("ALARMCLOCK_EXACT_TIMERS"), True),
            best_effort_window_seconds=max(
                1.0,
                parse_float(source.get("ALARMCLOCK_BEST_EFFORT_WINDOW_SECONDS"), DEFAULT_BEST_EFFORT_WINDOW_SECONDS),
            ),
        )

        topic_base = source.get("ALARMCLOCK_TOPIC_BASE") or f"alarmclock/{sanitize_hostname_for_topic(hostname)}"
        mqtt = MqttConfig(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=_strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
        )

        return AlarmClockConfig(
            hostname=hostname,
            data_dir=data_dir,
            alert=alert,
            timers=timers,
            mqtt=mqtt,
        )
