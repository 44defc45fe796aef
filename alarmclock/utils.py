"""
Shared utility functions for parsing and data manipulation

Provides common helpers for:
- String parsing: Environment variable conversion (parse_bool, parse_int, parse_float, split_csv)
- Topic sanitization: Converting hostnames to MQTT-safe topic segments
- Data coercion: Safe type conversion with fallback defaults

These utilities are used throughout alarmclock for configuration parsing and command handling.
"""

from __future__ import annotations

import zlib


def sanitize_hostname_for_topic(hostname: str) -> str:
    """Convert hostnames to MQTT-safe topic segments."""
    return hostname.lower().replace(".", "_").replace("/", "_").replace("+", "_").replace("#", "_")


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Interpret env-style booleans."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Best-effort int parser with fallback."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_float(value: str | None, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def split_csv(value: str | None) -> list[str]:
    """Split comma-separated strings into trimmed tokens."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def stable_id(value: str, modulo: int = 1_000_000) -> int:
    """Process-independent small integer for a string (``hash()`` is salted per process)."""
    return zlib.crc32(value.encode("utf-8")) % modulo
