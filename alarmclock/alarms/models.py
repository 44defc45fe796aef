"""Alarm records shared by the store, repository and lifecycle."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import time
from typing import Any, Literal
from uuid import uuid4

from alarmclock.datetime_utils import (
    day_indexes_to_names,
    format_time_of_day,
    normalize_weekdays,
    parse_time_string,
    truncate_time,
)

AlarmRole = Literal["primary", "secondary"]

LABEL_MAX_LENGTH = 30


def normalize_label(label: str | None) -> str:
    if not label:
        return ""
    return label.strip()[:LABEL_MAX_LENGTH]


def _new_alarm_id() -> str:
    return uuid4().hex


@dataclass(frozen=True, slots=True)
class Alarm:
    """A single alarm definition.

    Primaries have no ``parent_id``; secondaries point at their primary. The
    relation is a flat back-reference, never an owned tree.
    """

    time_of_day: time
    alarm_id: str = field(default_factory=_new_alarm_id)
    parent_id: str | None = None
    enabled: bool = True
    weekdays: frozenset[int] = frozenset()
    label: str = ""
    vibration_only: bool = False

    def __post_init__(self) -> None:
        # Frozen, so normalize through object.__setattr__
        object.__setattr__(self, "time_of_day", truncate_time(self.time_of_day))
        object.__setattr__(self, "weekdays", normalize_weekdays(self.weekdays))
        object.__setattr__(self, "label", normalize_label(self.label))

    @property
    def is_primary(self) -> bool:
        return self.parent_id is None

    @property
    def role(self) -> AlarmRole:
        return "primary" if self.is_primary else "secondary"

    @property
    def is_repeating(self) -> bool:
        return bool(self.weekdays)

    @classmethod
    def create_primary(
        cls,
        time_of_day: time,
        weekdays: Iterable[int] | None = None,
        label: str | None = None,
    ) -> Alarm:
        return cls(
            time_of_day=time_of_day,
            weekdays=normalize_weekdays(weekdays),
            label=normalize_label(label),
        )

    @classmethod
    def create_child(cls, parent: Alarm, time_of_day: time) -> Alarm:
        """Create a secondary that snapshots the parent's cascaded fields once."""
        if not parent.is_primary:
            raise ValueError(f"Alarm {parent.alarm_id} is not a primary alarm")
        return cls(
            time_of_day=time_of_day,
            parent_id=parent.alarm_id,
            enabled=parent.enabled,
            weekdays=parent.weekdays,
            vibration_only=parent.vibration_only,
        )

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "id": self.alarm_id,
            "parent_id": self.parent_id,
            "time": format_time_of_day(self.time_of_day),
            "enabled": self.enabled,
            "weekdays": sorted(self.weekdays),
            "label": self.label,
            "vibration_only": self.vibration_only,
        }

    def to_public_dict(self) -> dict[str, Any]:
        data = self.to_json_dict()
        data["role"] = self.role
        data["days"] = day_indexes_to_names(self.weekdays)
        data["is_repeating"] = self.is_repeating
        return data

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Alarm:
        alarm_id = payload["id"]
        if not isinstance(alarm_id, str) or not alarm_id:
            raise ValueError("alarm id must be a non-empty string")
        parent_id = payload.get("parent_id")
        if parent_id is not None and not isinstance(parent_id, str):
            raise ValueError("parent_id must be a string")
        return cls(
            alarm_id=alarm_id,
            parent_id=parent_id or None,
            time_of_day=parse_time_string(str(payload["time"])),
            enabled=bool(payload.get("enabled", True)),
            weekdays=normalize_weekdays(payload.get("weekdays")),
            label=normalize_label(payload.get("label")),
            vibration_only=bool(payload.get("vibration_only", False)),
        )
