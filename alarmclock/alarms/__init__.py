"""Alarm core: records, persistence, scheduling and the ringing lifecycle."""

from .config import AlarmClockConfig, AlertConfig, MqttConfig, TimerConfig
from .kvstore import FileKeyValueStore, KeyValueStore
from .lifecycle import AlarmLifecycleController, RingingContext, notification_id_for
from .models import Alarm
from .repository import AlarmRepository
from .scheduler import AlarmScheduler, ScheduleResult
from .service import AlarmService
from .store import AlarmStore
from .timers import AsyncioTimerService, TimerService
from .trigger_time import next_trigger_time
from .undo import UndoBuffer

__all__ = [
    "Alarm",
    "AlarmClockConfig",
    "AlarmLifecycleController",
    "AlarmRepository",
    "AlarmScheduler",
    "AlarmService",
    "AlarmStore",
    "AlertConfig",
    "AsyncioTimerService",
    "FileKeyValueStore",
    "KeyValueStore",
    "MqttConfig",
    "RingingContext",
    "ScheduleResult",
    "TimerConfig",
    "TimerService",
    "UndoBuffer",
    "next_trigger_time",
    "notification_id_for",
]
