"""
alarmclock - Personal alarm service package

This is the root package for alarmclock, containing shared utilities and the
alarm core used by the daemon.

Core modules:
- audio: Audio control and playback (sink volume, alarm tone generation)
- datetime_utils: Time-of-day parsing and weekday helpers
- utils: Environment parsing helpers
- alarms: Alarm records, persistence, scheduling and the ringing lifecycle
"""

__version__ = "0.4.2"
