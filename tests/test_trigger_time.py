"""Tests for next-occurrence computation."""

from __future__ import annotations

import random
import time as time_module
from datetime import UTC, datetime, time, timedelta

import pytest
from alarmclock.alarms.trigger_time import next_trigger_time

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1)


def _at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    return MONDAY + timedelta(days=day_offset, hours=hour, minutes=minute)


# ---------------------------------------------------------------------------
# One-shot alarms
# ---------------------------------------------------------------------------


class TestOneShot:
    def test_later_today(self):
        assert next_trigger_time(_at(0, 6), time(7, 0)) == _at(0, 7)

    def test_already_passed_rolls_to_tomorrow(self):
        assert next_trigger_time(_at(0, 8), time(7, 0)) == _at(1, 7)

    def test_exactly_now_rolls_to_tomorrow(self):
        assert next_trigger_time(_at(0, 7), time(7, 0)) == _at(1, 7)

    def test_empty_set_is_one_shot(self):
        assert next_trigger_time(_at(0, 6), time(7, 0), set()) == _at(0, 7)

    def test_seconds_are_dropped(self):
        result = next_trigger_time(_at(0, 6), time(7, 0, 42, 500))
        assert result == _at(0, 7)
        assert result.second == 0

    def test_sunday_rolls_into_next_week(self):
        assert next_trigger_time(_at(6, 23, 30), time(0, 15)) == _at(7, 0, 15)


# ---------------------------------------------------------------------------
# Repeating alarms
# ---------------------------------------------------------------------------


class TestRepeating:
    def test_skips_to_next_listed_day(self):
        # Monday 07:30, alarm 07:00 on Mon and Wed
        assert next_trigger_time(_at(0, 7, 30), time(7, 0), {0, 2}) == _at(2, 7)

    def test_today_when_still_ahead(self):
        assert next_trigger_time(_at(0, 6), time(7, 0), {0, 2}) == _at(0, 7)

    def test_same_day_next_week(self):
        assert next_trigger_time(_at(0, 7, 30), time(7, 0), {0}) == _at(7, 7)

    def test_exactly_now_on_only_day_goes_a_week_out(self):
        assert next_trigger_time(_at(0, 7), time(7, 0), {0}) == _at(7, 7)

    def test_daily(self):
        assert next_trigger_time(_at(3, 22), time(6, 30), set(range(7))) == _at(4, 6, 30)

    def test_weekend_from_friday(self):
        assert next_trigger_time(_at(4, 9), time(9, 0), {5, 6}) == _at(5, 9)

    def test_keeps_timezone(self):
        now = datetime(2024, 1, 1, 6, 0, tzinfo=UTC)
        result = next_trigger_time(now, time(7, 0), {0})
        assert result.tzinfo is UTC
        assert result == datetime(2024, 1, 1, 7, 0, tzinfo=UTC)

    def test_rejects_out_of_range_weekday(self):
        with pytest.raises(ValueError):
            next_trigger_time(_at(0, 6), time(7, 0), {7})


# ---------------------------------------------------------------------------
# Daylight saving
# ---------------------------------------------------------------------------


@pytest.fixture
def us_eastern(monkeypatch):
    # POSIX rule string so no zoneinfo database is needed
    monkeypatch.setenv("TZ", "EST5EDT,M3.2.0,M11.1.0")
    time_module.tzset()
    yield
    monkeypatch.undo()
    time_module.tzset()


@pytest.mark.usefixtures("us_eastern")
class TestDaylightSaving:
    def test_spring_forward_keeps_wall_clock(self):
        now = datetime(2024, 3, 9, 23, 0).astimezone()
        result = next_trigger_time(now, time(7, 0), {6})
        assert result.replace(tzinfo=None) == datetime(2024, 3, 10, 7, 0)
        assert result.utcoffset() == timedelta(hours=-4)
        assert result.astimezone().hour == 7
        assert result - now == timedelta(hours=7)

    def test_fall_back_keeps_wall_clock(self):
        now = datetime(2024, 11, 2, 23, 0).astimezone()
        result = next_trigger_time(now, time(7, 0))
        assert result.replace(tzinfo=None) == datetime(2024, 11, 3, 7, 0)
        assert result.utcoffset() == timedelta(hours=-5)
        assert result - now == timedelta(hours=9)

    def test_week_ahead_across_change(self):
        now = datetime(2024, 3, 8, 7, 30).astimezone()
        result = next_trigger_time(now, time(7, 0), {4})
        assert result.replace(tzinfo=None) == datetime(2024, 3, 15, 7, 0)
        assert result.astimezone().hour == 7

    def test_same_offset_keeps_tzinfo(self):
        now = datetime(2024, 1, 8, 6, 0).astimezone()
        result = next_trigger_time(now, time(7, 0))
        assert result.tzinfo is now.tzinfo
        assert result - now == timedelta(hours=1)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestProperties:
    def test_random_inputs_hold_invariants(self):
        rng = random.Random(1234)
        for _ in range(500):
            now = MONDAY + timedelta(minutes=rng.randrange(0, 60 * 24 * 28))
            time_of_day = time(rng.randrange(24), rng.randrange(60))
            weekdays = {day for day in range(7) if rng.random() < 0.3}

            result = next_trigger_time(now, time_of_day, weekdays)

            assert result > now
            assert result.time() == time_of_day
            assert result - now <= timedelta(days=7)
            if weekdays:
                assert result.weekday() in weekdays
            else:
                assert result - now <= timedelta(days=1)
