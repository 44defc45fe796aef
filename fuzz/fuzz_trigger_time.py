import sys
from datetime import UTC, datetime, time, timedelta

import atheris

with atheris.instrument_imports():
    from alarmclock.alarms.trigger_time import next_trigger_time

_EPOCH = datetime(2020, 1, 1, tzinfo=UTC)


def TestOneInput(data: bytes) -> None:
    """Every computed trigger lands on the requested time, on an allowed day, after now."""
    fdp = atheris.FuzzedDataProvider(data)
    now = _EPOCH + timedelta(seconds=fdp.ConsumeIntInRange(0, 20 * 365 * 86400))
    time_of_day = time(fdp.ConsumeIntInRange(0, 23), fdp.ConsumeIntInRange(0, 59))
    weekdays = {day for day in range(7) if fdp.ConsumeBool()}

    result = next_trigger_time(now, time_of_day, weekdays)

    assert result > now
    assert result.time() == time_of_day
    assert result - now <= timedelta(days=7)
    if weekdays:
        assert result.weekday() in weekdays
    else:
        assert result - now <= timedelta(days=1)


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
