import sys

import atheris

with atheris.instrument_imports():
    from alarmclock.alarms.store import decode_alarms
    from alarmclock.datetime_utils import (
        parse_day_tokens,
        parse_time_of_day,
        parse_time_string,
    )


def TestOneInput(data: bytes) -> None:
    """Fuzz time, day and stored-payload parsing with arbitrary input."""
    value = data.decode("utf-8", errors="ignore")

    # Returns None for invalid input
    parse_time_of_day(value)
    parse_day_tokens(value)

    try:
        parse_time_string(value)
    except ValueError:
        pass  # Expected for invalid input

    # Corrupt payloads decode to an empty list, never raise
    decode_alarms(data)


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
