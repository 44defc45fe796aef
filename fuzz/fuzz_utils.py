import sys

import atheris

with atheris.instrument_imports():
    from alarmclock.utils import (
        parse_bool,
        parse_float,
        parse_int,
        sanitize_hostname_for_topic,
        split_csv,
        stable_id,
    )


def TestOneInput(data: bytes) -> None:
    """Fuzz utility parsing functions with arbitrary input."""
    value = data.decode("utf-8", errors="ignore")

    sanitize_hostname_for_topic(value)

    # Parsers with default fallbacks (should never raise)
    parse_bool(value)
    parse_int(value, default=0)
    parse_float(value, default=0.0)
    split_csv(value)

    assert 0 <= stable_id(value) < 1_000_000


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
