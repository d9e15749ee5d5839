# tests/test_duration.py

from __future__ import annotations

from datetime import timedelta

import pytest

from core.duration import format_duration, parse_duration


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("30s", timedelta(seconds=30)),
        ("30m", timedelta(minutes=30)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("2d", timedelta(days=2)),
        ("45", timedelta(seconds=45)),
        (90, timedelta(seconds=90)),
        (timedelta(minutes=1), timedelta(minutes=1)),
    ],
)
def test_parse(value, expected) -> None:
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "soon", "5x", "-5s", -1, "m5"])
def test_parse_rejects(value) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)


def test_format() -> None:
    assert format_duration(timedelta(minutes=90)) == "1h30m"
    assert format_duration(timedelta(seconds=30)) == "30s"
    assert format_duration(timedelta(0)) == "0s"
