# tests/test_timefmt.py

from __future__ import annotations

import pytest

from kidscalendar.tasks.timefmt import (
    display_time,
    format_minutes,
    is_valid_duration,
    is_valid_time,
    parse_duration,
    parse_to_minutes,
)


@pytest.mark.parametrize(
    ("text", "minutes"),
    [
        ("8:05 PM", 1205),
        ("20:05", 1205),
        ("12:00 AM", 0),
        ("12:30 PM", 750),
        ("07:00am", 420),
        ("9", 540),
    ],
)
def test_parse_to_minutes_accepts_both_clocks(text: str, minutes: int) -> None:
    assert parse_to_minutes(text) == minutes


@pytest.mark.parametrize("text", ["", None, "banana", "25:00", "13:00 PM", "10:75"])
def test_parse_to_minutes_falls_back_to_midnight(text: str | None) -> None:
    assert parse_to_minutes(text) == 0


@pytest.mark.parametrize("mode", ["12h", "24h"])
def test_every_minute_of_the_day_survives_format_then_parse(mode: str) -> None:
    for minutes in range(1440):
        assert parse_to_minutes(format_minutes(minutes, mode)) == minutes, format_minutes(minutes, mode)


def test_format_minutes_both_modes() -> None:
    assert format_minutes(1205, "12h") == "08:05 PM"
    assert format_minutes(1205, "24h") == "20:05"
    assert format_minutes(0, "12h") == "12:00 AM"
    assert format_minutes(720, "12h") == "12:00 PM"


def test_display_time_converts_between_clocks() -> None:
    assert display_time("20:05", "12h") == "08:05 PM"
    assert display_time("8:05 PM", "24h") == "20:05"


def test_strict_time_validation() -> None:
    assert is_valid_time("08:00 AM")
    assert is_valid_time("8:00PM")
    assert is_valid_time("23:59")
    assert not is_valid_time("24:00")
    assert not is_valid_time("13:00 PM")
    assert not is_valid_time("8")
    assert not is_valid_time("")


def test_duration_validation_and_parsing() -> None:
    assert is_valid_duration("30")
    assert is_valid_duration(45)
    assert not is_valid_duration("0")
    assert not is_valid_duration("1440")
    assert not is_valid_duration("abc")
    assert not is_valid_duration("  ")

    assert parse_duration("30") == 30
    assert parse_duration("12.7") == 12
    assert parse_duration("0") is None
    assert parse_duration("x") is None
    assert parse_duration(None) is None
