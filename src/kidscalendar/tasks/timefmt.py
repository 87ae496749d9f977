# src/kidscalendar/tasks/timefmt.py

"""
Display time <-> minute-of-day conversion.

parse_to_minutes() is lenient and never raises: a task with a broken time
string still renders (at midnight). The strict is_valid_* checks are what the
edit boundary uses to reject bad input before it reaches a task.
"""

from __future__ import annotations

import re

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{1,2}))?\s*(AM|PM)?$")
_TIME_12H_RE = re.compile(r"^(0?[1-9]|1[0-2]):[0-5][0-9]\s?(AM|PM)$")
_TIME_24H_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def parse_to_minutes(text: str | None) -> int:
    """
    "8:05 PM" -> 1205, "20:05" -> 1205, "12:00 AM" -> 0.

    Returns 0 for empty or unparseable input.
    """
    if not text:
        return 0

    clean = str(text).strip().upper()
    m = _TIME_RE.match(clean)
    if not m:
        return 0

    hours = int(m.group(1))
    minutes = int(m.group(2) or 0)
    period = m.group(3)

    if minutes > 59:
        return 0

    if period:
        if hours < 1 or hours > 12:
            return 0
        if period == "PM" and hours < 12:
            hours += 12
        if period == "AM" and hours == 12:
            hours = 0
    elif hours > 23:
        return 0

    return hours * 60 + minutes


def format_minutes(minutes: int, mode: str = "12h") -> str:
    """Format a minute-of-day as "08:05 PM" (12h) or "20:05" (24h)."""
    total = int(minutes) % MINUTES_PER_DAY
    h, m = divmod(total, 60)

    if str(mode) == "24h":
        return f"{h:02d}:{m:02d}"

    period = "PM" if h >= 12 else "AM"
    h12 = h % 12 or 12
    return f"{h12:02d}:{m:02d} {period}"


def display_time(text: str | None, mode: str = "12h") -> str:
    return format_minutes(parse_to_minutes(text), mode)


def is_valid_time(text: str | None) -> bool:
    if not text:
        return False
    clean = str(text).strip().upper()
    return bool(_TIME_12H_RE.match(clean) or _TIME_24H_RE.match(clean))


def is_valid_duration(text: str | int | None) -> bool:
    if text is None or (isinstance(text, str) and not text.strip()):
        return False
    try:
        n = float(text)
    except (TypeError, ValueError):
        return False
    return 0 < n < MINUTES_PER_DAY


def parse_duration(text: str | int | None) -> int | None:
    """Whole minutes from a duration field; None when missing or not a number."""
    if text is None:
        return None
    try:
        n = int(float(str(text).strip()))
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None
