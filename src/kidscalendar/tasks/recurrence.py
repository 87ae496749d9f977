# src/kidscalendar/tasks/recurrence.py

"""
Recurrence expansion.

A recurring task is stored once; whether it shows up on a given day is decided
here, every time it is asked. Callers must ask again after midnight instead of
caching the answer.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, time, timedelta

from .task_models import Frequency, RecurrenceRule, Task
from .timefmt import parse_to_minutes


def sunday_weekday(day: date) -> int:
    """Weekday with 0 = Sunday .. 6 = Saturday (date.weekday() is Monday-based)."""
    return (day.weekday() + 1) % 7


def occurs_on(rule: RecurrenceRule | None, day: date) -> bool:
    if rule is None or rule.frequency is Frequency.NONE:
        return False

    if rule.end_date is not None and day > rule.end_date:
        return False

    if rule.frequency is Frequency.DAILY:
        return True

    if rule.frequency is Frequency.WEEKLY:
        return sunday_weekday(day) in rule.days_of_week

    if rule.frequency is Frequency.MONTHLY:
        # No clamping: day 31 simply does not happen in a 30-day month.
        return rule.day_of_month is not None and day.day == rule.day_of_month

    return False


def occurrence_at(rule: RecurrenceRule | None, day: date, scheduled_time: str) -> datetime | None:
    """The occurrence instant on `day`, or None if the rule does not fire that day."""
    if not occurs_on(rule, day):
        return None
    hours, minutes = divmod(parse_to_minutes(scheduled_time), 60)
    return datetime.combine(day, time(hours, minutes))


def iter_occurrences(
    rule: RecurrenceRule | None,
    start: date,
    end: date | None = None,
) -> Iterator[date]:
    """
    Lazily yield occurrence dates from `start` (inclusive).

    Bounded by `end` and/or the rule's end_date (both inclusive); unbounded otherwise.
    Rules that can never fire (none, invalid weekly/monthly) yield nothing.
    """
    if rule is None or rule.frequency is Frequency.NONE or not rule.is_valid():
        return

    limit = rule.end_date
    if end is not None:
        limit = end if limit is None else min(limit, end)

    day = start
    if rule.frequency is Frequency.MONTHLY:
        yield from _iter_monthly(rule, start, limit)
        return

    one_day = timedelta(days=1)
    while limit is None or day <= limit:
        if occurs_on(rule, day):
            yield day
        try:
            day += one_day
        except OverflowError:
            return


def _iter_monthly(rule: RecurrenceRule, start: date, limit: date | None) -> Iterator[date]:
    # Jump month by month instead of walking every day.
    dom = int(rule.day_of_month or 0)
    year, month = start.year, start.month
    while True:
        try:
            candidate = date(year, month, dom)
        except ValueError:
            candidate = None  # month too short

        if candidate is not None:
            if limit is not None and candidate > limit:
                return
            if candidate >= start:
                yield candidate
        elif limit is not None and date(year, month, 1) > limit:
            return

        month += 1
        if month > 12:
            month = 1
            year += 1
        if year > date.max.year:
            return


class Occurrences:
    """Restartable view over iter_occurrences(): every iter() starts from `start` again."""

    __slots__ = ("rule", "start", "end")

    def __init__(self, rule: RecurrenceRule | None, start: date, end: date | None = None) -> None:
        self.rule = rule
        self.start = start
        self.end = end

    def __iter__(self) -> Iterator[date]:
        return iter_occurrences(self.rule, self.start, self.end)


def is_due_today(task: Task, today: date) -> bool:
    """One-off tasks always show; recurring tasks only on days their rule fires."""
    if not task.is_recurring:
        return True
    return occurs_on(task.recurrence, today)


def tasks_for_day(tasks: list[Task], day: date) -> list[Task]:
    return [t for t in tasks if is_due_today(t, day)]
