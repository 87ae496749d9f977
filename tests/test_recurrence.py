# tests/test_recurrence.py

from __future__ import annotations

from datetime import date, datetime, timedelta
from itertools import islice

import pytest

from kidscalendar.errors import TaskValidationError
from kidscalendar.tasks.recurrence import (
    Occurrences,
    is_due_today,
    iter_occurrences,
    occurrence_at,
    occurs_on,
    sunday_weekday,
    tasks_for_day,
)
from kidscalendar.tasks.task_models import Frequency, RecurrenceRule

from .fakes import make_task

# 2024-01-07 is a Sunday.
SUNDAY = date(2024, 1, 7)


def test_sunday_based_weekday() -> None:
    assert sunday_weekday(SUNDAY) == 0
    assert sunday_weekday(date(2024, 1, 8)) == 1
    assert sunday_weekday(date(2024, 1, 13)) == 6


def test_daily_fires_every_day_until_end_date_inclusive() -> None:
    rule = RecurrenceRule(Frequency.DAILY, end_date=date(2024, 1, 10))
    assert occurs_on(rule, date(2024, 1, 10))
    assert not occurs_on(rule, date(2024, 1, 11))


def test_weekly_uses_sunday_zero_days() -> None:
    rule = RecurrenceRule(Frequency.WEEKLY, days_of_week=frozenset({1, 3}))  # Mon, Wed
    assert occurs_on(rule, date(2024, 1, 8))
    assert occurs_on(rule, date(2024, 1, 10))
    assert not occurs_on(rule, SUNDAY)


def test_weekly_yields_exactly_the_chosen_weekdays_up_to_end_date() -> None:
    end = date(2024, 3, 15)  # a Friday
    rule = RecurrenceRule(Frequency.WEEKLY, days_of_week=frozenset({1, 3, 5}), end_date=end)

    got = list(iter_occurrences(rule, SUNDAY))

    window = [SUNDAY + timedelta(days=n) for n in range(120)]
    # date.weekday(): Monday=0, Wednesday=2, Friday=4
    expected = [d for d in window if d <= end and d.weekday() in (0, 2, 4)]
    assert got == expected
    assert got[-1] == end


def test_monthly_day_31_skips_short_months() -> None:
    rule = RecurrenceRule(Frequency.MONTHLY, day_of_month=31)
    days = list(iter_occurrences(rule, date(2024, 1, 1), date(2024, 6, 30)))
    assert days == [date(2024, 1, 31), date(2024, 3, 31), date(2024, 5, 31)]
    assert not occurs_on(rule, date(2024, 4, 30))


def test_none_and_missing_rules_never_fire() -> None:
    assert not occurs_on(None, SUNDAY)
    assert not occurs_on(RecurrenceRule(), SUNDAY)
    assert list(iter_occurrences(RecurrenceRule(), SUNDAY, date(2024, 2, 1))) == []


def test_invalid_rules_are_rejected() -> None:
    with pytest.raises(TaskValidationError):
        RecurrenceRule(Frequency.WEEKLY).validate()
    with pytest.raises(TaskValidationError):
        RecurrenceRule(Frequency.MONTHLY, day_of_month=32).validate()
    assert list(iter_occurrences(RecurrenceRule(Frequency.WEEKLY), SUNDAY)) == []


def test_unbounded_iteration_is_lazy() -> None:
    rule = RecurrenceRule(Frequency.WEEKLY, days_of_week=frozenset({0}))
    first = list(islice(iter_occurrences(rule, SUNDAY), 3))
    assert first == [date(2024, 1, 7), date(2024, 1, 14), date(2024, 1, 21)]


def test_occurrences_view_is_restartable() -> None:
    rule = RecurrenceRule(Frequency.DAILY)
    view = Occurrences(rule, SUNDAY, date(2024, 1, 9))
    assert list(view) == list(view) == [date(2024, 1, 7), date(2024, 1, 8), date(2024, 1, 9)]


def test_occurrence_at_combines_day_and_time() -> None:
    rule = RecurrenceRule(Frequency.DAILY)
    assert occurrence_at(rule, SUNDAY, "08:30 PM") == datetime(2024, 1, 7, 20, 30)
    assert occurrence_at(RecurrenceRule(Frequency.WEEKLY, days_of_week=frozenset({2})), SUNDAY, "08:30 PM") is None


def test_due_today_filters_recurring_only() -> None:
    one_off = make_task("task_1_a")
    weekly = make_task("task_1_b", recurrence=RecurrenceRule(Frequency.WEEKLY, days_of_week=frozenset({1})))

    assert is_due_today(one_off, SUNDAY)
    assert not is_due_today(weekly, SUNDAY)
    assert [t.id for t in tasks_for_day([one_off, weekly], date(2024, 1, 8))] == ["task_1_a", "task_1_b"]
