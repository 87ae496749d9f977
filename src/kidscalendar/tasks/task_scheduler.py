# src/kidscalendar/tasks/task_scheduler.py

from __future__ import annotations

"""
Task poller.

A small polling loop that reads the in-memory family state and raises alarms
through an injected Notifier port:
- "time to start": a pending task, due today, whose scheduled minute is now
- "time is up": an active countdown that reached zero

Each alarm fires once; the memory of fired alarms is dropped when the date changes.
The poller never changes task status; that stays a user action.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum

from ..core.ports import Notifier
from ..family.models import Child, Language
from .lifecycle import minute_of_day, remaining_ms
from .recurrence import is_due_today
from .task_models import TaskStatus
from .timefmt import parse_to_minutes

logger = logging.getLogger(__name__)

_START_BODY = {Language.ES: "¡Es hora de empezar!", Language.EN: "Time to start!"}
_TIME_UP_BODY = {Language.ES: "¡Se acabó el tiempo!", Language.EN: "Time is up!"}


class AlarmKind(StrEnum):
    START = "start"
    TIME_UP = "time_up"


@dataclass(slots=True, frozen=True)
class Alarm:
    kind: AlarmKind
    child_id: str
    task_id: str
    title: str
    body: str
    key: tuple[str, ...]


def build_alarms(
    children: Iterable[Child],
    now: datetime,
    *,
    language: Language = Language.ES,
) -> list[Alarm]:
    """Alarms that apply at `now`, ignoring whether they already fired."""
    today = now.date()
    current_minute = minute_of_day(now)
    now_ms = int(now.timestamp() * 1000)
    out: list[Alarm] = []

    for child in children:
        for task in child.tasks:
            title = f"📅 {child.name}: {task.title}"

            if (
                task.status is TaskStatus.PENDING
                and is_due_today(task, today)
                and parse_to_minutes(task.scheduled_time) == current_minute
            ):
                out.append(
                    Alarm(
                        kind=AlarmKind.START,
                        child_id=child.id,
                        task_id=task.id,
                        title=title,
                        body=task.description or _START_BODY[language],
                        key=(AlarmKind.START.value, child.id, task.id, today.isoformat()),
                    )
                )

            if task.status is TaskStatus.ACTIVE and remaining_ms(task, now_ms) == 0:
                out.append(
                    Alarm(
                        kind=AlarmKind.TIME_UP,
                        child_id=child.id,
                        task_id=task.id,
                        title=title,
                        body=_TIME_UP_BODY[language],
                        key=(AlarmKind.TIME_UP.value, child.id, task.id, str(task.started_at_ms)),
                    )
                )
    return out


@dataclass(slots=True)
class AlarmTracker:
    """Remembers which alarms already fired today."""

    day: date | None = None
    fired: set[tuple[str, ...]] = field(default_factory=set)

    def collect(self, children: Iterable[Child], now: datetime, *, language: Language = Language.ES) -> list[Alarm]:
        if self.day != now.date():
            self.day = now.date()
            self.fired.clear()

        fresh: list[Alarm] = []
        for alarm in build_alarms(children, now, language=language):
            if alarm.key in self.fired:
                continue
            self.fired.add(alarm.key)
            fresh.append(alarm)
        return fresh


async def run_task_poller(
        state,
        notifier: Notifier,
        *,
        interval_seconds: float = 1.0,
        clock: Callable[[], datetime] = datetime.now,
) -> None:
    """
    Simple polling loop.

    Every interval_seconds:
    - read state.children and state.preferences (never writes them)
    - collect alarms that have not fired yet
    - send each via notifier.notify(...); failures are logged, not retried

    To stop the poller, cancel the coroutine/task.
    """
    sleep_s = max(0.2, float(interval_seconds))
    tracker = AlarmTracker()

    while True:
        try:
            language = getattr(getattr(state, "preferences", None), "language", Language.ES)
            alarms = tracker.collect(list(state.children), clock(), language=language)
        except Exception:
            logger.exception("alarm collection failed")
            alarms = []

        for alarm in alarms:
            try:
                await notifier.notify(title=alarm.title, body=alarm.body)
                logger.info("Alarm %s child=%s task=%s", alarm.kind.value, alarm.child_id, alarm.task_id)
            except Exception:
                logger.exception("notify failed task_id=%s kind=%s", alarm.task_id, alarm.kind.value)

        await asyncio.sleep(sleep_s)
