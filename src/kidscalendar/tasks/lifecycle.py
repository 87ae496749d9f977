# src/kidscalendar/tasks/lifecycle.py

"""
Task lifecycle state machine.

Statuses move pending -> active -> done on explicit user actions. Going back
to pending is a separate edit (reset). Two wall-clock projections live here as
well, and neither of them changes `status`:

- is_currently_due(): now falls inside [scheduled, scheduled + duration)
- remaining_ms(): countdown of an active task, clamped at zero
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..errors import InvalidTransitionError
from .task_models import Task, TaskStatus
from .timefmt import MINUTES_PER_DAY, parse_to_minutes

logger = logging.getLogger(__name__)

_MS_PER_MINUTE = 60_000


def start(task: Task, now_ms: int) -> Task:
    """pending -> active; records the start time."""
    if task.status is not TaskStatus.PENDING:
        raise InvalidTransitionError(f"cannot start task {task.id} from {task.status.value}")
    task.status = TaskStatus.ACTIVE
    task.started_at_ms = int(now_ms)
    logger.debug("Task %s -> active at %s", task.id, task.started_at_ms)
    return task


def complete(task: Task, *, allow_from_pending: bool = False) -> Task:
    """active -> done. Does not touch any star balance."""
    allowed = {TaskStatus.ACTIVE}
    if allow_from_pending:
        allowed.add(TaskStatus.PENDING)
    if task.status not in allowed:
        raise InvalidTransitionError(f"cannot complete task {task.id} from {task.status.value}")
    task.status = TaskStatus.DONE
    logger.debug("Task %s -> done", task.id)
    return task


def reset(task: Task) -> Task:
    """Edit operation: back to pending and forget the start time."""
    task.status = TaskStatus.PENDING
    task.started_at_ms = None
    return task


def minute_of_day(now: datetime) -> int:
    return now.hour * 60 + now.minute


def is_currently_due(task: Task, now: datetime) -> bool:
    """Advisory "right now" flag for the UI. Independent of status."""
    begin = parse_to_minutes(task.scheduled_time)
    end = begin + int(task.duration_minutes or 0)
    current = minute_of_day(now)
    if end > MINUTES_PER_DAY and current < begin:
        # Window runs past midnight.
        current += MINUTES_PER_DAY
    return begin <= current < end


def remaining_ms(task: Task, now_ms: int) -> int | None:
    """Milliseconds left on an active task; None when there is no countdown."""
    if task.status is not TaskStatus.ACTIVE or not task.duration_minutes or task.started_at_ms is None:
        return None
    end_ms = task.started_at_ms + int(task.duration_minutes) * _MS_PER_MINUTE
    return max(0, end_ms - int(now_ms))


def progress(task: Task, now_ms: int) -> float | None:
    """Percent of the duration still remaining (100 at start, 0 when over)."""
    left = remaining_ms(task, now_ms)
    if left is None:
        return None
    total = int(task.duration_minutes or 0) * _MS_PER_MINUTE
    return (left / total) * 100 if total else 0.0


def format_countdown(ms: int | None) -> str:
    if ms is None:
        return "--:--"
    total_s = max(0, int(ms)) // 1000
    mins, secs = divmod(total_s, 60)
    return f"{mins:02d}:{secs:02d}"


def sort_by_schedule(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: parse_to_minutes(t.scheduled_time))


def current_task(tasks: list[Task], now: datetime) -> Task | None:
    """First task (in schedule order) whose time window contains `now`."""
    for task in sort_by_schedule(tasks):
        if is_currently_due(task, now):
            return task
    return None
