# src/kidscalendar/tasks/task_api.py

"""
Edit boundary for tasks.

User input is checked here and rejected with field-level issues before any
task is built: single tasks (build_task), pasted spreadsheet rows
(parse_pasted_table / tasks_from_table) and generated bulk lists
(tasks_from_generated).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import TaskValidationError, ValidationIssue
from .task_models import RecurrenceRule, Task, TaskCategory, TaskStatus, new_id, now_ms, split_long_title
from .timefmt import format_minutes, is_valid_duration, is_valid_time, parse_duration, parse_to_minutes

logger = logging.getLogger(__name__)

DEFAULT_TABLE_DURATION = "30"
DEFAULT_TABLE_REWARD = 5
TABLE_COLUMNS = ("time", "title", "description", "duration")

TIME_HINT = "Invalid format (Use 08:00 AM or 14:00)"


def build_task(
    *,
    title: str,
    scheduled_time: str,
    description: str = "",
    duration: str | int | None = "30",
    reward_points: int = 5,
    category: TaskCategory | str = TaskCategory.ROUTINE,
    emoji: str = "🌟",
    recurrence: RecurrenceRule | None = None,
    task_id: str | None = None,
) -> Task:
    """Validate user input and build a pending task. Raises TaskValidationError."""
    issues: list[ValidationIssue] = []
    if not (title or "").strip():
        issues.append(ValidationIssue(0, "title", "Title is required"))
    if not is_valid_time(scheduled_time):
        issues.append(ValidationIssue(0, "time", TIME_HINT))
    if not is_valid_duration(duration):
        issues.append(ValidationIssue(0, "duration", "Must be a positive number"))
    if recurrence is not None:
        issues.extend(recurrence.issues())
    if issues:
        raise TaskValidationError(issues)

    shown, full = split_long_title(title.strip(), description)
    return Task(
        id=task_id or new_id("task"),
        title=shown,
        description=full,
        scheduled_time=scheduled_time.strip().upper(),
        duration_minutes=parse_duration(duration),
        reward_points=max(0, int(reward_points)),
        category=TaskCategory.from_db(str(category)),
        emoji=emoji or "📅",
        status=TaskStatus.PENDING,
        recurrence=recurrence if recurrence is not None and recurrence.is_recurring else None,
    )


@dataclass(slots=True)
class TableRow:
    time: str = ""
    title: str = ""
    description: str = ""
    duration: str = DEFAULT_TABLE_DURATION

    def is_blank(self) -> bool:
        return not self.title.strip() and not self.time.strip()


def parse_pasted_table(
    text: str,
    rows: list[TableRow] | None = None,
    *,
    start_row: int = 0,
    start_col: int = 0,
) -> list[TableRow]:
    """
    Paste spreadsheet text into the import grid starting at (start_row, start_col).

    Lines become rows, tabs separate columns (time, title, description, duration).
    The grid grows as needed; cells outside the four columns are ignored.
    """
    grid = [TableRow(r.time, r.title, r.description, r.duration) for r in (rows or [])]
    lines = [line for line in (text or "").splitlines() if line.strip()]

    for r_offset, line in enumerate(lines):
        target = start_row + r_offset
        while target >= len(grid):
            grid.append(TableRow())
        row = grid[target]
        for c_offset, value in enumerate(line.split("\t")):
            col = start_col + c_offset
            if 0 <= col < len(TABLE_COLUMNS):
                setattr(row, TABLE_COLUMNS[col], value.strip())
    return grid


def next_row_time(rows: list[TableRow], mode: str = "12h") -> str:
    """Time for a newly added grid row: one hour after the last row."""
    last = rows[-1].time if rows else "08:00 AM"
    return format_minutes(parse_to_minutes(last) + 60, mode)


def validate_table(rows: Iterable[TableRow]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for idx, row in enumerate(r for r in rows if not r.is_blank()):
        n = idx + 1
        if not row.title.strip():
            issues.append(ValidationIssue(n, "Activity", "Title is required"))
        if not is_valid_time(row.time):
            issues.append(ValidationIssue(n, "Time", TIME_HINT))
        if not is_valid_duration(row.duration):
            issues.append(ValidationIssue(n, "Duration", "Must be a positive number"))
    return issues


def tasks_from_table(rows: Iterable[TableRow], *, at_ms: int | None = None) -> list[Task]:
    """
    Turn filled grid rows into tasks. Blank rows are skipped.

    All rows are validated first; any issue rejects the whole import.
    """
    filled = [r for r in rows if not r.is_blank()]
    issues = validate_table(filled)
    if issues:
        raise TaskValidationError(issues)

    ts = now_ms() if at_ms is None else int(at_ms)
    out: list[Task] = []
    for index, row in enumerate(filled):
        shown, full = split_long_title(row.title.strip(), row.description.strip())
        out.append(
            Task(
                id=f"table_{ts}_{index}_{uuid.uuid4().hex[:6]}",
                title=shown,
                description=full,
                scheduled_time=row.time.strip().upper(),
                duration_minutes=parse_duration(row.duration or DEFAULT_TABLE_DURATION),
                reward_points=DEFAULT_TABLE_REWARD,
                category=TaskCategory.ROUTINE,
                emoji="📅",
            )
        )
    logger.info("Table import: %d tasks", len(out))
    return out


def tasks_from_generated(items: Iterable[Mapping[str, Any]], *, at_ms: int | None = None) -> list[Task]:
    """
    Build tasks from an externally generated list (title, time, duration, reward, type, emoji).

    Items without a title or a valid time are dropped.
    """
    ts = now_ms() if at_ms is None else int(at_ms)
    out: list[Task] = []
    for item in items:
        title = str(item.get("title") or "").strip()
        time_text = str(item.get("time") or "").strip()
        if not title or not is_valid_time(time_text):
            logger.warning("Generated task dropped: %r", item)
            continue
        shown, full = split_long_title(title, str(item.get("description") or ""))
        out.append(
            Task(
                id=f"bulk_{ts}_{uuid.uuid4().hex[:8]}",
                title=shown,
                description=full,
                scheduled_time=time_text.upper(),
                duration_minutes=parse_duration(item.get("duration")),
                reward_points=parse_duration(item.get("reward")) or 0,
                category=TaskCategory.from_db(item.get("type")),
                emoji=str(item.get("emoji") or "📅"),
            )
        )
    return out
