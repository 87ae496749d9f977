# src/kidscalendar/tasks/task_models.py

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum

from ..errors import TaskValidationError, ValidationIssue

MAX_TITLE_LENGTH = 35


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    pending -> active -> done. Going back to pending is an explicit edit (reset).
    """

    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.PENDING


class TaskCategory(StrEnum):
    ROUTINE = "routine"
    SCHOOL = "school"
    ACTIVITY = "activity"
    HYGIENE = "hygiene"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskCategory:
        if not raw:
            return cls.ROUTINE
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.ROUTINE


class Frequency(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def from_db(cls, raw: str | None) -> Frequency:
        if not raw:
            return cls.NONE
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.NONE


@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    """
    When a task repeats.

    days_of_week uses 0 = Sunday .. 6 = Saturday (weekly only).
    day_of_month is 1..31 (monthly only). end_date is inclusive.
    """

    frequency: Frequency = Frequency.NONE
    days_of_week: frozenset[int] = field(default_factory=frozenset)
    day_of_month: int | None = None
    end_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "days_of_week", frozenset(int(d) for d in self.days_of_week))

    @property
    def is_recurring(self) -> bool:
        return self.frequency is not Frequency.NONE

    def issues(self) -> list[ValidationIssue]:
        out: list[ValidationIssue] = []
        if self.frequency is Frequency.WEEKLY:
            if not self.days_of_week:
                out.append(ValidationIssue(0, "days_of_week", "weekly recurrence needs at least one day"))
            elif any(d < 0 or d > 6 for d in self.days_of_week):
                out.append(ValidationIssue(0, "days_of_week", "days must be between 0 (Sunday) and 6"))
        if self.frequency is Frequency.MONTHLY:
            if self.day_of_month is None or not 1 <= self.day_of_month <= 31:
                out.append(ValidationIssue(0, "day_of_month", "day of month must be between 1 and 31"))
        return out

    def is_valid(self) -> bool:
        return not self.issues()

    def validate(self) -> RecurrenceRule:
        problems = self.issues()
        if problems:
            raise TaskValidationError(problems)
        return self


@dataclass(slots=True)
class Task:
    id: str
    title: str
    scheduled_time: str
    description: str = ""
    reward_points: int = 0
    duration_minutes: int | None = None
    category: TaskCategory = TaskCategory.ROUTINE
    emoji: str = "📅"
    status: TaskStatus = TaskStatus.PENDING
    started_at_ms: int | None = None
    recurrence: RecurrenceRule | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None and self.recurrence.is_recurring


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id(prefix: str, *, at_ms: int | None = None) -> str:
    """
    Build a local id of the form "<prefix>_<epoch ms>_<random>".

    The timestamp segment lets the sync layer tell how fresh a local entity is.
    """
    ts = now_ms() if at_ms is None else int(at_ms)
    return f"{prefix}_{ts}_{uuid.uuid4().hex[:8]}"


def created_at_from_id(entity_id: str) -> int | None:
    """Return the creation timestamp (ms) encoded in an id, or None if there is none."""
    parts = (entity_id or "").split("_")
    if len(parts) < 2:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def split_long_title(title: str, description: str = "") -> tuple[str, str]:
    """Truncate an over-long title and move the full text into the description."""
    if len(title) > MAX_TITLE_LENGTH:
        shown = title[:MAX_TITLE_LENGTH].strip() + "..."
        full = title + ("\n" + description if description else "")
        return shown, full
    return title, description
