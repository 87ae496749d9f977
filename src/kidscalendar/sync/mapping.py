# src/kidscalendar/sync/mapping.py

"""
Row <-> domain translation at the remote boundary.

Remote rows are plain dicts with the store's column names. Everything past this
module works with typed records only; a row that cannot be translated raises
RowMappingError here and nowhere else.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import date
from typing import Any, TypeVar

from ..errors import RowMappingError
from ..family.models import (
    Child,
    Guardian,
    GuardianRole,
    Invitation,
    Language,
    Preferences,
    RedemptionRecord,
    Reward,
    RewardType,
    TimeFormat,
    UserAccount,
)
from ..tasks.task_models import Frequency, RecurrenceRule, Task, TaskCategory, TaskStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

TABLE_FAMILIES = "families"
TABLE_PROFILES = "profiles"
TABLE_CHILDREN = "children"
TABLE_TASKS = "tasks"
TABLE_REWARDS = "rewards"
TABLE_REDEMPTIONS = "redemption_history"
TABLE_INVITATIONS = "invitations"

# ---- scalar helpers ----


def as_int(raw: Any, default: int | None = 0) -> int | None:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return int(raw)
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return default


def as_str(raw: Any, default: str = "") -> str:
    if raw is None:
        return default
    return str(raw)


def as_bool(raw: Any, default: bool = False) -> bool:
    if raw is None:
        return default
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "t", "on"}
    return bool(raw)


def as_date(raw: Any) -> date | None:
    if not raw:
        return None
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        return None


def _require_id(row: Any, kind: str) -> str:
    if not isinstance(row, dict):
        raise RowMappingError(f"{kind} row is not an object: {type(row).__name__}")
    rid = row.get("id")
    if rid is None or str(rid).strip() == "":
        raise RowMappingError(f"{kind} row has no id")
    return str(rid)


def map_rows(rows: Iterable[Any], fn: Callable[[Any], T], kind: str) -> list[T]:
    """Translate rows one by one, dropping (and logging) the ones that fail."""
    out: list[T] = []
    for row in rows or []:
        try:
            out.append(fn(row))
        except RowMappingError as e:
            logger.warning("Dropping malformed %s row: %s", kind, e)
    return out


# ---- recurrence ----


def recurrence_to_dict(rule: RecurrenceRule | None) -> dict[str, Any] | None:
    if rule is None or rule.frequency is Frequency.NONE:
        return None
    return {
        "frequency": rule.frequency.value,
        "days": sorted(rule.days_of_week),
        "dayOfMonth": rule.day_of_month,
        "endDate": rule.end_date.isoformat() if rule.end_date else None,
    }


def recurrence_from_dict(raw: Any) -> RecurrenceRule | None:
    """Lenient: the column may hold JSON text, an object, or nothing."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.debug("Unreadable recurrence value %r", raw)
            return None
    if not isinstance(raw, dict):
        return None

    frequency = Frequency.from_db(raw.get("frequency"))
    if frequency is Frequency.NONE:
        return None

    days: set[int] = set()
    for d in raw.get("days") or []:
        n = as_int(d, None)
        if n is not None:
            days.add(n)

    return RecurrenceRule(
        frequency=frequency,
        days_of_week=frozenset(days),
        day_of_month=as_int(raw.get("dayOfMonth"), None),
        end_date=as_date(raw.get("endDate")),
    )


# ---- tasks ----


def task_from_row(row: Any) -> Task:
    task_id = _require_id(row, "task")
    status = TaskStatus.from_db(row.get("status"))
    return Task(
        id=task_id,
        title=as_str(row.get("title")),
        description=as_str(row.get("description")),
        reward_points=as_int(row.get("reward"), 0) or 0,
        scheduled_time=as_str(row.get("time")),
        duration_minutes=as_int(row.get("duration"), None),
        category=TaskCategory.from_db(row.get("type")),
        emoji=as_str(row.get("emoji"), "📅"),
        status=status,
        started_at_ms=as_int(row.get("start_time"), None),
        recurrence=recurrence_from_dict(row.get("recurrence")),
    )


def task_to_row(task: Task, child_id: str) -> dict[str, Any]:
    return {
        "id": task.id,
        "child_id": child_id,
        "title": task.title,
        "description": task.description,
        "reward": task.reward_points,
        "time": task.scheduled_time,
        "duration": task.duration_minutes,
        "type": task.category.value,
        "emoji": task.emoji,
        "status": task.status.value,
        "recurrence": recurrence_to_dict(task.recurrence),
        "start_time": task.started_at_ms,
    }


def task_status_patch(task: Task) -> dict[str, Any]:
    return {"status": task.status.value, "start_time": task.started_at_ms}


# ---- rewards / redemptions ----


def reward_from_row(row: Any) -> Reward:
    reward_id = _require_id(row, "reward")
    return Reward(
        id=reward_id,
        title=as_str(row.get("title")),
        cost=as_int(row.get("cost"), 0) or 0,
        category=as_str(row.get("category")),
        image_ref=as_str(row.get("image")),
        type=RewardType.from_db(row.get("type")),
    )


def reward_to_row(reward: Reward, child_id: str) -> dict[str, Any]:
    return {
        "id": reward.id,
        "child_id": child_id,
        "title": reward.title,
        "category": reward.category,
        "cost": reward.cost,
        "image": reward.image_ref,
        "type": reward.type.value,
    }


def redemption_from_row(row: Any) -> RedemptionRecord:
    rec_id = _require_id(row, "redemption")
    return RedemptionRecord(
        id=rec_id,
        reward_id=as_str(row.get("reward_id")),
        reward_title=as_str(row.get("reward_title")),
        cost=as_int(row.get("cost"), 0) or 0,
        timestamp_ms=as_int(row.get("timestamp"), 0) or 0,
        note=row.get("note") or None,
    )


def redemption_to_row(record: RedemptionRecord, child_id: str) -> dict[str, Any]:
    return {
        "id": record.id,
        "child_id": child_id,
        "reward_id": record.reward_id,
        "reward_title": record.reward_title,
        "cost": record.cost,
        "timestamp": record.timestamp_ms,
        "note": record.note,
    }


# ---- children ----


def child_from_row(row: Any) -> Child:
    """Child row, optionally with embedded tasks/rewards/redemption_history lists."""
    child_id = _require_id(row, "child")
    history = map_rows(row.get(TABLE_REDEMPTIONS) or [], redemption_from_row, "redemption")
    history.sort(key=lambda r: r.timestamp_ms, reverse=True)
    return Child(
        id=child_id,
        name=as_str(row.get("name")),
        avatar_ref=as_str(row.get("avatar")),
        level=as_int(row.get("level"), 1) or 1,
        star_balance=max(0, as_int(row.get("stars"), 0) or 0),
        active=as_bool(row.get("active"), False),
        age=as_int(row.get("age"), None),
        tasks=map_rows(row.get(TABLE_TASKS) or [], task_from_row, "task"),
        rewards=map_rows(row.get(TABLE_REWARDS) or [], reward_from_row, "reward"),
        redemption_history=history,
    )


def child_to_row(child: Child, family_id: str) -> dict[str, Any]:
    """Columns of the children table only (nested lists are separate tables)."""
    return {
        "id": child.id,
        "family_id": family_id,
        "name": child.name,
        "avatar": child.avatar_ref,
        "age": child.age,
        "level": child.level,
        "stars": child.star_balance,
        "active": child.active,
    }


# ---- profiles / family coordination ----


def guardian_from_profile(row: Any) -> Guardian:
    gid = _require_id(row, "profile")
    return Guardian(
        id=gid,
        name=as_str(row.get("full_name")) or as_str(row.get("email")) or "User",
        role=GuardianRole.from_db(row.get("role")),
        avatar=row.get("avatar_url") or None,
        email=row.get("email") or None,
    )


def preferences_from_profile(row: dict[str, Any], fallback: Preferences | None = None) -> Preferences:
    base = fallback or Preferences()
    return Preferences(
        time_format=TimeFormat.from_db(row["time_format"]) if row.get("time_format") else base.time_format,
        language=Language.from_db(row["language"]) if row.get("language") else base.language,
        learning_mode=as_bool(row.get("learning_mode"), base.learning_mode),
    )


def user_from_profile(row: Any, *, email: str = "") -> UserAccount:
    uid = _require_id(row, "profile")
    mail = as_str(row.get("email")) or email
    return UserAccount(
        id=uid,
        email=mail,
        name=as_str(row.get("full_name")) or (mail.split("@")[0] if mail else "User"),
        family_id=row.get("family_id") or None,
        avatar=row.get("avatar_url") or None,
    )


def profile_row(user: UserAccount, prefs: Preferences) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.name,
        "avatar_url": user.avatar,
        "language": prefs.language.value,
        "time_format": prefs.time_format.value,
        "learning_mode": prefs.learning_mode,
    }


def invitation_from_row(row: Any) -> Invitation:
    inv_id = _require_id(row, "invitation")
    return Invitation(
        id=inv_id,
        code=as_str(row.get("code")),
        role=GuardianRole.from_db(row.get("role")),
        expires_at=as_str(row.get("expires_at")),
        status=as_str(row.get("status"), "pending"),
        family_id=row.get("family_id") or None,
    )
