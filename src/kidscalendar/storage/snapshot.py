# src/kidscalendar/storage/snapshot.py

"""
Local snapshot format.

The blob keeps the key names of the original web client's local storage
("kidscalendar_db_v1") so an existing install can be read and migrated as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..errors import RowMappingError
from ..family.models import (
    Child,
    Guardian,
    Language,
    Preferences,
    RedemptionRecord,
    Reward,
    RewardType,
    TimeFormat,
    UserAccount,
)
from ..sync.mapping import (
    as_bool,
    as_int,
    as_str,
    guardian_from_profile,
    map_rows,
    recurrence_from_dict,
    recurrence_to_dict,
)
from ..tasks.task_models import Task, TaskCategory, TaskStatus

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass(slots=True)
class Snapshot:
    current_user: UserAccount | None = None
    children: list[Child] = field(default_factory=list)
    guardians: list[Guardian] = field(default_factory=list)
    preferences: Preferences = field(default_factory=Preferences)
    last_updated: str = ""


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def default_snapshot() -> Snapshot:
    return Snapshot(last_updated=utc_now_iso())


# ---- encode ----


def task_to_json(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "reward": task.reward_points,
        "time": task.scheduled_time,
        "duration": str(task.duration_minutes) if task.duration_minutes else None,
        "startTime": task.started_at_ms,
        "type": task.category.value,
        "status": task.status.value,
        "emoji": task.emoji,
        "recurrence": recurrence_to_dict(task.recurrence),
    }


def reward_to_json(reward: Reward) -> dict[str, Any]:
    return {
        "id": reward.id,
        "title": reward.title,
        "category": reward.category,
        "cost": reward.cost,
        "image": reward.image_ref,
        "type": reward.type.value,
    }


def redemption_to_json(record: RedemptionRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "rewardId": record.reward_id,
        "rewardTitle": record.reward_title,
        "cost": record.cost,
        "timestamp": record.timestamp_ms,
        "note": record.note,
    }


def child_to_json(child: Child) -> dict[str, Any]:
    return {
        "id": child.id,
        "name": child.name,
        "age": child.age,
        "level": child.level,
        "stars": child.star_balance,
        "avatar": child.avatar_ref,
        "active": child.active,
        "tasks": [task_to_json(t) for t in child.tasks],
        "rewards": [reward_to_json(r) for r in child.rewards],
        "redemptionHistory": [redemption_to_json(r) for r in child.redemption_history],
    }


def guardian_to_json(g: Guardian) -> dict[str, Any]:
    return {"id": g.id, "name": g.name, "role": g.role.value, "avatar": g.avatar, "email": g.email}


def user_to_json(user: UserAccount | None) -> dict[str, Any] | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "familyId": user.family_id,
        "avatar": user.avatar,
    }


def encode_fields(**partial: Any) -> dict[str, Any]:
    """Encode snapshot fields (python names) into blob keys."""
    out: dict[str, Any] = {}
    for name, value in partial.items():
        if name == "current_user":
            out["currentUser"] = user_to_json(value)
        elif name == "children":
            out["children"] = [child_to_json(c) for c in value]
        elif name == "guardians":
            out["guardians"] = [guardian_to_json(g) for g in value]
        elif name == "preferences":
            out["timeFormat"] = value.time_format.value
            out["language"] = value.language.value
            out["learningMode"] = value.learning_mode
        else:
            raise ValueError(f"unknown snapshot field: {name}")
    return out


# ---- decode ----


def _require_obj(raw: Any, kind: str) -> dict[str, Any]:
    if not isinstance(raw, dict) or not raw.get("id"):
        raise RowMappingError(f"{kind} entry without id")
    return raw


def task_from_json(raw: Any) -> Task:
    d = _require_obj(raw, "task")
    return Task(
        id=str(d["id"]),
        title=as_str(d.get("title")),
        description=as_str(d.get("description")),
        reward_points=as_int(d.get("reward"), 0) or 0,
        scheduled_time=as_str(d.get("time")),
        duration_minutes=as_int(d.get("duration"), None),
        category=TaskCategory.from_db(d.get("type")),
        emoji=as_str(d.get("emoji"), "📅"),
        status=TaskStatus.from_db(d.get("status")),
        started_at_ms=as_int(d.get("startTime"), None),
        recurrence=recurrence_from_dict(d.get("recurrence")),
    )


def reward_from_json(raw: Any) -> Reward:
    d = _require_obj(raw, "reward")
    return Reward(
        id=str(d["id"]),
        title=as_str(d.get("title")),
        cost=as_int(d.get("cost"), 0) or 0,
        category=as_str(d.get("category")),
        image_ref=as_str(d.get("image")),
        type=RewardType.from_db(d.get("type")),
    )


def redemption_from_json(raw: Any) -> RedemptionRecord:
    d = _require_obj(raw, "redemption")
    return RedemptionRecord(
        id=str(d["id"]),
        reward_id=as_str(d.get("rewardId")),
        reward_title=as_str(d.get("rewardTitle")),
        cost=as_int(d.get("cost"), 0) or 0,
        timestamp_ms=as_int(d.get("timestamp"), 0) or 0,
        note=d.get("note") or None,
    )


def child_from_json(raw: Any) -> Child:
    d = _require_obj(raw, "child")
    return Child(
        id=str(d["id"]),
        name=as_str(d.get("name")),
        avatar_ref=as_str(d.get("avatar")),
        level=as_int(d.get("level"), 1) or 1,
        star_balance=max(0, as_int(d.get("stars"), 0) or 0),
        active=as_bool(d.get("active")),
        age=as_int(d.get("age"), None),
        tasks=map_rows(d.get("tasks") or [], task_from_json, "task"),
        rewards=map_rows(d.get("rewards") or [], reward_from_json, "reward"),
        redemption_history=map_rows(d.get("redemptionHistory") or [], redemption_from_json, "redemption"),
    )


def _guardian_from_json(raw: Any) -> Guardian:
    d = _require_obj(raw, "guardian")
    # Same shape as a profile row apart from the key names.
    return guardian_from_profile(
        {"id": d["id"], "full_name": d.get("name"), "role": d.get("role"),
         "avatar_url": d.get("avatar"), "email": d.get("email")}
    )


def _user_from_json(raw: Any) -> UserAccount | None:
    if not isinstance(raw, dict):
        return None
    return UserAccount(
        id=raw.get("id") or None,
        email=as_str(raw.get("email")),
        name=as_str(raw.get("name")),
        family_id=raw.get("familyId") or None,
        avatar=raw.get("avatar") or None,
    )


def decode_snapshot(blob: Any) -> Snapshot:
    """Lenient decode: unknown or malformed pieces fall back to defaults."""
    if not isinstance(blob, dict):
        raise RowMappingError("snapshot is not an object")
    return Snapshot(
        current_user=_user_from_json(blob.get("currentUser")),
        children=map_rows(blob.get("children") or [], child_from_json, "child"),
        guardians=map_rows(blob.get("guardians") or [], _guardian_from_json, "guardian"),
        preferences=Preferences(
            time_format=TimeFormat.from_db(blob.get("timeFormat")),
            language=Language.from_db(blob.get("language")),
            learning_mode=as_bool(blob.get("learningMode")),
        ),
        last_updated=as_str(blob.get("lastUpdated")),
    )
