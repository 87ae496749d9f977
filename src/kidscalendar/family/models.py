# src/kidscalendar/family/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from ..tasks.task_models import Task


class RewardType(StrEnum):
    SCREEN = "screen"
    TOY = "toy"
    TREAT = "treat"

    @classmethod
    def from_db(cls, raw: str | None) -> RewardType:
        if not raw:
            return cls.TOY
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.TOY


class GuardianRole(StrEnum):
    ADMIN = "Admin"
    CO_PARENT = "Co-Parent"
    GUARDIAN = "Guardian"

    @classmethod
    def from_db(cls, raw: str | None) -> GuardianRole:
        for role in cls:
            if raw and role.value.lower() == str(raw).strip().lower():
                return role
        return cls.ADMIN


class TimeFormat(StrEnum):
    H12 = "12h"
    H24 = "24h"

    @classmethod
    def from_db(cls, raw: str | None) -> TimeFormat:
        return cls.H24 if str(raw or "").strip().lower() == "24h" else cls.H12


class Language(StrEnum):
    EN = "en"
    ES = "es"

    @classmethod
    def from_db(cls, raw: str | None) -> Language:
        return cls.EN if str(raw or "").strip().lower() == "en" else cls.ES


@dataclass(slots=True)
class Reward:
    id: str
    title: str
    cost: int
    category: str = ""
    image_ref: str = ""
    type: RewardType = RewardType.TOY


@dataclass(frozen=True, slots=True)
class RedemptionRecord:
    """Append-only audit entry written once per successful redemption."""

    id: str
    reward_id: str
    reward_title: str
    cost: int
    timestamp_ms: int
    note: str | None = None


@dataclass(slots=True)
class Child:
    id: str
    name: str
    avatar_ref: str = ""
    level: int = 1
    star_balance: int = 0
    active: bool = False
    age: int | None = None
    tasks: list[Task] = field(default_factory=list)
    rewards: list[Reward] = field(default_factory=list)
    redemption_history: list[RedemptionRecord] = field(default_factory=list)

    def find_task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_reward(self, reward_id: str) -> Reward | None:
        return next((r for r in self.rewards if r.id == reward_id), None)


@dataclass(slots=True)
class Guardian:
    id: str
    name: str
    role: GuardianRole = GuardianRole.ADMIN
    avatar: str | None = None
    email: str | None = None


@dataclass(slots=True)
class UserAccount:
    email: str
    name: str
    id: str | None = None
    family_id: str | None = None
    avatar: str | None = None


@dataclass(slots=True)
class Preferences:
    time_format: TimeFormat = TimeFormat.H12
    language: Language = Language.ES
    learning_mode: bool = False


@dataclass(frozen=True, slots=True)
class Invitation:
    id: str
    code: str
    role: GuardianRole
    expires_at: str
    status: str = "pending"
    family_id: str | None = None
