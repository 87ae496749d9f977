# src/kidscalendar/core/state.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..errors import EntityNotFoundError
from ..family.models import Child, Guardian, Preferences, Reward, UserAccount
from ..storage.cache_store import LocalCacheStore
from ..storage.snapshot import Snapshot
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """
    In-memory family state for one running app.

    Everything that changes children, tasks or rewards goes through the methods
    below so callers never edit the lists directly. The event loop is the only
    writer; pollers and the console only read.
    """

    # Settings object (real Settings in prod, SimpleNamespace in tests).
    settings: Any
    cache: LocalCacheStore

    current_user: UserAccount | None = None
    children: list[Child] = field(default_factory=list)
    guardians: list[Guardian] = field(default_factory=list)
    preferences: Preferences = field(default_factory=Preferences)

    # ---- lookups ----

    @property
    def family_id(self) -> str | None:
        return self.current_user.family_id if self.current_user else None

    @property
    def user_id(self) -> str | None:
        return self.current_user.id if self.current_user else None

    def find_child(self, child_id: str) -> Child:
        for child in self.children:
            if child.id == child_id:
                return child
        raise EntityNotFoundError(f"no child {child_id}")

    def find_task(self, child_id: str, task_id: str) -> Task:
        task = self.find_child(child_id).find_task(task_id)
        if task is None:
            raise EntityNotFoundError(f"no task {task_id} for child {child_id}")
        return task

    def find_reward(self, child_id: str, reward_id: str) -> Reward:
        reward = self.find_child(child_id).find_reward(reward_id)
        if reward is None:
            raise EntityNotFoundError(f"no reward {reward_id} for child {child_id}")
        return reward

    def active_child(self) -> Child | None:
        for child in self.children:
            if child.active:
                return child
        return self.children[0] if self.children else None

    # ---- children ----

    def switch_active_child(self, child_id: str) -> Child:
        target = self.find_child(child_id)
        for child in self.children:
            child.active = child.id == child_id
        return target

    def add_child(self, child: Child) -> Child:
        if any(c.id == child.id for c in self.children):
            raise ValueError(f"child {child.id} already exists")
        if child.active or not self.children:
            for c in self.children:
                c.active = False
            child.active = True
        self.children.append(child)
        return child

    def upsert_child(self, child: Child) -> Child:
        for i, existing in enumerate(self.children):
            if existing.id == child.id:
                self.children[i] = child
                return child
        self.children.append(child)
        return child

    def remove_child(self, child_id: str) -> Child:
        child = self.find_child(child_id)
        self.children = [c for c in self.children if c.id != child_id]
        if child.active and self.children:
            self.children[0].active = True
        return child

    # ---- tasks ----

    def add_tasks(self, child_id: str, tasks: Iterable[Task]) -> list[Task]:
        child = self.find_child(child_id)
        added = list(tasks)
        child.tasks.extend(added)
        return added

    def replace_task(self, child_id: str, task: Task) -> Task:
        child = self.find_child(child_id)
        for i, existing in enumerate(child.tasks):
            if existing.id == task.id:
                child.tasks[i] = task
                return task
        raise EntityNotFoundError(f"no task {task.id} for child {child_id}")

    def remove_task(self, child_id: str, task_id: str) -> Task:
        task = self.find_task(child_id, task_id)
        child = self.find_child(child_id)
        child.tasks = [t for t in child.tasks if t.id != task_id]
        return task

    # ---- rewards ----

    def add_reward(self, child_id: str, reward: Reward) -> Reward:
        self.find_child(child_id).rewards.append(reward)
        return reward

    def replace_reward(self, child_id: str, reward: Reward) -> Reward:
        child = self.find_child(child_id)
        for i, existing in enumerate(child.rewards):
            if existing.id == reward.id:
                child.rewards[i] = reward
                return reward
        raise EntityNotFoundError(f"no reward {reward.id} for child {child_id}")

    def remove_reward(self, child_id: str, reward_id: str) -> Reward:
        reward = self.find_reward(child_id, reward_id)
        child = self.find_child(child_id)
        child.rewards = [r for r in child.rewards if r.id != reward_id]
        return reward

    # ---- whole-state ----

    def supersede(
        self,
        children: list[Child],
        guardians: list[Guardian],
        preferences: Preferences,
        family_id: str | None,
    ) -> None:
        """Replace everything with a fresh remote read. The local active-child choice survives."""
        previous = self.active_child()
        self.children = list(children)
        self.guardians = list(guardians)
        self.preferences = preferences
        if self.current_user is not None:
            self.current_user.family_id = family_id

        if previous is not None and any(c.id == previous.id for c in self.children):
            for c in self.children:
                c.active = c.id == previous.id
        self._settle_active()
        logger.debug("State superseded: children=%d guardians=%d", len(self.children), len(self.guardians))

    def _settle_active(self) -> None:
        """Exactly one child is active whenever there are children: the first flagged one, else the first."""
        if not self.children:
            return
        keep = next((c for c in self.children if c.active), self.children[0])
        for c in self.children:
            c.active = c is keep

    def snapshot_fields(self) -> dict[str, Any]:
        return {
            "current_user": self.current_user,
            "children": self.children,
            "guardians": self.guardians,
            "preferences": self.preferences,
        }

    def apply_snapshot(self, snapshot: Snapshot) -> None:
        self.current_user = snapshot.current_user
        self.children = list(snapshot.children)
        self.guardians = list(snapshot.guardians)
        self.preferences = snapshot.preferences
        self._settle_active()

    def persist(self) -> None:
        self.cache.save(**self.snapshot_fields())

    def clear(self) -> None:
        self.current_user = None
        self.children = []
        self.guardians = []
        self.preferences = Preferences()
