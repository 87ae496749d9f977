# src/kidscalendar/sync/reconciler.py

"""
Remote sync reconciler.

Pushes local mutations to the remote store so that every push can be repeated
safely (retry after a timeout, a second device doing the same thing):

- single records: look up by primary key, insert if absent, update if present
  (whole-record replace, last write wins; the lookup and the write are not atomic)
- batches: one multi-row insert; if the store rejects it, fall back to row by
  row so one bad row does not block the others
- a duplicate-key rejection means "already there" and counts as success

Pulling is always a full re-fetch of the family graph (fetch_family); callers
replace their in-memory state with it wholesale.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..errors import RemoteDuplicateError, RemoteError, TransientRemoteError
from ..family.models import Child, Guardian, Preferences, RedemptionRecord, Reward
from ..tasks.task_models import Task, created_at_from_id, now_ms
from .calls import RemoteCaller
from .mapping import (
    TABLE_CHILDREN,
    TABLE_PROFILES,
    TABLE_REDEMPTIONS,
    TABLE_REWARDS,
    TABLE_TASKS,
    child_from_row,
    child_to_row,
    guardian_from_profile,
    map_rows,
    preferences_from_profile,
    redemption_to_row,
    reward_to_row,
    task_status_patch,
    task_to_row,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RowFailure:
    entity_id: str
    error: str


@dataclass(slots=True)
class SyncResult:
    """Outcome of one push. Pushes never raise; they report."""

    entity: str
    entity_id: str
    action: str
    ok: bool = True
    skipped: bool = False
    error: str | None = None
    failures: list[RowFailure] = field(default_factory=list)
    children: list[SyncResult] = field(default_factory=list)

    @property
    def fully_ok(self) -> bool:
        return self.ok and not self.failures and all(c.fully_ok for c in self.children)


@dataclass(slots=True)
class FamilyFetch:
    """Everything a full re-fetch returns for one signed-in user."""

    family_id: str | None
    preferences: Preferences
    children: list[Child]
    guardians: list[Guardian]
    profile: dict[str, Any]


def _strip_id(row: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in row.items() if k != "id"}


class SyncReconciler:
    def __init__(self, caller: RemoteCaller, *, guard_window_s: float = 5.0) -> None:
        self._caller = caller
        self._remote = caller.remote
        self.guard_window_s = max(0.0, float(guard_window_s))

    # ---- helpers ----

    async def exists(self, table: str, row_id: str) -> bool:
        row = await self._caller.read(
            f"select {table}/{row_id}", lambda: self._remote.select_by_id(table, row_id)
        )
        return row is not None

    async def _insert_one(self, table: str, row: dict[str, Any]) -> bool:
        """Insert a single row. Returns False when it was already there."""
        try:
            await self._caller.write(f"insert {table}/{row['id']}", lambda: self._remote.insert_rows(table, [row]))
            return True
        except RemoteDuplicateError:
            logger.debug("%s/%s already present", table, row["id"])
            return False

    async def _upsert(self, entity: str, table: str, row: dict[str, Any]) -> SyncResult:
        row_id = str(row["id"])
        try:
            if await self.exists(table, row_id):
                await self._caller.write(
                    f"update {table}/{row_id}", lambda: self._remote.update_row(table, row_id, _strip_id(row))
                )
                return SyncResult(entity, row_id, "update")

            if await self._insert_one(table, row):
                return SyncResult(entity, row_id, "insert")

            # Lost the race with another writer: it exists now, overwrite it.
            await self._caller.write(
                f"update {table}/{row_id}", lambda: self._remote.update_row(table, row_id, _strip_id(row))
            )
            return SyncResult(entity, row_id, "update")
        except RemoteError as e:
            logger.error("Sync: failed to push %s %s: %s", entity, row_id, e)
            return SyncResult(entity, row_id, "upsert", ok=False, error=str(e))

    async def _batch_insert(self, entity: str, table: str, rows: Sequence[dict[str, Any]], owner_id: str) -> SyncResult:
        result = SyncResult(entity, owner_id, "batch_insert")
        if not rows:
            return result

        try:
            await self._caller.write(f"insert {table} x{len(rows)}", lambda: self._remote.insert_rows(table, list(rows)))
            return result
        except TransientRemoteError as e:
            logger.error("Sync: batch insert into %s failed: %s", table, e)
            result.ok = False
            result.error = str(e)
            return result
        except RemoteError as e:
            logger.warning("Sync: batch insert into %s rejected (%s); retrying row by row", table, e)

        for row in rows:
            row_id = str(row.get("id"))
            try:
                await self._insert_one(table, row)
            except RemoteError as e:
                logger.error("Sync: %s %s rejected: %s", entity, row_id, e)
                result.failures.append(RowFailure(row_id, str(e)))
        return result

    def is_fresh(self, entity_id: str, at_ms: int | None = None) -> bool:
        """True while a locally created entity is inside the guard window."""
        created = created_at_from_id(entity_id)
        if created is None or not self.guard_window_s:
            return False
        current = now_ms() if at_ms is None else at_ms
        return 0 <= current - created < self.guard_window_s * 1000

    # ---- children ----

    async def push_child(self, child: Child, family_id: str, *, deep: bool = False) -> SyncResult:
        """
        Upsert one child.

        New children go up together with their tasks, rewards and history (batch inserts).
        For a child that already exists only its own row is replaced, unless deep=True,
        in which case every task and reward is upserted as well.
        """
        row = child_to_row(child, family_id)
        try:
            present = await self.exists(TABLE_CHILDREN, child.id)
        except RemoteError as e:
            logger.error("Sync: cannot check child %s: %s", child.id, e)
            return SyncResult("child", child.id, "upsert", ok=False, error=str(e))

        if present:
            result = await self._upsert("child", TABLE_CHILDREN, row)
            if deep and result.ok:
                for task in child.tasks:
                    result.children.append(await self.push_task(task, child.id))
                for reward in child.rewards:
                    result.children.append(await self.push_reward(reward, child.id))
            return result

        result = await self.insert_child_graph(child, family_id)
        if result.skipped:
            # Someone else inserted it in between: replace it instead.
            return await self._upsert("child", TABLE_CHILDREN, row)
        return result

    async def insert_child_graph(self, child: Child, family_id: str) -> SyncResult:
        """
        Insert a child that is not yet remote, then its tasks, rewards and history.

        A duplicate child row means it is already there: nothing else is written
        and the result is marked skipped.
        """
        try:
            inserted = await self._insert_one(TABLE_CHILDREN, child_to_row(child, family_id))
        except RemoteError as e:
            logger.error("Sync: failed to insert child %s: %s", child.name, e)
            return SyncResult("child", child.id, "insert", ok=False, error=str(e))

        if not inserted:
            return SyncResult("child", child.id, "skip", skipped=True)

        result = SyncResult("child", child.id, "insert")
        result.children.append(await self.push_tasks_batch(child.tasks, child.id))
        result.children.append(await self.push_rewards_batch(child.rewards, child.id))
        result.children.append(
            await self._batch_insert(
                "redemption", TABLE_REDEMPTIONS,
                [redemption_to_row(r, child.id) for r in child.redemption_history], child.id,
            )
        )
        logger.info("Sync: child %s inserted", child.name)
        return result

    async def upload_family(self, children: Sequence[Child], family_id: str, *, at_ms: int | None = None) -> list[SyncResult]:
        """Push every child (deep). Children still inside the guard window are skipped."""
        results: list[SyncResult] = []
        for child in children:
            if self.is_fresh(child.id, at_ms):
                logger.info("Sync: skipping brand new child %s", child.id)
                results.append(SyncResult("child", child.id, "skip", skipped=True))
                continue
            results.append(await self.push_child(child, family_id, deep=True))
        return results

    async def delete_child(self, child_id: str) -> SyncResult:
        return await self._delete("child", TABLE_CHILDREN, child_id)

    async def update_child_stars(self, child: Child) -> SyncResult:
        return await self._patch("child", TABLE_CHILDREN, child.id, {"stars": child.star_balance})

    async def update_child_active(self, child: Child) -> SyncResult:
        return await self._patch("child", TABLE_CHILDREN, child.id, {"active": child.active})

    # ---- tasks ----

    async def push_task(self, task: Task, child_id: str) -> SyncResult:
        return await self._upsert("task", TABLE_TASKS, task_to_row(task, child_id))

    async def push_tasks_batch(self, tasks: Sequence[Task], child_id: str) -> SyncResult:
        return await self._batch_insert("task", TABLE_TASKS, [task_to_row(t, child_id) for t in tasks], child_id)

    async def update_task_status(self, task: Task) -> SyncResult:
        return await self._patch("task", TABLE_TASKS, task.id, task_status_patch(task))

    async def delete_task(self, task_id: str) -> SyncResult:
        return await self._delete("task", TABLE_TASKS, task_id)

    # ---- rewards ----

    async def push_reward(self, reward: Reward, child_id: str) -> SyncResult:
        return await self._upsert("reward", TABLE_REWARDS, reward_to_row(reward, child_id))

    async def push_rewards_batch(self, rewards: Sequence[Reward], child_id: str) -> SyncResult:
        return await self._batch_insert("reward", TABLE_REWARDS, [reward_to_row(r, child_id) for r in rewards], child_id)

    async def delete_reward(self, reward_id: str) -> SyncResult:
        return await self._delete("reward", TABLE_REWARDS, reward_id)

    async def record_redemption(self, record: RedemptionRecord, child_id: str) -> SyncResult:
        row = redemption_to_row(record, child_id)
        try:
            inserted = await self._insert_one(TABLE_REDEMPTIONS, row)
        except RemoteError as e:
            logger.error("Sync: failed to record redemption %s: %s", record.id, e)
            return SyncResult("redemption", record.id, "insert", ok=False, error=str(e))
        return SyncResult("redemption", record.id, "insert" if inserted else "skip", skipped=not inserted)

    # ---- profile ----

    async def update_preference(self, user_id: str, key: str, value: Any) -> SyncResult:
        return await self._patch("profile", TABLE_PROFILES, user_id, {key: value})

    # ---- shared write shapes ----

    async def _patch(self, entity: str, table: str, row_id: str, patch: dict[str, Any]) -> SyncResult:
        try:
            await self._caller.write(f"update {table}/{row_id}", lambda: self._remote.update_row(table, row_id, patch))
            return SyncResult(entity, row_id, "update")
        except RemoteError as e:
            logger.error("Sync: failed to update %s %s: %s", entity, row_id, e)
            return SyncResult(entity, row_id, "update", ok=False, error=str(e))

    async def _delete(self, entity: str, table: str, row_id: str) -> SyncResult:
        try:
            await self._caller.write(f"delete {table}/{row_id}", lambda: self._remote.delete_row(table, row_id))
            return SyncResult(entity, row_id, "delete")
        except RemoteError as e:
            logger.error("Sync: failed to delete %s %s: %s", entity, row_id, e)
            return SyncResult(entity, row_id, "delete", ok=False, error=str(e))

    # ---- full re-fetch ----

    async def fetch_family(self, user_id: str, *, fallback_prefs: Preferences | None = None) -> FamilyFetch | None:
        """
        Read the user's profile and the whole family graph.

        Returns None when the profile is not visible (signed out, not authorized).
        Transient failures propagate as TransientRemoteError.
        """
        profile = await self._caller.read(
            f"select {TABLE_PROFILES}/{user_id}", lambda: self._remote.select_by_id(TABLE_PROFILES, user_id)
        )
        if profile is None:
            logger.info("Refetch: no visible profile for user %s", user_id)
            return None

        prefs = preferences_from_profile(profile, fallback_prefs)
        family_id = profile.get("family_id") or None
        if not family_id:
            return FamilyFetch(None, prefs, [], [], profile)

        child_rows = await self._caller.read(
            f"select family {family_id}", lambda: self._remote.fetch_family_children(family_id)
        )
        profile_rows = await self._caller.read(
            f"select {TABLE_PROFILES} family={family_id}",
            lambda: self._remote.select_where(TABLE_PROFILES, {"family_id": family_id}),
        )
        children = map_rows(child_rows, child_from_row, "child")
        guardians = map_rows(profile_rows, guardian_from_profile, "profile")
        logger.info("Refetch: family %s children=%d guardians=%d", family_id, len(children), len(guardians))
        return FamilyFetch(str(family_id), prefs, children, guardians, profile)
