# src/kidscalendar/core/service.py

"""
Family service: the one place UI actions go through.

Every mutation follows the same path:
1. change the in-memory AppState (optimistic, never rolled back)
2. persist the snapshot to the local cache
3. spawn a sync job (asyncio.Task resolving to a SyncResult) when a remote session exists

Failed jobs are reported through the StatusReporter port; they never raise into the UI.
Pulling is a full re-fetch (refresh), usually triggered by the realtime listener.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from ..errors import KidsCalendarError, TransientRemoteError
from ..family import rewards
from ..family.models import (
    Child,
    GuardianRole,
    Invitation,
    Language,
    Preferences,
    RedemptionRecord,
    Reward,
    TimeFormat,
    UserAccount,
)
from ..sync.family import FamilyDirectory
from ..sync.migration import MigrationReport, MigrationRunner
from ..sync.realtime import RealtimeListener
from ..sync.reconciler import SyncReconciler, SyncResult
from ..tasks import lifecycle
from ..tasks.task_models import Task, new_id, now_ms
from .ports import StatusReporter
from .state import AppState

logger = logging.getLogger(__name__)


class _LogReporter:
    def report(self, kind: str, message: str) -> None:
        level = logging.ERROR if kind == "error" else logging.INFO
        logger.log(level, "[%s] %s", kind, message)


class FamilyService:
    def __init__(
        self,
        state: AppState,
        *,
        reconciler: SyncReconciler | None = None,
        directory: FamilyDirectory | None = None,
        realtime: RealtimeListener | None = None,
        reporter: StatusReporter | None = None,
        sign_out: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self.state = state
        self.reconciler = reconciler
        self.directory = directory
        self.realtime = realtime
        self.reporter: StatusReporter = reporter or _LogReporter()
        self._sign_out = sign_out
        self._jobs: set[asyncio.Task[SyncResult | list[SyncResult]]] = set()
        self._results: list[SyncResult] = []

    # ---- settings ----

    @property
    def credit_on_completion(self) -> bool:
        return bool(getattr(self.state.settings, "credit_stars_on_completion", False))

    @property
    def online(self) -> bool:
        return self.reconciler is not None and bool(self.state.family_id)

    # ---- sync jobs ----

    def _spawn(self, label: str, factory: Callable[[SyncReconciler, str], Awaitable[Any]]) -> asyncio.Task | None:
        if not self.online or self.reconciler is None:
            logger.debug("Offline, %s kept local only", label)
            return None
        reconciler = self.reconciler
        family_id = str(self.state.family_id)

        job = asyncio.create_task(factory(reconciler, family_id), name=f"sync:{label}")
        self._jobs.add(job)
        job.add_done_callback(lambda t: self._job_done(label, t))
        return job

    def _job_done(self, label: str, job: asyncio.Task) -> None:
        self._jobs.discard(job)
        if job.cancelled():
            return
        exc = job.exception()
        if exc is not None:
            logger.error("Sync job %s crashed", label, exc_info=exc)
            self.reporter.report("error", f"Sync failed: {label}")
            return
        result = job.result()
        results = result if isinstance(result, list) else [result]
        self._results.extend(results)
        failed = [r for r in results if not r.fully_ok]
        if failed:
            first = failed[0]
            detail = first.error or (first.failures[0].error if first.failures else "partial failure")
            self.reporter.report("error", f"Sync failed: {label} ({detail})")

    async def drain(self) -> list[SyncResult]:
        """Wait for every in-flight sync job; return the results collected since the last drain."""
        while self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)
        # Let done-callbacks run.
        await asyncio.sleep(0)
        out, self._results = self._results, []
        return out

    def persist(self) -> None:
        self.state.persist()

    # ---- task lifecycle ----

    def start_task(self, child_id: str, task_id: str, *, at_ms: int | None = None) -> Task:
        task = lifecycle.start(self.state.find_task(child_id, task_id), now_ms() if at_ms is None else at_ms)
        self.persist()
        self._spawn(f"start {task.id}", lambda r, _f: r.update_task_status(task))
        return task

    def complete_task(self, child_id: str, task_id: str, *, allow_from_pending: bool = True) -> Task:
        child = self.state.find_child(child_id)
        task = lifecycle.complete(self.state.find_task(child_id, task_id), allow_from_pending=allow_from_pending)
        credited = False
        if self.credit_on_completion and task.reward_points > 0:
            rewards.credit_completion(child, task)
            credited = True
        self.persist()

        async def push(r: SyncReconciler, _family_id: str) -> list[SyncResult]:
            results = [await r.update_task_status(task)]
            if credited:
                results.append(await r.update_child_stars(child))
            return results

        self._spawn(f"complete {task.id}", push)
        return task

    def reset_task(self, child_id: str, task_id: str) -> Task:
        task = lifecycle.reset(self.state.find_task(child_id, task_id))
        self.persist()
        self._spawn(f"reset {task.id}", lambda r, _f: r.update_task_status(task))
        return task

    # ---- rewards ----

    def redeem(self, child_id: str, reward_id: str, *, note: str | None = None, at_ms: int | None = None) -> RedemptionRecord:
        child = self.state.find_child(child_id)
        reward = self.state.find_reward(child_id, reward_id)
        record = rewards.redeem(child, reward, at_ms=at_ms, note=note)
        self.persist()

        async def push(r: SyncReconciler, _family_id: str) -> list[SyncResult]:
            return [await r.update_child_stars(child), await r.record_redemption(record, child.id)]

        self._spawn(f"redeem {reward.id}", push)
        return record

    # ---- children ----

    def add_child(self, name: str, *, avatar_ref: str = "", age: int | None = None, at_ms: int | None = None) -> Child:
        child = self.state.add_child(Child(id=new_id("c", at_ms=at_ms), name=name, avatar_ref=avatar_ref, age=age))
        self.persist()
        self._spawn(f"add child {child.id}", lambda r, f: r.push_child(child, f))
        return child

    def update_child(self, child: Child) -> Child:
        self.state.upsert_child(child)
        self.persist()
        self._spawn(f"update child {child.id}", lambda r, f: r.push_child(child, f))
        return child

    def remove_child(self, child_id: str) -> Child:
        child = self.state.remove_child(child_id)
        self.persist()
        self._spawn(f"delete child {child_id}", lambda r, _f: r.delete_child(child_id))
        return child

    def switch_active_child(self, child_id: str) -> Child:
        before = {c.id: c.active for c in self.state.children}
        child = self.state.switch_active_child(child_id)
        self.persist()
        changed = [c for c in self.state.children if before.get(c.id) != c.active]

        async def push(r: SyncReconciler, _family_id: str) -> list[SyncResult]:
            return [await r.update_child_active(c) for c in changed]

        if changed:
            self._spawn(f"switch to {child_id}", push)
        return child

    # ---- tasks ----

    def add_tasks(self, child_id: str, tasks: Iterable[Task]) -> list[Task]:
        added = self.state.add_tasks(child_id, tasks)
        self.persist()
        if added:
            self._spawn(f"add {len(added)} tasks", lambda r, _f: r.push_tasks_batch(added, child_id))
        return added

    def add_task(self, child_id: str, task: Task) -> Task:
        self.state.add_tasks(child_id, [task])
        self.persist()
        self._spawn(f"add task {task.id}", lambda r, _f: r.push_task(task, child_id))
        return task

    def update_task(self, child_id: str, task: Task) -> Task:
        self.state.replace_task(child_id, task)
        self.persist()
        self._spawn(f"update task {task.id}", lambda r, _f: r.push_task(task, child_id))
        return task

    def remove_task(self, child_id: str, task_id: str) -> Task:
        task = self.state.remove_task(child_id, task_id)
        self.persist()
        self._spawn(f"delete task {task_id}", lambda r, _f: r.delete_task(task_id))
        return task

    # ---- rewards catalog ----

    def add_reward(self, child_id: str, reward: Reward) -> Reward:
        if reward.cost <= 0:
            raise ValueError("reward cost must be positive")
        self.state.add_reward(child_id, reward)
        self.persist()
        self._spawn(f"add reward {reward.id}", lambda r, _f: r.push_reward(reward, child_id))
        return reward

    def update_reward(self, child_id: str, reward: Reward) -> Reward:
        if reward.cost <= 0:
            raise ValueError("reward cost must be positive")
        self.state.replace_reward(child_id, reward)
        self.persist()
        self._spawn(f"update reward {reward.id}", lambda r, _f: r.push_reward(reward, child_id))
        return reward

    def remove_reward(self, child_id: str, reward_id: str) -> Reward:
        reward = self.state.remove_reward(child_id, reward_id)
        self.persist()
        self._spawn(f"delete reward {reward_id}", lambda r, _f: r.delete_reward(reward_id))
        return reward

    # ---- preferences ----

    def set_preference(self, key: str, value: Any) -> Preferences:
        prefs = self.state.preferences
        if key == "time_format":
            prefs.time_format = TimeFormat.from_db(str(value))
            stored: Any = prefs.time_format.value
        elif key == "language":
            prefs.language = Language.from_db(str(value))
            stored = prefs.language.value
        elif key == "learning_mode":
            prefs.learning_mode = bool(value)
            stored = prefs.learning_mode
        else:
            raise ValueError(f"unknown preference: {key}")
        self.persist()

        user_id = self.state.user_id
        if user_id:
            self._spawn(f"preference {key}", lambda r, _f: r.update_preference(user_id, key, stored))
        return prefs

    # ---- session ----

    async def sign_in(self, user: UserAccount) -> UserAccount:
        """Attach a remote session: profile, one-time migration, first re-fetch, realtime."""
        if self.directory is not None:
            user = await self.directory.ensure_profile(user, self.state.preferences)
        self.state.current_user = user
        self.persist()
        await self._connect()
        return user

    async def _connect(self) -> None:
        """Migration, first re-fetch and the realtime subscription for the current family."""
        if self.state.user_id and self.state.family_id and self.reconciler is not None:
            report = await self.migrate()
            if not report.ok:
                self.reporter.report("error", "Local data could not be migrated; it stays on this device.")
        await self.refresh()
        # Subscribe on the known family id even when the first fetch failed.
        if self.realtime is not None and self.state.family_id:
            await self.realtime.set_family(self.state.family_id)

    def _require_directory(self) -> tuple[FamilyDirectory, str]:
        if self.directory is None or not self.state.user_id:
            raise KidsCalendarError("Not signed in to the server.")
        return self.directory, self.state.user_id

    async def create_family(self, name: str) -> str:
        directory, user_id = self._require_directory()
        family_id = await directory.create_family(user_id, name)
        await self._attach_family(family_id)
        return family_id

    async def join_family(self, code: str) -> str:
        directory, user_id = self._require_directory()
        family_id = await directory.join_family(user_id, code)
        await self._attach_family(family_id)
        return family_id

    async def _attach_family(self, family_id: str) -> None:
        assert self.state.current_user is not None
        self.state.current_user.family_id = family_id
        self.persist()
        self.reporter.report("success", f"Connected to family {family_id}.")
        await self._connect()

    async def invite(self, role: GuardianRole = GuardianRole.CO_PARENT) -> Invitation:
        directory, _ = self._require_directory()
        if not self.state.family_id:
            raise KidsCalendarError("Create or join a family first.")
        return await directory.generate_invitation_code(self.state.family_id, role)

    async def migrate(self) -> MigrationReport:
        if self.reconciler is None or not self.state.user_id or not self.state.family_id:
            return MigrationReport(ok=True, skipped=True)
        runner = MigrationRunner(self.state.cache, self.reconciler)
        return await runner.run(self.state.user_id, self.state.family_id)

    async def refresh(self) -> bool:
        """Full re-fetch; replaces in-memory state wholesale. Returns False when nothing was applied."""
        if self.reconciler is None or not self.state.user_id:
            return False
        try:
            fetched = await self.reconciler.fetch_family(self.state.user_id, fallback_prefs=self.state.preferences)
        except TransientRemoteError as e:
            logger.warning("Refetch failed: %s", e)
            self.reporter.report("error", "Could not reach the server; showing saved data.")
            return False
        if fetched is None:
            return False

        self.state.supersede(fetched.children, fetched.guardians, fetched.preferences, fetched.family_id)
        self.persist()
        if self.realtime is not None:
            await self.realtime.set_family(fetched.family_id)
        return True

    async def sync_now(self) -> list[SyncResult]:
        """Push every local child (deep), then re-fetch."""
        if not self.online or self.reconciler is None:
            self.reporter.report("error", "Not connected to a family.")
            return []
        self.reporter.report("loading", "Syncing...")
        await self.drain()
        results = await self.reconciler.upload_family(list(self.state.children), str(self.state.family_id))
        await self.refresh()
        failed = [r for r in results if not r.fully_ok]
        if failed:
            self.reporter.report("error", f"Sync finished with {len(failed)} failed children.")
        else:
            self.reporter.report("success", "Sync complete.")
        return results

    async def logout(self, *, timeout_s: float | None = None) -> None:
        """Stop listening, sign out (bounded), and always clear local state."""
        limit = timeout_s if timeout_s is not None else float(getattr(self.state.settings, "logout_timeout_s", 5.0))
        self.reporter.report("loading", "Logging out...")
        try:
            if self.realtime is not None:
                await self.realtime.stop()
            if self._sign_out is not None:
                await asyncio.wait_for(self._sign_out(), timeout=limit)
        except TimeoutError:
            logger.warning("Logout: sign out timed out after %.1fs", limit)
        except Exception:
            logger.exception("Logout: sign out failed")
        finally:
            pending = list(self._jobs)
            for job in pending:
                job.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._jobs.clear()
            self.state.clear()
            self.state.cache.clear()
            logger.info("Logout: local state cleared")
