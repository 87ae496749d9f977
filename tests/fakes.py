# tests/fakes.py

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from kidscalendar.core.ports import ChangeEvent
from kidscalendar.errors import RemoteDuplicateError, RemoteError
from kidscalendar.family.models import Child, Reward
from kidscalendar.tasks.task_models import RecurrenceRule, Task, TaskStatus

Row = dict[str, Any]

_CHILD_TABLES = ("tasks", "rewards", "redemption_history")


class FakeRemoteStore:
    """
    In-memory RemoteStore used by sync tests.

    - enforces primary keys (a duplicate anywhere in an insert rejects the whole insert)
    - embeds tasks/rewards/redemption_history under children like the real family query
    - deletes cascade from children to their rows
    - failures can be queued per operation, and single ids can be made invalid
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, Row]] = defaultdict(dict)
        self.calls: list[tuple[str, str]] = []
        self.rejected_ids: dict[str, set[str]] = defaultdict(set)
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self.delay_s = 0.0

    # ---- test helpers ----

    def fail(self, op: str, exc: BaseException, times: int = 1) -> None:
        self._failures[op].extend([exc] * times)

    def reject(self, table: str, row_id: str) -> None:
        self.rejected_ids[table].add(row_id)

    def seed(self, table: str, *rows: Row) -> None:
        for row in rows:
            self.tables[table][str(row["id"])] = copy.deepcopy(row)

    def count(self, table: str) -> int:
        return len(self.tables[table])

    def ops(self, op: str) -> list[str]:
        return [target for name, target in self.calls if name == op]

    async def _enter(self, op: str, target: str) -> None:
        self.calls.append((op, target))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        queue = self._failures.get(op)
        if queue:
            raise queue.pop(0)

    # ---- RemoteStore ----

    async def select_by_id(self, table: str, row_id: str) -> Row | None:
        await self._enter("select", f"{table}/{row_id}")
        row = self.tables[table].get(str(row_id))
        return copy.deepcopy(row) if row is not None else None

    async def select_where(self, table: str, filters: dict[str, Any]) -> list[Row]:
        await self._enter("select_where", table)
        return [
            copy.deepcopy(r)
            for r in self.tables[table].values()
            if all(r.get(k) == v for k, v in filters.items())
        ]

    async def fetch_family_children(self, family_id: str) -> list[Row]:
        await self._enter("fetch_family", family_id)
        out: list[Row] = []
        for child in self.tables["children"].values():
            if child.get("family_id") != family_id:
                continue
            row = copy.deepcopy(child)
            for sub in _CHILD_TABLES:
                row[sub] = [copy.deepcopy(r) for r in self.tables[sub].values() if r.get("child_id") == child["id"]]
            out.append(row)
        return out

    async def insert_rows(self, table: str, rows: Sequence[Row]) -> None:
        await self._enter("insert", f"{table} x{len(rows)}")
        seen: set[str] = set()
        for row in rows:
            rid = str(row["id"])
            if rid in self.rejected_ids[table]:
                raise RemoteError(f"row {rid} violates a check constraint", code="23514", status=400)
            if rid in self.tables[table] or rid in seen:
                raise RemoteDuplicateError(f"duplicate key {rid}", code="23505", status=409)
            seen.add(rid)
        for row in rows:
            self.tables[table][str(row["id"])] = copy.deepcopy(dict(row))

    async def update_row(self, table: str, row_id: str, patch: Row) -> None:
        await self._enter("update", f"{table}/{row_id}")
        row = self.tables[table].get(str(row_id))
        if row is not None:
            row.update(copy.deepcopy(patch))

    async def delete_row(self, table: str, row_id: str) -> None:
        await self._enter("delete", f"{table}/{row_id}")
        self.tables[table].pop(str(row_id), None)
        if table == "children":
            for sub in _CHILD_TABLES:
                for rid in [k for k, r in self.tables[sub].items() if r.get("child_id") == row_id]:
                    del self.tables[sub][rid]


class FakeRealtimeTransport:
    """
    Queue-driven RealtimeTransport.

    Put ChangeEvents to deliver them, an exception to break the stream, None to end it.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[ChangeEvent | BaseException | None] = asyncio.Queue()
        self.subscriptions: list[tuple[str, tuple[str, ...]]] = []

    async def listen(self, family_id: str, tables: Sequence[str]) -> AsyncIterator[ChangeEvent]:
        self.subscriptions.append((family_id, tuple(tables)))
        while True:
            item = await self.queue.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


@dataclass(slots=True)
class SentAlarm:
    title: str
    body: str


@dataclass(slots=True)
class FakeNotifier:
    sent: list[SentAlarm] = field(default_factory=list)

    async def notify(self, *, title: str, body: str) -> None:
        self.sent.append(SentAlarm(title=title, body=body))


@dataclass(slots=True)
class FakeReporter:
    reports: list[tuple[str, str]] = field(default_factory=list)

    def report(self, kind: str, message: str) -> None:
        self.reports.append((kind, message))

    def kinds(self) -> list[str]:
        return [k for k, _ in self.reports]


# ---- builders ----


def make_task(
    task_id: str = "task_1000_a",
    *,
    title: str = "Brush teeth",
    time: str = "08:00 AM",
    duration: int | None = 30,
    reward: int = 5,
    status: TaskStatus = TaskStatus.PENDING,
    recurrence: RecurrenceRule | None = None,
) -> Task:
    return Task(
        id=task_id,
        title=title,
        scheduled_time=time,
        duration_minutes=duration,
        reward_points=reward,
        status=status,
        recurrence=recurrence,
    )


def make_reward(reward_id: str = "rw_1000_a", *, title: str = "Ice cream", cost: int = 30) -> Reward:
    return Reward(id=reward_id, title=title, cost=cost)


def make_child(
    child_id: str = "c_1000_a",
    *,
    name: str = "Mia",
    stars: int = 0,
    active: bool = False,
    tasks: list[Task] | None = None,
    rewards: list[Reward] | None = None,
) -> Child:
    return Child(
        id=child_id,
        name=name,
        star_balance=stars,
        active=active,
        tasks=list(tasks or []),
        rewards=list(rewards or []),
    )
