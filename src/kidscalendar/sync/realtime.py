# src/kidscalendar/sync/realtime.py

"""
Realtime change listener.

One subscription per signed-in family. Every notification, whoever caused it,
triggers a full re-fetch; notifications that arrive while a re-fetch is running
are folded into a single follow-up re-fetch.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any

import httpx

from ..core.ports import ChangeEvent, RealtimeTransport
from .mapping import TABLE_CHILDREN, TABLE_PROFILES, TABLE_REWARDS, TABLE_TASKS

logger = logging.getLogger(__name__)

WATCHED_TABLES: tuple[str, ...] = (TABLE_PROFILES, TABLE_CHILDREN, TABLE_TASKS, TABLE_REWARDS)

Refetch = Callable[[], Awaitable[Any]]


class RealtimeListener:
    def __init__(
        self,
        transport: RealtimeTransport,
        refetch: Refetch,
        *,
        tables: Sequence[str] = WATCHED_TABLES,
        reconnect_delay_s: float = 3.0,
    ) -> None:
        self._transport = transport
        self._refetch = refetch
        self._tables = tuple(tables)
        self._reconnect_delay_s = max(0.0, float(reconnect_delay_s))

        self._family_id: str | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._refetch_task: asyncio.Task[None] | None = None
        self._pending = False
        self.refetch_count = 0

    @property
    def family_id(self) -> str | None:
        return self._family_id

    @property
    def running(self) -> bool:
        return self._listen_task is not None and not self._listen_task.done()

    async def set_family(self, family_id: str | None) -> None:
        """(Re)subscribe for a family. Same id -> no-op; None -> unsubscribe."""
        if family_id == self._family_id and (family_id is None or self.running):
            return
        await self.stop()
        self._family_id = family_id
        if family_id is None:
            return
        self._listen_task = asyncio.create_task(self._run(family_id), name=f"realtime:{family_id}")
        logger.info("Realtime: subscribed family=%s tables=%s", family_id, ",".join(self._tables))

    async def stop(self) -> None:
        """Tear down the subscription. No re-fetch is started after this returns."""
        current = asyncio.current_task()
        tasks = [t for t in (self._listen_task, self._refetch_task) if t is not None and t is not current]
        self._listen_task = None
        self._refetch_task = None
        self._pending = False
        self._family_id = None
        for t in tasks:
            t.cancel()
        for t in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await t
        if tasks:
            logger.info("Realtime: unsubscribed")

    async def wait_idle(self) -> None:
        """Wait until no re-fetch is running or queued."""
        while self._refetch_task is not None and not self._refetch_task.done():
            await asyncio.wait({self._refetch_task})

    # ---- internals ----

    async def _run(self, family_id: str) -> None:
        while True:
            try:
                async for event in self._transport.listen(family_id, self._tables):
                    if event.family_id and event.family_id != family_id:
                        continue
                    logger.debug("Realtime: %s on %s", event.event_type, event.table)
                    self._request_refetch()
                logger.info("Realtime: stream for family %s ended; reconnecting", family_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Realtime: stream for family %s failed; reconnecting", family_id)
            await asyncio.sleep(self._reconnect_delay_s)

    def _request_refetch(self) -> None:
        if self._refetch_task is not None and not self._refetch_task.done():
            self._pending = True
            return
        self._refetch_task = asyncio.create_task(self._refetch_loop(), name="realtime:refetch")

    async def _refetch_loop(self) -> None:
        while True:
            self._pending = False
            self.refetch_count += 1
            try:
                await self._refetch()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Realtime: re-fetch failed")
            if not self._pending:
                return


def parse_sse_event(lines: Sequence[str]) -> tuple[str | None, str, str]:
    """Split one SSE block into (id, event name, data)."""
    event_id: str | None = None
    name = "message"
    data: list[str] = []
    for line in lines:
        if not line or line.startswith(":"):
            continue
        key, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if key == "id":
            event_id = value
        elif key == "event":
            name = value
        elif key == "data":
            data.append(value)
    return event_id, name, "\n".join(data)


def change_from_payload(data: str) -> ChangeEvent | None:
    """
    Build a ChangeEvent from a family_update payload.

    {"id": 12, "family_id": "fam_x", "event_type": "tasks.update", "payload": {"table": "tasks"}}
    """
    try:
        body = json.loads(data) if data else {}
    except ValueError:
        logger.debug("Realtime: unreadable payload %r", data[:200])
        return None
    if not isinstance(body, dict):
        return None

    event_type = str(body.get("event_type") or "*")
    payload = body.get("payload") if isinstance(body.get("payload"), dict) else {}
    table = str(payload.get("table") or event_type.split(".")[0] or "*")
    family = body.get("family_id")
    return ChangeEvent(table=table, event_type=event_type, family_id=str(family) if family is not None else None)


class SseRealtimeTransport:
    """
    Server-sent events transport: GET <base>/families/<id>/live/stream.

    Resumes from the last seen event id after a reconnect.
    """

    def __init__(
        self,
        base_url: str,
        *,
        access_token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None))
        self._access_token = access_token
        self._last_event_id: str | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id
        return headers

    async def listen(self, family_id: str, tables: Sequence[str]) -> AsyncIterator[ChangeEvent]:
        url = f"{self.base_url}/families/{family_id}/live/stream"
        wanted = set(tables)
        async with self._client.stream("GET", url, headers=self._headers()) as resp:
            resp.raise_for_status()
            block: list[str] = []
            async for line in resp.aiter_lines():
                if line:
                    block.append(line)
                    continue
                if not block:
                    continue
                event_id, name, data = parse_sse_event(block)
                block = []
                if event_id:
                    self._last_event_id = event_id
                if name != "family_update":
                    continue
                event = change_from_payload(data)
                if event is None:
                    continue
                if wanted and event.table not in wanted and event.table != "*":
                    continue
                yield event
