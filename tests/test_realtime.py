# tests/test_realtime.py

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest

from kidscalendar.core.ports import ChangeEvent
from kidscalendar.sync.realtime import (
    WATCHED_TABLES,
    RealtimeListener,
    SseRealtimeTransport,
    change_from_payload,
    parse_sse_event,
)

from .fakes import FakeRealtimeTransport


async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async def spin() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(spin(), timeout)


class RefetchSpy:
    def __init__(self) -> None:
        self.calls = 0
        self.gate = asyncio.Event()
        self.gate.set()

    async def __call__(self) -> None:
        self.calls += 1
        await self.gate.wait()


@pytest.mark.asyncio
async def test_change_triggers_a_refetch() -> None:
    transport = FakeRealtimeTransport()
    spy = RefetchSpy()
    listener = RealtimeListener(transport, spy, reconnect_delay_s=0)

    await listener.set_family("fam_1")
    await _until(lambda: bool(transport.subscriptions))
    assert transport.subscriptions == [("fam_1", WATCHED_TABLES)]

    await transport.queue.put(ChangeEvent("tasks", "update", "fam_1"))
    await _until(lambda: spy.calls == 1)
    await listener.stop()


@pytest.mark.asyncio
async def test_burst_during_refetch_is_folded_into_one_follow_up() -> None:
    transport = FakeRealtimeTransport()
    spy = RefetchSpy()
    spy.gate.clear()
    listener = RealtimeListener(transport, spy, reconnect_delay_s=0)
    await listener.set_family("fam_1")

    await transport.queue.put(ChangeEvent("tasks"))
    await _until(lambda: spy.calls == 1)
    for table in ("tasks", "rewards", "children"):
        await transport.queue.put(ChangeEvent(table))
    await _until(transport.queue.empty)

    spy.gate.set()
    await listener.wait_idle()

    assert spy.calls == 2
    assert listener.refetch_count == 2
    await listener.stop()


@pytest.mark.asyncio
async def test_events_for_another_family_are_ignored() -> None:
    transport = FakeRealtimeTransport()
    spy = RefetchSpy()
    listener = RealtimeListener(transport, spy, reconnect_delay_s=0)
    await listener.set_family("fam_1")

    await transport.queue.put(ChangeEvent("tasks", family_id="fam_2"))
    await transport.queue.put(ChangeEvent("tasks", family_id="fam_1"))
    await _until(lambda: spy.calls >= 1)
    await listener.wait_idle()

    assert spy.calls == 1
    await listener.stop()


@pytest.mark.asyncio
async def test_subscription_follows_the_family() -> None:
    transport = FakeRealtimeTransport()
    listener = RealtimeListener(transport, RefetchSpy(), reconnect_delay_s=0)

    await listener.set_family("fam_1")
    await listener.set_family("fam_1")
    await _until(lambda: len(transport.subscriptions) == 1)
    assert listener.running

    await listener.set_family("fam_2")
    await _until(lambda: len(transport.subscriptions) == 2)
    assert listener.family_id == "fam_2"

    await listener.set_family(None)
    assert not listener.running
    assert listener.family_id is None


@pytest.mark.asyncio
async def test_dropped_stream_reconnects() -> None:
    transport = FakeRealtimeTransport()
    spy = RefetchSpy()
    listener = RealtimeListener(transport, spy, reconnect_delay_s=0)
    await listener.set_family("fam_1")

    await transport.queue.put(ConnectionResetError("socket closed"))
    await _until(lambda: len(transport.subscriptions) == 2)
    await transport.queue.put(None)
    await _until(lambda: len(transport.subscriptions) == 3)

    await transport.queue.put(ChangeEvent("children"))
    await _until(lambda: spy.calls == 1)
    await listener.stop()


@pytest.mark.asyncio
async def test_no_refetch_after_stop() -> None:
    transport = FakeRealtimeTransport()
    spy = RefetchSpy()
    spy.gate.clear()
    listener = RealtimeListener(transport, spy, reconnect_delay_s=0)
    await listener.set_family("fam_1")

    await transport.queue.put(ChangeEvent("tasks"))
    await _until(lambda: spy.calls == 1)
    await transport.queue.put(ChangeEvent("tasks"))
    await _until(transport.queue.empty)

    await listener.stop()
    spy.gate.set()
    await asyncio.sleep(0.02)

    assert spy.calls == 1
    assert not listener.running


def test_parse_sse_event_fields() -> None:
    event_id, name, data = parse_sse_event(["id: 7", "event: family_update", "data: {\"a\":", "data: 1}", ": note"])
    assert event_id == "7"
    assert name == "family_update"
    assert data == '{"a":\n1}'

    assert parse_sse_event(["data: x"]) == (None, "message", "x")


def test_change_from_payload_table_resolution() -> None:
    event = change_from_payload('{"family_id": "fam_1", "event_type": "tasks.update", "payload": {"table": "rewards"}}')
    assert event == ChangeEvent("rewards", "tasks.update", "fam_1")

    event = change_from_payload('{"event_type": "children.delete"}')
    assert event is not None and event.table == "children" and event.family_id is None

    assert change_from_payload("not json") is None
    assert change_from_payload("[1, 2]") is None


SSE_BODY = (
    ": keepalive\n"
    "\n"
    "id: 1\n"
    "event: family_update\n"
    'data: {"id": 1, "family_id": "fam_1", "event_type": "tasks.update", "payload": {"table": "tasks"}}\n'
    "\n"
    "id: 2\n"
    "event: family_update\n"
    'data: {"family_id": "fam_1", "event_type": "invitations.create"}\n'
    "\n"
    "event: ping\n"
    "data: {}\n"
    "\n"
    "id: 3\n"
    "event: family_update\n"
    'data: {"family_id": "fam_1", "event_type": "children.delete"}\n'
    "\n"
)


@pytest.mark.asyncio
async def test_sse_transport_filters_tables_and_resumes() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=SSE_BODY.encode(), headers={"Content-Type": "text/event-stream"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = SseRealtimeTransport("http://live.test/api", access_token="tok", client=client)

    events = [e async for e in transport.listen("fam_1", WATCHED_TABLES)]
    assert [e.table for e in events] == ["tasks", "children"]
    assert seen[0].url.path == "/api/families/fam_1/live/stream"
    assert seen[0].headers["Authorization"] == "Bearer tok"
    assert "Last-Event-ID" not in seen[0].headers

    again = [e async for e in transport.listen("fam_1", WATCHED_TABLES)]
    assert len(again) == 2
    assert seen[1].headers["Last-Event-ID"] == "3"
    await transport.aclose()
