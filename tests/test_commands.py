# tests/test_commands.py

from __future__ import annotations

from pathlib import Path

import pytest

from kidscalendar.cli.commands import CommandRegistry, registry
from kidscalendar.core.service import FamilyService
from kidscalendar.core.state import AppState
from kidscalendar.errors import KidsCalendarError
from kidscalendar.family.models import UserAccount
from kidscalendar.sync.calls import RemoteCaller
from kidscalendar.sync.family import FamilyDirectory
from kidscalendar.sync.reconciler import SyncReconciler

from .fakes import FakeRemoteStore, FakeReporter, make_child, make_reward, make_task


@pytest.fixture()
def local_service(state: AppState) -> FamilyService:
    return FamilyService(state)


@pytest.mark.asyncio
async def test_command_registry_routes_sync_and_async_handlers(local_service: FamilyService) -> None:
    reg = CommandRegistry()
    notes: list[str] = []

    def plain(service, args, emit):
        return "plain " + " ".join(args)

    async def coro(service, args, emit):
        if emit is not None:
            emit("working")
        return "coro"

    reg.register("a", plain, "a", aliases=["x"])
    reg.register("b", coro, "b")

    assert await reg.handle(local_service, "/a 1 2") == "plain 1 2"
    assert await reg.handle(local_service, "/X") == "plain "
    assert await reg.handle(local_service, "/b", emit=notes.append) == "coro"
    assert notes == ["working"]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(local_service: FamilyService) -> None:
    reg = CommandRegistry()
    assert await reg.handle(local_service, "hello") is None
    assert "Unknown command" in (await reg.handle(local_service, "/nope") or "")
    assert "Empty command" in (await reg.handle(local_service, "/") or "")


@pytest.mark.asyncio
async def test_domain_errors_become_replies(local_service: FamilyService) -> None:
    reg = CommandRegistry()

    def boom(service, args, emit):
        raise KidsCalendarError("nope")

    reg.register("boom", boom, "boom")
    assert await reg.handle(local_service, "/boom") == "Error: nope"


@pytest.mark.asyncio
async def test_family_flow_through_commands(local_service: FamilyService, state: AppState) -> None:
    assert "No children" in await registry.handle(local_service, "/kids")

    assert await registry.handle(local_service, "/addkid Mia Rose") == "Added Mia Rose."
    reply = await registry.handle(local_service, "/addtask 7:30AM 20 Brush teeth")
    assert reply.startswith("Added 'Brush teeth'")

    child = state.children[0]
    task = child.tasks[0]
    assert (await registry.handle(local_service, "/start 1")).startswith("Started 'Brush teeth'")
    assert task.status.value == "active"

    assert "Done" in await registry.handle(local_service, "/done 1")
    assert task.status.value == "done"
    assert "Reset" in await registry.handle(local_service, "/reset 1")
    assert task.status.value == "pending"


@pytest.mark.asyncio
async def test_addtask_reports_field_issues(local_service: FamilyService, state: AppState) -> None:
    state.add_child(make_child())
    reply = await registry.handle(local_service, "/addtask 25:00 0 Nap")
    assert reply.startswith("Rejected:")
    assert "time" in reply and "duration" in reply
    assert state.children[0].tasks == []


@pytest.mark.asyncio
async def test_redeem_commands(local_service: FamilyService, state: AppState) -> None:
    state.add_child(make_child(stars=35, rewards=[make_reward(title="Ice cream", cost=30)]))

    listing = await registry.handle(local_service, "/redeem")
    assert "Ice cream" in listing and "35 stars" in listing

    reply = await registry.handle(local_service, "/redeem 1 after dinner")
    assert "5 left" in reply
    assert "after dinner" in await registry.handle(local_service, "/history")

    assert (await registry.handle(local_service, "/redeem 1")).startswith("Error:")


@pytest.mark.asyncio
async def test_import_tab_separated_file(local_service: FamilyService, state: AppState, tmp_path: Path) -> None:
    state.add_child(make_child(tasks=[make_task()]))
    path = tmp_path / "day.tsv"
    path.write_text("07:00 AM\tWake up\t\t10\n\n08:00 AM\tBreakfast\tEggs\t20\n", "utf-8")

    reply = await registry.handle(local_service, f"/import {path}")

    assert reply == "Imported 2 tasks for Mia."
    assert [t.title for t in state.children[0].tasks] == ["Brush teeth", "Wake up", "Breakfast"]


@pytest.mark.asyncio
async def test_switch_format_and_status(local_service: FamilyService, state: AppState) -> None:
    state.add_child(make_child("c_1_a", name="Mia"))
    state.add_child(make_child("c_1_b", name="Leo"))

    assert await registry.handle(local_service, "/switch 2") == "Active child: Leo"
    assert state.active_child().name == "Leo"

    assert await registry.handle(local_service, "/format 24h") == "Time format set to 24h."
    status = await registry.handle(local_service, "/status")
    assert "LOCAL ONLY" in status
    assert "Stars on completion: OFF" in status

    assert "Not connected" in await registry.handle(local_service, "/sync")
    assert "/addtask" in await registry.handle(local_service, "/help")


@pytest.fixture()
def signed_in_service(state: AppState, caller: RemoteCaller, remote: FakeRemoteStore) -> FamilyService:
    remote.seed("profiles", {"id": "u1", "full_name": "Ana", "family_id": None})
    state.current_user = UserAccount(email="ana@example.com", name="Ana", id="u1")
    return FamilyService(
        state,
        reconciler=SyncReconciler(caller),
        directory=FamilyDirectory(caller),
        reporter=FakeReporter(),
    )


@pytest.mark.asyncio
async def test_family_new_then_invite(signed_in_service: FamilyService, state: AppState, remote: FakeRemoteStore) -> None:
    reply = await registry.handle(signed_in_service, "/family new The Garcias")

    assert state.family_id is not None and state.family_id.startswith("fam_")
    assert reply == f"Family created: {state.family_id}."
    assert remote.tables["profiles"]["u1"]["family_id"] == state.family_id
    assert signed_in_service.online

    reply = await registry.handle(signed_in_service, "/invite guardian")
    [invitation] = remote.tables["invitations"].values()
    assert invitation["role"] == "Guardian"
    assert invitation["family_id"] == state.family_id
    assert invitation["code"] in (reply or "")

    assert "Usage" in (await registry.handle(signed_in_service, "/invite boss") or "")


@pytest.mark.asyncio
async def test_family_join_with_code(
    signed_in_service: FamilyService, state: AppState, caller: RemoteCaller, remote: FakeRemoteStore
) -> None:
    invitation = await FamilyDirectory(caller).generate_invitation_code("fam_9")

    reply = await registry.handle(signed_in_service, f"/family join {invitation.code.lower()}")

    assert reply == "Joined family fam_9."
    assert state.family_id == "fam_9"
    assert remote.tables["invitations"][invitation.id]["status"] == "accepted"

    reply = await registry.handle(signed_in_service, "/family join NOPE23")
    assert reply == "Error: Invalid or expired invitation code"


@pytest.mark.asyncio
async def test_logout_command_clears_the_session(signed_in_service: FamilyService, state: AppState) -> None:
    state.add_child(make_child())

    reply = await registry.handle(signed_in_service, "/logout")

    assert reply.startswith("Logged out")
    assert state.current_user is None
    assert state.children == []


@pytest.mark.asyncio
async def test_family_commands_need_a_session(local_service: FamilyService) -> None:
    assert await registry.handle(local_service, "/invite") == "Error: Not signed in to the server."
    assert "Usage" in (await registry.handle(local_service, "/family") or "")
