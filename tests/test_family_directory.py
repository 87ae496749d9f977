# tests/test_family_directory.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from kidscalendar.errors import EntityNotFoundError, TransientRemoteError
from kidscalendar.family.models import GuardianRole, Language, Preferences, UserAccount
from kidscalendar.sync.calls import RemoteCaller
from kidscalendar.sync.family import INVITE_ALPHABET, INVITE_CODE_LENGTH, FamilyDirectory, new_invite_code

from .fakes import FakeRemoteStore

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def directory(caller: RemoteCaller) -> FamilyDirectory:
    return FamilyDirectory(caller)


@pytest.mark.asyncio
async def test_missing_profile_is_created_with_preferences(
    directory: FamilyDirectory, remote: FakeRemoteStore
) -> None:
    user = UserAccount(email="ana@example.com", name="Ana", id="u1")
    profile = await directory.ensure_profile(user, Preferences(language=Language.EN))

    assert profile.id == "u1" and profile.family_id is None
    row = remote.tables["profiles"]["u1"]
    assert row["language"] == "en"
    assert row["full_name"] == "Ana"


@pytest.mark.asyncio
async def test_existing_profile_is_returned_untouched(directory: FamilyDirectory, remote: FakeRemoteStore) -> None:
    remote.seed("profiles", {"id": "u1", "full_name": "Ana P.", "family_id": "fam_1"})
    profile = await directory.ensure_profile(UserAccount(email="a@b.c", name="Ana", id="u1"), Preferences())

    assert profile.name == "Ana P."
    assert profile.family_id == "fam_1"
    assert remote.ops("insert") == []


@pytest.mark.asyncio
async def test_profile_lookup_timeout_is_not_a_missing_profile(
    directory: FamilyDirectory, remote: FakeRemoteStore
) -> None:
    remote.fail("select", TransientRemoteError("timeout"), times=2)
    with pytest.raises(TransientRemoteError):
        await directory.ensure_profile(UserAccount(email="a@b.c", name="Ana", id="u1"), Preferences())
    assert remote.count("profiles") == 0


@pytest.mark.asyncio
async def test_create_family_links_the_profile(directory: FamilyDirectory, remote: FakeRemoteStore) -> None:
    remote.seed("profiles", {"id": "u1"})
    family_id = await directory.create_family("u1", "The Garcias")

    assert family_id.startswith("fam_")
    assert remote.tables["families"][family_id]["name"] == "The Garcias"
    assert remote.tables["profiles"]["u1"]["family_id"] == family_id


@pytest.mark.asyncio
async def test_join_with_invitation_code(directory: FamilyDirectory, remote: FakeRemoteStore) -> None:
    remote.seed("profiles", {"id": "u2"})
    invitation = await directory.generate_invitation_code("fam_1", now=NOW)
    assert invitation.role is GuardianRole.CO_PARENT

    joined = await directory.join_family("u2", invitation.code.lower(), now=NOW + timedelta(hours=1))

    assert joined == "fam_1"
    assert remote.tables["profiles"]["u2"]["family_id"] == "fam_1"
    assert remote.tables["invitations"][invitation.id]["status"] == "accepted"

    with pytest.raises(EntityNotFoundError):
        await directory.join_family("u3", invitation.code, now=NOW + timedelta(hours=1))


@pytest.mark.asyncio
async def test_expired_invitation_is_rejected(directory: FamilyDirectory, remote: FakeRemoteStore) -> None:
    invitation = await directory.generate_invitation_code("fam_1", now=NOW)
    with pytest.raises(EntityNotFoundError):
        await directory.join_family("u2", invitation.code, now=NOW + timedelta(hours=25))


def test_invite_codes_use_unambiguous_alphabet() -> None:
    for _ in range(50):
        code = new_invite_code()
        assert len(code) == INVITE_CODE_LENGTH
        assert set(code) <= set(INVITE_ALPHABET)
        assert not set(code) & set("01IO")
