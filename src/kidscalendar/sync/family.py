# src/kidscalendar/sync/family.py

"""Family coordination: profiles, families and invitation codes."""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta

from ..errors import EntityNotFoundError, RemoteDuplicateError
from ..family.models import GuardianRole, Invitation, Preferences, UserAccount
from ..tasks.task_models import new_id
from .calls import RemoteCaller
from .mapping import (
    TABLE_FAMILIES,
    TABLE_INVITATIONS,
    TABLE_PROFILES,
    invitation_from_row,
    profile_row,
    user_from_profile,
)

logger = logging.getLogger(__name__)

INVITE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 6
INVITE_TTL = timedelta(hours=24)


def new_invite_code() -> str:
    return "".join(secrets.choice(INVITE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def _is_expired(invitation: Invitation, now: datetime) -> bool:
    try:
        expires = datetime.fromisoformat(invitation.expires_at.replace("Z", "+00:00"))
    except ValueError:
        return False
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=UTC)
    return expires <= now


class FamilyDirectory:
    def __init__(self, caller: RemoteCaller) -> None:
        self._caller = caller
        self._remote = caller.remote

    async def ensure_profile(self, user: UserAccount, prefs: Preferences) -> UserAccount:
        """
        Return the user's profile, creating it when it does not exist yet.

        Timeouts propagate (TransientRemoteError): a missing answer is not a missing profile.
        """
        if not user.id:
            raise ValueError("ensure_profile needs a user id")
        uid = user.id

        row = await self._caller.read(f"select profile {uid}", lambda: self._remote.select_by_id(TABLE_PROFILES, uid))
        if row is not None:
            logger.info("Profile found for %s", uid)
            return user_from_profile(row, email=user.email)

        logger.info("Profile missing for %s, creating it", uid)
        new_row = profile_row(user, prefs)
        try:
            await self._caller.write(
                f"insert profile {uid}", lambda: self._remote.insert_rows(TABLE_PROFILES, [new_row])
            )
        except RemoteDuplicateError:
            logger.debug("Profile %s created concurrently", uid)
            row = await self._caller.read(
                f"select profile {uid}", lambda: self._remote.select_by_id(TABLE_PROFILES, uid)
            )
            if row is not None:
                return user_from_profile(row, email=user.email)
        return user_from_profile(new_row, email=user.email)

    async def create_family(self, user_id: str, name: str) -> str:
        family_id = f"fam_{secrets.token_hex(5)[:9]}"
        await self._caller.write(
            f"insert family {family_id}",
            lambda: self._remote.insert_rows(TABLE_FAMILIES, [{"id": family_id, "name": name}]),
        )
        await self._caller.write(
            f"update profile {user_id}",
            lambda: self._remote.update_row(TABLE_PROFILES, user_id, {"family_id": family_id}),
        )
        logger.info("Family %s created by %s", family_id, user_id)
        return family_id

    async def join_family(self, user_id: str, code: str, *, now: datetime | None = None) -> str:
        """Attach the user to the family of a pending invitation; the code is case-insensitive."""
        wanted = (code or "").strip().upper()
        rows = await self._caller.read(
            "select invitation",
            lambda: self._remote.select_where(TABLE_INVITATIONS, {"code": wanted, "status": "pending"}),
        )
        current = now or datetime.now(UTC)
        invitation = next(
            (inv for inv in (invitation_from_row(r) for r in rows) if not _is_expired(inv, current)),
            None,
        )
        if invitation is None or not invitation.family_id:
            raise EntityNotFoundError("Invalid or expired invitation code")

        family_id = invitation.family_id
        await self._caller.write(
            f"update profile {user_id}",
            lambda: self._remote.update_row(TABLE_PROFILES, user_id, {"family_id": family_id}),
        )
        await self._caller.write(
            f"accept invitation {invitation.id}",
            lambda: self._remote.update_row(TABLE_INVITATIONS, invitation.id, {"status": "accepted"}),
        )
        logger.info("User %s joined family %s", user_id, family_id)
        return family_id

    async def generate_invitation_code(
        self,
        family_id: str,
        role: GuardianRole = GuardianRole.CO_PARENT,
        *,
        now: datetime | None = None,
    ) -> Invitation:
        current = now or datetime.now(UTC)
        invitation = Invitation(
            id=new_id("inv"),
            code=new_invite_code(),
            role=role,
            expires_at=(current + INVITE_TTL).isoformat(),
            status="pending",
            family_id=family_id,
        )
        row = {
            "id": invitation.id,
            "family_id": family_id,
            "code": invitation.code,
            "role": invitation.role.value,
            "status": invitation.status,
            "expires_at": invitation.expires_at,
        }
        await self._caller.write(
            f"insert invitation {invitation.id}", lambda: self._remote.insert_rows(TABLE_INVITATIONS, [row])
        )
        return invitation
