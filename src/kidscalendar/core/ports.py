# src/kidscalendar/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the remote store, the realtime channel and the UI side swappable
and makes testing easier (see tests/fakes.py).
"""

from collections.abc import AsyncIterator, Awaitable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

Row = dict[str, Any]
# Remote rows use the store's column names: {"id": "...", "child_id": "...", ...}.


class RemoteStore(Protocol):
    """
    Authoritative remote database (PostgREST/Supabase style).

    Reads that the caller is not allowed to see come back empty (None / []).
    Writes raise errors.RemoteError subclasses:
    - RemoteDuplicateError: primary key already present
    - RemoteAuthError: refused by row-level policy
    - TransientRemoteError: network failure / timeout / 5xx
    """

    async def select_by_id(self, table: str, row_id: str) -> Row | None: ...

    async def select_where(self, table: str, filters: dict[str, Any]) -> list[Row]: ...

    async def fetch_family_children(self, family_id: str) -> list[Row]:
        """Children of a family with embedded tasks, rewards and redemption_history lists."""
        ...

    async def insert_rows(self, table: str, rows: Sequence[Row]) -> None: ...

    async def update_row(self, table: str, row_id: str, patch: Row) -> None: ...

    async def delete_row(self, table: str, row_id: str) -> None: ...


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A realtime "something changed" signal. Carries no diff."""

    table: str
    event_type: str = "*"
    family_id: str | None = None


class RealtimeTransport(Protocol):
    """One change stream per (family, table set). Ends or raises when the connection drops."""

    def listen(self, family_id: str, tables: Sequence[str]) -> AsyncIterator[ChangeEvent]: ...


class Notifier(Protocol):
    """
    UI-side port used by the task poller for alarms ("time to start", "time is up").

    Rendering, sound and system notifications are the implementation's business.
    """

    def notify(self, *, title: str, body: str) -> Awaitable[None]: ...


class StatusReporter(Protocol):
    """Non-blocking status banner: kind is "loading", "success" or "error"."""

    def report(self, kind: str, message: str) -> None: ...
