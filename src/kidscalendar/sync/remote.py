# src/kidscalendar/sync/remote.py

"""
PostgREST (Supabase REST) implementation of the RemoteStore port.

- GET    /rest/v1/<table>?id=eq.<id>          -> select_by_id
- GET    /rest/v1/<table>?<col>=eq.<value>    -> select_where
- POST   /rest/v1/<table>  [rows]             -> insert_rows
- PATCH  /rest/v1/<table>?id=eq.<id>  {patch} -> update_row
- DELETE /rest/v1/<table>?id=eq.<id>          -> delete_row

Row-level security hides rows instead of failing, so reads that come back
401/403/404 are treated as "nothing visible".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from ..core.ports import Row
from ..errors import RemoteAuthError, RemoteDuplicateError, RemoteError, TransientRemoteError
from .mapping import TABLE_CHILDREN, TABLE_REDEMPTIONS, TABLE_REWARDS, TABLE_TASKS

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
_FAMILY_GRAPH = f"*,{TABLE_TASKS}(*),{TABLE_REWARDS}(*),{TABLE_REDEMPTIONS}(*)"


def _make_timeout_obj(connect_s: float, read_s: float, write_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=write_s, pool=connect_s)


def _eq(value: Any) -> str:
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def _error_payload(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {"message": resp.text[:200]}
    return data if isinstance(data, dict) else {"message": str(data)[:200]}


def raise_for_remote(resp: httpx.Response, what: str) -> None:
    """Translate a failed PostgREST response into the RemoteError taxonomy."""
    if resp.is_success:
        return

    payload = _error_payload(resp)
    code = str(payload.get("code") or "") or None
    message = f"{what}: HTTP {resp.status_code} {payload.get('message') or ''}".strip()

    # 409 also carries foreign-key (23503) and exclusion violations; only 23505 means "already there".
    if code == UNIQUE_VIOLATION:
        raise RemoteDuplicateError(message, code=code, status=resp.status_code)
    if resp.status_code in (401, 403):
        raise RemoteAuthError(message, code=code, status=resp.status_code)
    if resp.status_code >= 500 or resp.status_code in (408, 429):
        raise TransientRemoteError(message, code=code, status=resp.status_code)
    raise RemoteError(message, code=code, status=resp.status_code)


class PostgrestRemoteStore:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        timeout_s: float = 12.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self._client = client or httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers=headers,
            timeout=_make_timeout_obj(5.0, timeout_s, timeout_s),
        )
        if client is not None:
            self._client.headers.update(headers)

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_access_token(self, token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {token}"

    async def _request(self, method: str, path: str, what: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientRemoteError(f"{what}: timeout ({e})") from e
        except httpx.TransportError as e:
            raise TransientRemoteError(f"{what}: {e.__class__.__name__} {e}") from e

    async def _read(self, table: str, params: dict[str, str], what: str) -> list[Row]:
        resp = await self._request("GET", f"/{table}", what, params=params)
        if resp.status_code in (401, 403, 404):
            logger.debug("%s not visible (HTTP %s)", what, resp.status_code)
            return []
        raise_for_remote(resp, what)
        data = resp.json()
        return [r for r in data if isinstance(r, dict)] if isinstance(data, list) else []

    # ---- RemoteStore ----

    async def select_by_id(self, table: str, row_id: str) -> Row | None:
        rows = await self._read(table, {"select": "*", "id": _eq(row_id), "limit": "1"}, f"select {table}/{row_id}")
        return rows[0] if rows else None

    async def select_where(self, table: str, filters: dict[str, Any]) -> list[Row]:
        params = {"select": "*"}
        params.update({k: _eq(v) for k, v in filters.items()})
        return await self._read(table, params, f"select {table}")

    async def fetch_family_children(self, family_id: str) -> list[Row]:
        return await self._read(
            TABLE_CHILDREN,
            {"select": _FAMILY_GRAPH, "family_id": _eq(family_id)},
            f"select family {family_id}",
        )

    async def insert_rows(self, table: str, rows: Sequence[Row]) -> None:
        if not rows:
            return
        what = f"insert {table} x{len(rows)}"
        resp = await self._request("POST", f"/{table}", what, json=list(rows), headers={"Prefer": "return=minimal"})
        raise_for_remote(resp, what)

    async def upsert_rows(self, table: str, rows: Sequence[Row]) -> None:
        """Atomic insert-or-merge on the primary key."""
        if not rows:
            return
        what = f"upsert {table} x{len(rows)}"
        resp = await self._request(
            "POST", f"/{table}", what, json=list(rows),
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        raise_for_remote(resp, what)

    async def update_row(self, table: str, row_id: str, patch: Row) -> None:
        what = f"update {table}/{row_id}"
        resp = await self._request(
            "PATCH", f"/{table}", what, params={"id": _eq(row_id)}, json=patch,
            headers={"Prefer": "return=minimal"},
        )
        raise_for_remote(resp, what)

    async def delete_row(self, table: str, row_id: str) -> None:
        what = f"delete {table}/{row_id}"
        resp = await self._request("DELETE", f"/{table}", what, params={"id": _eq(row_id)})
        raise_for_remote(resp, what)
