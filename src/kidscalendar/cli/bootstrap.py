# src/kidscalendar/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- restores the cached family snapshot into AppState,
- wires the remote store, realtime transport and sync layer into FamilyService
  when a remote URL is configured (local-only otherwise).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import get_settings
from ..core.ports import StatusReporter
from ..core.service import FamilyService
from ..core.state import AppState
from ..family.models import Language, Preferences, TimeFormat, UserAccount
from ..storage.cache_store import LocalCacheStore
from ..sync.calls import RemoteCaller
from ..sync.family import FamilyDirectory
from ..sync.realtime import RealtimeListener, SseRealtimeTransport
from ..sync.reconciler import SyncReconciler
from ..sync.remote import PostgrestRemoteStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.cache_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings and the cached snapshot.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    cache = LocalCacheStore(settings.cache_db_path)
    state = AppState(settings=settings, cache=cache)

    if cache.has_snapshot():
        state.apply_snapshot(cache.load())
        logger.info("Restored cached snapshot: children=%d", len(state.children))
    else:
        state.preferences = Preferences(
            time_format=TimeFormat.from_db(getattr(settings, "default_time_format", "12h")),
            language=Language.from_db(getattr(settings, "default_language", "es")),
        )
    return state


@dataclass
class RemoteBundle:
    """Concrete network clients that need closing on shutdown."""

    remote: PostgrestRemoteStore | None = None
    transport: SseRealtimeTransport | None = None

    async def aclose(self) -> None:
        for client in (self.remote, self.transport):
            if client is None:
                continue
            try:
                await client.aclose()
            except Exception:
                logger.debug("Closing %s failed.", type(client).__name__, exc_info=True)


def create_service(state: AppState, *, reporter: StatusReporter | None = None) -> tuple[FamilyService, RemoteBundle]:
    settings = state.settings
    bundle = RemoteBundle()

    if not getattr(settings, "remote_enabled", False):
        logger.info("No remote store configured; running local-only.")
        return FamilyService(state, reporter=reporter), bundle

    remote = PostgrestRemoteStore(
        settings.remote_url,
        settings.remote_api_key,
        access_token=settings.remote_access_token,
        timeout_s=settings.read_timeout_s,
    )
    bundle.remote = remote
    caller = RemoteCaller(
        remote,
        read_timeout_s=settings.read_timeout_s,
        write_timeout_s=settings.write_timeout_s,
        retries=settings.sync_retries,
        retry_delay_s=settings.sync_retry_delay_s,
    )
    reconciler = SyncReconciler(caller, guard_window_s=settings.sync_guard_window_s)

    service = FamilyService(
        state,
        reconciler=reconciler,
        directory=FamilyDirectory(caller),
        reporter=reporter,
    )

    if settings.realtime_url:
        transport = SseRealtimeTransport(settings.realtime_url, access_token=settings.remote_access_token)
        bundle.transport = transport
        service.realtime = RealtimeListener(
            transport, service.refresh, reconnect_delay_s=settings.realtime_reconnect_s
        )

    logger.info("Remote store: %s (realtime=%s)", settings.remote_url, bool(settings.realtime_url))
    return service, bundle


def session_user(settings) -> UserAccount | None:
    """The signed-in account from settings, or None when there is no session."""
    user_id = getattr(settings, "user_id", None)
    if not user_id:
        return None
    return UserAccount(
        id=user_id,
        email=getattr(settings, "user_email", ""),
        name=getattr(settings, "user_name", "User"),
    )
