# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from kidscalendar.core.service import FamilyService
from kidscalendar.core.state import AppState
from kidscalendar.family.models import UserAccount
from kidscalendar.storage.cache_store import LocalCacheStore
from kidscalendar.sync.calls import RemoteCaller
from kidscalendar.sync.reconciler import SyncReconciler

from .fakes import FakeRemoteStore, FakeReporter


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        # Paths (tmp per test run)
        data_dir=tmp_path,
        cache_db_path=tmp_path / "cache.sqlite3",
        # Remote (tests wire fakes by hand)
        remote_enabled=False,
        realtime_url=None,
        # Sync tuning
        logout_timeout_s=0.2,
        sync_guard_window_s=5.0,
        # Behaviour
        credit_stars_on_completion=False,
        default_time_format="12h",
        default_language="es",
    )


@pytest.fixture()
def cache(settings: SimpleNamespace) -> LocalCacheStore:
    return LocalCacheStore(settings.cache_db_path)


@pytest.fixture()
def state(settings: SimpleNamespace, cache: LocalCacheStore) -> AppState:
    return AppState(settings=settings, cache=cache)


@pytest.fixture()
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def caller(remote: FakeRemoteStore) -> RemoteCaller:
    return RemoteCaller(remote, read_timeout_s=1.0, write_timeout_s=1.0, retries=1, retry_delay_s=0.0)


@pytest.fixture()
def reconciler(caller: RemoteCaller) -> SyncReconciler:
    return SyncReconciler(caller, guard_window_s=5.0)


@pytest.fixture()
def reporter() -> FakeReporter:
    return FakeReporter()


@pytest.fixture()
def service(state: AppState, reconciler: SyncReconciler, reporter: FakeReporter) -> FamilyService:
    """FamilyService signed in to family fam_1 against the in-memory remote."""
    state.current_user = UserAccount(email="ana@example.com", name="Ana", id="u1", family_id="fam_1")
    return FamilyService(state, reconciler=reconciler, reporter=reporter)
