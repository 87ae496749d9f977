# tests/test_cache_store.py

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from kidscalendar.family.models import Guardian, Language, Preferences, TimeFormat, UserAccount
from kidscalendar.storage.cache_store import SNAPSHOT_KEY, LocalCacheStore
from kidscalendar.storage.snapshot import decode_snapshot, encode_fields
from kidscalendar.tasks.task_models import Frequency, RecurrenceRule, TaskStatus

from .fakes import make_child, make_reward, make_task


def _write_raw(path: Path, value: str) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(
            "INSERT OR REPLACE INTO kv(key, value, updated_at) VALUES (?, ?, 0)",
            (SNAPSHOT_KEY, value),
        )
        conn.commit()
    finally:
        conn.close()


def test_empty_store_loads_defaults(cache: LocalCacheStore) -> None:
    assert not cache.has_snapshot()
    snap = cache.load()
    assert snap.children == []
    assert snap.current_user is None
    assert snap.preferences == Preferences()


def test_save_merges_fields_and_survives_reopen(cache: LocalCacheStore, tmp_path: Path) -> None:
    task = make_task(status=TaskStatus.ACTIVE, recurrence=RecurrenceRule(Frequency.DAILY))
    task.started_at_ms = 123
    child = make_child(stars=9, tasks=[task], rewards=[make_reward()])

    cache.save(children=[child])
    cache.save(preferences=Preferences(time_format=TimeFormat.H24, language=Language.EN))
    cache.save(current_user=UserAccount(email="a@b.c", name="A", id="u1", family_id="fam_1"))

    reopened = LocalCacheStore(tmp_path / "cache.sqlite3")
    snap = reopened.load()
    assert snap.children == [child]
    assert snap.preferences.time_format is TimeFormat.H24
    assert snap.current_user is not None and snap.current_user.family_id == "fam_1"
    assert snap.last_updated


def test_corrupt_blob_reads_as_no_data(cache: LocalCacheStore, settings) -> None:
    _write_raw(settings.cache_db_path, "{not json")
    assert not cache.has_snapshot()
    assert cache.load().children == []


def test_unknown_field_is_a_programming_error(cache: LocalCacheStore) -> None:
    with pytest.raises(ValueError):
        cache.save(pets=[])


def test_clear_keeps_migration_flag(cache: LocalCacheStore) -> None:
    cache.save(children=[make_child()])
    cache.mark_migrated()
    cache.clear()

    assert not cache.has_snapshot()
    assert cache.is_migrated()

    cache.reset_migration_flag()
    assert not cache.is_migrated()


def test_snapshot_keeps_web_client_key_names() -> None:
    blob = encode_fields(
        children=[make_child()],
        guardians=[Guardian(id="u1", name="Ana")],
        preferences=Preferences(learning_mode=True),
    )
    assert set(blob) == {"children", "guardians", "timeFormat", "language", "learningMode"}
    assert "redemptionHistory" in blob["children"][0]

    # A blob written by the web client decodes, skipping entries without ids.
    decoded = decode_snapshot(
        json.loads(
            json.dumps(
                {
                    "children": [{"id": "c_1_a", "name": "Mia", "tasks": [{"id": "t1", "time": "08:00 AM"}, {}]}],
                    "timeFormat": "24h",
                    "learningMode": True,
                }
            )
        )
    )
    assert [t.id for t in decoded.children[0].tasks] == ["t1"]
    assert decoded.preferences.time_format is TimeFormat.H24
    assert decoded.preferences.learning_mode is True
