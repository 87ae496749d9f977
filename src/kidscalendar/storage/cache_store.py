# src/kidscalendar/storage/cache_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from .snapshot import SNAPSHOT_VERSION, Snapshot, decode_snapshot, default_snapshot, encode_fields, utc_now_iso

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "kidscalendar_db_v1"
MIGRATION_FLAG_KEY = "kidscalendar_migrated_v2"


class LocalCacheStore:
    """
    SQLite key/value store holding the local family snapshot.

    - one JSON blob (SNAPSHOT_KEY) with the whole family state
    - one independent boolean (MIGRATION_FLAG_KEY) guarding the one-time migration

    Reads never raise: a missing or corrupt blob is "no data".
    Writes never raise either: the in-memory state stays the source for this session.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "cache.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("LocalCacheStore ready db=%s", self._db_path)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def _get(self, key: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return None if row is None else str(row["value"])
        finally:
            conn.close()

    def _put(self, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, key: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()

    def _load_raw(self) -> dict[str, Any]:
        try:
            raw = self._get(SNAPSHOT_KEY)
        except sqlite3.Error:
            logger.exception("Failed to read local snapshot from %s", self._db_path)
            return {}
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Local snapshot is not valid JSON; ignoring it.")
            return {}
        return data if isinstance(data, dict) else {}

    # ---- public API ----

    def has_snapshot(self) -> bool:
        return bool(self._load_raw())

    def load(self) -> Snapshot:
        data = self._load_raw()
        if not data:
            return default_snapshot()
        try:
            return decode_snapshot(data)
        except Exception:
            logger.exception("Failed to decode local snapshot; starting empty.")
            return default_snapshot()

    def save(self, **partial: Any) -> None:
        """
        Merge the given snapshot fields into the stored blob and stamp lastUpdated.

        Fields: current_user, children, guardians, preferences.
        """
        try:
            current = self._load_raw()
            current.update(encode_fields(**partial))
            current["version"] = SNAPSHOT_VERSION
            current["lastUpdated"] = utc_now_iso()
            self._put(SNAPSHOT_KEY, json.dumps(current, ensure_ascii=False))
            logger.debug("Local snapshot saved fields=%s", sorted(partial))
        except ValueError:
            raise
        except Exception:
            logger.exception("Failed to save local snapshot to %s", self._db_path)

    def clear(self) -> None:
        try:
            self._delete(SNAPSHOT_KEY)
        except sqlite3.Error:
            logger.exception("Failed to clear local snapshot")

    # ---- migration flag ----

    def is_migrated(self) -> bool:
        try:
            return self._get(MIGRATION_FLAG_KEY) == "true"
        except sqlite3.Error:
            logger.exception("Failed to read migration flag")
            return False

    def mark_migrated(self) -> None:
        try:
            self._put(MIGRATION_FLAG_KEY, "true")
        except sqlite3.Error:
            logger.exception("Failed to persist migration flag")

    def reset_migration_flag(self) -> None:
        try:
            self._delete(MIGRATION_FLAG_KEY)
            logger.info("Migration flag reset")
        except sqlite3.Error:
            logger.exception("Failed to reset migration flag")
