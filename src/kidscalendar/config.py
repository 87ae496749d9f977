# src/kidscalendar/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time: without a remote URL the app runs local-only.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "KIDSCAL"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load .env from the working directory; real environment variables win."""
    load_dotenv(override=False)


_load_dotenv()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_opt(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    cache_db_path: Path

    # ---- Remote store (PostgREST / Supabase) ----
    remote_url: str | None
    remote_api_key: str | None
    remote_access_token: str | None
    realtime_url: str | None

    # ---- Session ----
    user_id: str | None
    user_email: str
    user_name: str

    # ---- Sync tuning ----
    read_timeout_s: float
    write_timeout_s: float
    logout_timeout_s: float
    sync_retries: int
    sync_retry_delay_s: float
    sync_guard_window_s: float
    realtime_reconnect_s: float

    # ---- Scheduler ----
    scheduler_tick_s: float

    # ---- Behaviour ----
    credit_stars_on_completion: bool
    default_time_format: str
    default_language: str

    @property
    def remote_enabled(self) -> bool:
        return bool(self.remote_url and self.remote_api_key)

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "kidscalendar")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/kidscalendar"))
        cache_db_path = _env_path(_k("CACHE_DB_PATH"), data_dir / "cache.sqlite3")

        remote_url = _env_opt(_k("REMOTE_URL"))
        remote_api_key = _env_opt(_k("REMOTE_API_KEY"))
        remote_access_token = _env_opt(_k("REMOTE_ACCESS_TOKEN"))
        realtime_url = _env_opt(_k("REALTIME_URL"))

        user_id = _env_opt(_k("USER_ID"))
        user_email = _env(_k("USER_EMAIL"), "").strip()
        user_name = _env(_k("USER_NAME"), "").strip() or (user_email.split("@")[0] if user_email else "User")

        read_timeout_s = _env_float(_k("READ_TIMEOUT_S"), 12.0)
        write_timeout_s = _env_float(_k("WRITE_TIMEOUT_S"), 10.0)
        logout_timeout_s = _env_float(_k("LOGOUT_TIMEOUT_S"), 5.0)
        sync_retries = _env_int(_k("SYNC_RETRIES"), 2)
        sync_retry_delay_s = _env_float(_k("SYNC_RETRY_DELAY_S"), 1.0)
        sync_guard_window_s = _env_float(_k("SYNC_GUARD_WINDOW_S"), 5.0)
        realtime_reconnect_s = _env_float(_k("REALTIME_RECONNECT_S"), 3.0)

        scheduler_tick_s = _env_float(_k("SCHEDULER_TICK_S"), 1.0)

        credit_stars_on_completion = _env_bool(_k("CREDIT_STARS_ON_COMPLETION"), False)
        default_time_format = _env(_k("TIME_FORMAT"), "12h")
        default_language = _env(_k("LANGUAGE"), "es")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            cache_db_path=cache_db_path,
            remote_url=remote_url,
            remote_api_key=remote_api_key,
            remote_access_token=remote_access_token,
            realtime_url=realtime_url,
            user_id=user_id,
            user_email=user_email,
            user_name=user_name,
            read_timeout_s=read_timeout_s,
            write_timeout_s=write_timeout_s,
            logout_timeout_s=logout_timeout_s,
            sync_retries=sync_retries,
            sync_retry_delay_s=sync_retry_delay_s,
            sync_guard_window_s=sync_guard_window_s,
            realtime_reconnect_s=realtime_reconnect_s,
            scheduler_tick_s=scheduler_tick_s,
            credit_stars_on_completion=credit_stars_on_completion,
            default_time_format=default_time_format,
            default_language=default_language,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
