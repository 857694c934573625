# src/tasksync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (an empty server URL means "offline remote").
- Parse/Back4App variable names are accepted as fallbacks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ENV_PREFIX = "TASKSYNC"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


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

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    snapshot_db_path: Path

    # ---- Remote (Parse / Back4App REST) ----
    server_url: str
    app_id: str
    rest_api_key: str
    session_token: Optional[str]

    # ---- Sync tuning ----
    max_concurrency: int
    request_timeout_seconds: float
    retry_base_delay_seconds: float
    retry_factor: float
    retry_max_attempts: int

    @property
    def remote_configured(self) -> bool:
        return bool(self.server_url.strip())

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "tasksync") or "tasksync"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasksync"))
        snapshot_db_path = _env_path(_k("SNAPSHOT_DB_PATH"), data_dir / "tasks.sqlite3")

        server_url = (_first_env(_k("SERVER_URL"), "PARSE_SERVER_URL", default="") or "").strip()
        app_id = (_first_env(_k("APP_ID"), "PARSE_APP_ID", default="") or "").strip()
        rest_api_key = (_first_env(_k("REST_API_KEY"), "PARSE_REST_API_KEY", default="") or "").strip()
        session_token = _first_env(_k("SESSION_TOKEN"), default=None)

        # A zero/negative pool would never drain the queue.
        max_concurrency = max(1, _env_int(_k("MAX_CONCURRENCY"), 4))
        request_timeout_seconds = _env_float(_k("REQUEST_TIMEOUT_SECONDS"), 1.0)
        retry_base_delay_seconds = _env_float(_k("RETRY_BASE_DELAY_SECONDS"), 0.2)
        retry_factor = _env_float(_k("RETRY_FACTOR"), 2.0)
        retry_max_attempts = max(1, _env_int(_k("RETRY_MAX_ATTEMPTS"), 5))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            snapshot_db_path=snapshot_db_path,
            server_url=server_url,
            app_id=app_id,
            rest_api_key=rest_api_key,
            session_token=session_token,
            max_concurrency=max_concurrency,
            request_timeout_seconds=request_timeout_seconds,
            retry_base_delay_seconds=retry_base_delay_seconds,
            retry_factor=retry_factor,
            retry_max_attempts=retry_max_attempts,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide Settings, reading the environment on first use."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
