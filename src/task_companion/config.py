# src/task_companion/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

ENV_PREFIX = "TASKS"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# A local .env never overrides variables already set in the environment.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


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


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


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
    matrix_enabled: bool

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: Optional[str]
    matrix_rooms: List[str]

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    data_file_path: Path
    matrix_store_path: Path

    # ---- Domain ----
    timezone: str
    notify_hour: int
    backup_enabled: bool

    # ---- Forms ----
    date_lookahead_days: int
    form_timeout_seconds: float
    picker_timeout_seconds: float
    text_form_timeout_seconds: float
    page_size: int
    panel_page_size: int

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "task-companion")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasks"))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            matrix_enabled=_env_bool(_k("MATRIX_ENABLED"), False),
            matrix_homeserver=_env(_k("MATRIX_HOMESERVER")).strip(),
            matrix_user_id=_env(_k("MATRIX_USER_ID")).strip(),
            matrix_password=_env(_k("MATRIX_PASSWORD")).strip() or None,
            matrix_rooms=_env_list(_k("MATRIX_ROOMS"), []),
            data_dir=data_dir,
            data_file_path=_env_path(_k("DATA_FILE"), data_dir / "data.json"),
            matrix_store_path=_env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store"),
            timezone=_env(_k("TIMEZONE"), "Asia/Tokyo"),
            notify_hour=min(23, max(0, _env_int(_k("NOTIFY_HOUR"), 12))),
            backup_enabled=_env_bool(_k("BACKUP_ENABLED"), True),
            date_lookahead_days=min(24, max(1, _env_int(_k("DATE_LOOKAHEAD_DAYS"), 24))),
            form_timeout_seconds=_env_float(_k("FORM_TIMEOUT"), 1800.0),
            picker_timeout_seconds=_env_float(_k("PICKER_TIMEOUT"), 1800.0),
            text_form_timeout_seconds=_env_float(_k("TEXT_FORM_TIMEOUT"), 1800.0),
            page_size=min(25, max(1, _env_int(_k("PAGE_SIZE"), 25))),
            panel_page_size=max(1, _env_int(_k("PANEL_PAGE_SIZE"), 5)),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
