"""Settings storage for restore configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "MSSQL_RESTORE_SETTINGS_PATH",
        Path.home() / ".config" / "mssql-restore" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
# Used when the server does not report InstanceDefaultDataPath.
DEFAULT_STORAGE_DIRECTORY = "/var/opt/mssql/data"
DEFAULT_SQLCMD_PATH = "sqlcmd"
DEFAULT_STATS_PERCENT = 10

DEFAULT_SETTINGS: dict[str, Any] = {
    "server": "localhost",
    "username": None,
    "trusted_connection": False,
    "sqlcmd_path": DEFAULT_SQLCMD_PATH,
    "login_timeout_seconds": 30,
    "default_storage_directory": DEFAULT_STORAGE_DIRECTORY,
    "download_dir": None,
    "download_timeout_seconds": None,
    "restore_stats_percent": DEFAULT_STATS_PERCENT,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def get_optional_int(key: str) -> int | None:
    value = get_setting(key)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_storage_fallback() -> str:
    """Directory used when the server reports no default data path."""
    value = get_setting("default_storage_directory")
    return str(value) if value else DEFAULT_STORAGE_DIRECTORY


load_settings()


def get_stats_percent() -> int | None:
    """Progress reporting interval for RESTORE, in percent.

    Unset, invalid or non-positive values turn progress off; values above 100
    are clamped to 100.
    """
    value = get_optional_int("restore_stats_percent")
    if value is None or value <= 0:
        return None
    return min(value, 100)
