from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///./data/app.db"
DEFAULT_STORAGE_ROOT = "./data/storage"


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None or value == "" else value


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


@dataclass(frozen=True)
class Settings:
    app_version: str
    database_url: str
    storage_root: str
    log_level: str
    auto_create_schema: bool
    page_limit_default: int
    page_limit_max: int


def get_settings() -> Settings:
    # Read on every call: tests and the CLI flip env vars between runs.
    return Settings(
        app_version=_getenv_str("APP_VERSION", "0.1.0"),
        database_url=_getenv_str("DATABASE_URL", DEFAULT_DATABASE_URL),
        storage_root=_getenv_str("STORAGE_ROOT", DEFAULT_STORAGE_ROOT),
        log_level=_getenv_str("LOG_LEVEL", "INFO").upper(),
        auto_create_schema=_getenv_bool("AUTO_CREATE_SCHEMA", True),
        page_limit_default=_getenv_int("PAGE_LIMIT_DEFAULT", 50),
        page_limit_max=_getenv_int("PAGE_LIMIT_MAX", 200),
    )


def clamp_limit(raw: int | None) -> int:
    settings = get_settings()
    if raw is None:
        return settings.page_limit_default
    try:
        v = int(raw)
    except Exception:
        return settings.page_limit_default
    if v < 1:
        v = 1
    if v > settings.page_limit_max:
        v = settings.page_limit_max
    return v


def clamp_offset(raw: int | None) -> int:
    if raw is None:
        return 0
    try:
        v = int(raw)
    except Exception:
        return 0
    return max(v, 0)
