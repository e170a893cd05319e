"""RBAC settings (conventional Pydantic v2 settings)."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---- Defaults ---------------------------------------------------------------

DEFAULT_STORAGE_ROOT = Path("./data")
DEFAULT_DB_FILENAME = "rbac.sqlite"
DEFAULT_SQLITE_PATH = DEFAULT_STORAGE_ROOT / "db" / DEFAULT_DB_FILENAME
DEFAULT_DATABASE_URL = f"sqlite:///{DEFAULT_SQLITE_PATH.as_posix()}"
DEFAULT_TIMEZONE = "Asia/Kolkata"


class Settings(BaseSettings):
    """Settings loaded from ERP_RBAC_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ERP_RBAC_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Core
    logging_level: str = "INFO"

    # Database
    database_url: str = DEFAULT_DATABASE_URL
    database_echo: bool = False
    database_pool_size: int = Field(5, ge=1)  # ignored by sqlite
    database_max_overflow: int = Field(10, ge=0)
    database_pool_timeout: int = Field(30, gt=0)
    sqlite_busy_timeout_ms: int = Field(30_000, ge=0)

    # Evaluation
    default_timezone: str = DEFAULT_TIMEZONE
    seed_on_startup: bool = True

    # ---- Validators ----

    @field_validator("logging_level", mode="before")
    @classmethod
    def _v_log_level(cls, v: Any) -> str:
        candidate = str(v or "INFO").strip().upper()
        if candidate not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown logging level: {v!r}")
        return candidate

    @field_validator("database_url", mode="before")
    @classmethod
    def _v_database_url(cls, v: Any) -> str:
        candidate = str(v or "").strip()
        if not candidate:
            return DEFAULT_DATABASE_URL
        return candidate

    @field_validator("default_timezone", mode="before")
    @classmethod
    def _v_timezone(cls, v: Any) -> str:
        candidate = str(v or DEFAULT_TIMEZONE).strip()
        try:
            ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {candidate!r}") from exc
        return candidate

    # ---- Convenience ----

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.default_timezone)


@lru_cache(maxsize=1)
def _build_settings() -> Settings:
    return Settings()


def get_settings() -> Settings:
    return _build_settings()


def reload_settings() -> Settings:
    _build_settings.cache_clear()
    return _build_settings()


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DEFAULT_TIMEZONE",
    "Settings",
    "get_settings",
    "reload_settings",
]
