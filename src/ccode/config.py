"""Configuration management for ccode."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CcodeSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    projects_file: Path = Field(
        default=Path("~/.claude-projects.yaml"), validation_alias="CCODE_PROJECTS_FILE"
    )
    home_dir: Path = Field(default=Path("~/.claude-projects"), validation_alias="CCODE_HOME")
    log_level: str = Field(default="WARNING", validation_alias="CCODE_LOG_LEVEL")
    retention_days: int = Field(default=7, validation_alias="CCODE_RETENTION_DAYS")
    recent_window_hours: int = Field(default=24, validation_alias="CCODE_RECENT_WINDOW_HOURS")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "CCODE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("retention_days", "recent_window_hours")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("CCODE_RETENTION_DAYS and CCODE_RECENT_WINDOW_HOURS must be >= 1")
        return value

    @property
    def tasks_file(self) -> Path:
        return self.home_dir / "tasks.json"

    @property
    def logs_dir(self) -> Path:
        return self.home_dir / "logs"


@lru_cache(maxsize=1)
def get_settings() -> CcodeSettings:
    """Return cached settings instance."""

    settings = CcodeSettings()
    settings.projects_file = settings.projects_file.expanduser().resolve()
    settings.home_dir = settings.home_dir.expanduser().resolve()
    return settings


def configure_logging(level: str) -> None:
    """Configure root logging for ccode entry points."""

    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


__all__ = ["CcodeSettings", "configure_logging", "get_settings"]
