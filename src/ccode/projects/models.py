"""Project configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectEntry(BaseModel):
    """A project as written under the ``projects`` key of the config file."""

    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(..., description="Absolute, ~-prefixed, or home-relative directory.")
    description: str | None = Field(default=None, description="Human-friendly description.")
    default_args: list[str] = Field(
        default_factory=list,
        alias="defaultArgs",
        description="Arguments passed to the assistant executable on every dispatch.",
    )

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Project path must not be empty")
        return normalized

    @field_validator("default_args", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        raise TypeError("defaultArgs must be a sequence of strings")


class Project(ProjectEntry):
    """A resolved project, keyed by its name in the config file."""

    name: str


class ProjectSettings(BaseModel):
    """Global settings section of the config file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    claude_path: str = Field(default="claude", alias="claudePath")


class ProjectsDocument(BaseModel):
    """Top-level structure of the project config file."""

    projects: dict[str, ProjectEntry]
    settings: ProjectSettings = Field(default_factory=ProjectSettings)

    @field_validator("settings", mode="before")
    @classmethod
    def _default_settings(cls, value: Any):  # type: ignore[override]
        return {} if value is None else value


__all__ = ["Project", "ProjectEntry", "ProjectSettings", "ProjectsDocument"]
