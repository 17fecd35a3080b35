"""Data models for background task tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TaskStatus(str, Enum):
    """Background task lifecycle status.

    ``running`` is the only non-terminal state; it may move to any of the
    other three, and nothing leaves a terminal state.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING

    def can_transition_to(self, target: TaskStatus) -> bool:
        return self is TaskStatus.RUNNING and target is not TaskStatus.RUNNING


_EXIT_CODE_STATUSES = {TaskStatus.COMPLETED, TaskStatus.FAILED}


class BackgroundTask(BaseModel):
    """Persisted metadata for one dispatched background task."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    project: str
    task: str
    pid: int
    status: TaskStatus = TaskStatus.RUNNING
    started_at: datetime = Field(alias="startedAt")
    ended_at: datetime | None = Field(default=None, alias="endedAt")
    log_file: Path = Field(alias="logFile")
    exit_code: int | None = Field(default=None, alias="exitCode")

    @field_validator("started_at", "ended_at")
    @classmethod
    def _ensure_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_status_fields(self) -> BackgroundTask:
        if (self.status is TaskStatus.RUNNING) != (self.ended_at is None):
            raise ValueError("endedAt must be absent exactly while status is running")
        if self.exit_code is not None and self.status not in _EXIT_CODE_STATUSES:
            raise ValueError("exitCode is only recorded for completed or failed tasks")
        return self

    def to_document(self) -> dict[str, Any]:
        """Serialize with the registry file's camelCase keys, omitting absent fields."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def merged(self, updates: dict[str, Any]) -> BackgroundTask:
        """Return a validated copy with ``updates`` (field names) applied."""

        data = self.model_dump()
        data.update(updates)
        return BackgroundTask.model_validate(data)


__all__ = ["BackgroundTask", "TaskStatus"]
