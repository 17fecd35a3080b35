from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from ccode.registry import BackgroundTask, TaskRegistry, TaskStatus

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry(tmp_path: Path) -> TaskRegistry:
    return TaskRegistry(tmp_path / "home", clock=lambda: NOW)


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[..., Path]:
    """Write an executable shell script standing in for the assistant CLI."""

    def _make(body: str, name: str = "claude") -> Path:
        script = tmp_path / "bin" / name
        script.parent.mkdir(parents=True, exist_ok=True)
        script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        script.chmod(0o755)
        return script

    return _make


@pytest.fixture
def make_projects_file(tmp_path: Path) -> Callable[..., Path]:
    def _make(projects: dict[str, Any], *, claude_path: str | None = None) -> Path:
        document: dict[str, Any] = {"projects": projects}
        if claude_path is not None:
            document["settings"] = {"claudePath": claude_path}
        path = tmp_path / "claude-projects.yaml"
        path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
        return path

    return _make


@pytest.fixture
def make_task(registry: TaskRegistry) -> Callable[..., BackgroundTask]:
    """Build a valid task record (not stored)."""

    counter = {"value": 0}

    def _make(
        *,
        status: TaskStatus = TaskStatus.RUNNING,
        started_at: datetime = NOW,
        ended_at: datetime | None = None,
        pid: int = 999_999,
        exit_code: int | None = None,
        project: str = "demo",
    ) -> BackgroundTask:
        counter["value"] += 1
        task_id = f"task-test-{counter['value']}"
        if status is not TaskStatus.RUNNING and ended_at is None:
            ended_at = started_at
        return BackgroundTask(
            id=task_id,
            project=project,
            task=f"do thing {counter['value']}",
            pid=pid,
            status=status,
            started_at=started_at,
            ended_at=ended_at,
            log_file=registry.log_file_path(task_id),
            exit_code=exit_code,
        )

    return _make
