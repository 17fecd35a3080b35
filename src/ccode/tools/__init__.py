"""Tool registration for the ccode MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from fastmcp import FastMCP

from ..dispatcher import DispatchOptions, Dispatcher
from ..projects import ProjectConfig
from ..registry import TaskRegistry, TaskStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    list_projects: Any
    dispatch_task: Any
    task_status: Any
    task_logs: Any
    kill_task: Any
    cleanup_tasks: Any


def register_tools(
    server: FastMCP,
    *,
    projects: ProjectConfig,
    registry: TaskRegistry,
    dispatcher: Dispatcher,
) -> ToolHandles:
    """Register ccode's MCP tools on the server."""

    def _list_projects() -> list[dict[str, Any]]:
        """List configured projects."""

        catalog = [
            {
                "name": project.name,
                "path": project.path,
                "description": project.description,
                "default_args": project.default_args,
            }
            for project in projects.list_projects()
        ]
        logger.debug("Listing projects", extra={"count": len(catalog)})
        return catalog

    def _dispatch_task(project: str, task: str, dry_run: bool = False) -> dict[str, Any]:
        """Start the assistant in the background for ``project``."""

        result = dispatcher.dispatch(
            project, task, DispatchOptions(dry_run=dry_run, background=True)
        )
        return {
            "project": result.project,
            "cwd": str(result.cwd),
            "command": result.command_line,
            "dry_run": result.dry_run,
            "task_id": result.task_id,
            "pid": result.pid,
            "log_file": str(result.log_file) if result.log_file else None,
            "error": result.error,
        }

    def _task_status(task_id: str | None = None, status: str | None = None) -> dict[str, Any]:
        """Reconcile and report background tasks, optionally one task or one status."""

        registry.reconcile_statuses()
        if task_id is not None:
            task = registry.get_task(task_id)
            if task is None:
                raise ValueError(f"Unknown task '{task_id}'")
            return {"tasks": [task.to_document()]}

        wanted = TaskStatus(status) if status else None
        tasks = registry.get_tasks(wanted)
        counts: dict[str, int] = {}
        for task in tasks:
            counts[task.status.value] = counts.get(task.status.value, 0) + 1
        return {"tasks": [task.to_document() for task in tasks], "status_counts": counts}

    def _task_logs(task_id: str, max_chars: int = 20000) -> dict[str, Any]:
        """Return the tail of a background task's log."""

        task = registry.get_task(task_id)
        if task is None:
            raise ValueError(f"Unknown task '{task_id}'")
        if not task.log_file.is_file():
            raise ValueError(f"Log file not found for task '{task_id}'")

        content = task.log_file.read_text(encoding="utf-8", errors="replace")
        truncated = max_chars > 0 and len(content) > max_chars
        return {
            "task_id": task.id,
            "status": task.status.value,
            "truncated": truncated,
            "content": content[-max_chars:] if truncated else content,
        }

    def _kill_task(task_id: str) -> dict[str, Any]:
        """Send SIGTERM to a running background task."""

        killed = registry.kill_task(task_id)
        task = registry.get_task(task_id)
        logger.info("Kill requested", extra={"task_id": task_id, "killed": killed})
        return {
            "task_id": task_id,
            "killed": killed,
            "status": task.status.value if task is not None else None,
        }

    def _cleanup_tasks(retention_days: int = 7) -> dict[str, Any]:
        """Remove finished tasks older than ``retention_days`` along with their logs."""

        if retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        removed = registry.cleanup_old_tasks(timedelta(days=retention_days))
        return {"removed": [task.id for task in removed]}

    tool_list = server.tool(
        name="list_projects",
        description="List projects from the ccode config with their directories.",
    )(_list_projects)

    tool_dispatch = server.tool(
        name="dispatch_task",
        description=(
            "Run a Claude Code task in a configured project in the background. "
            "Returns the task id and log file; set dry_run to preview the command."
        ),
        annotations={"destructiveHint": False, "openWorldHint": True},
    )(_dispatch_task)

    tool_status = server.tool(
        name="task_status",
        description="Show background task records after reconciling them with live processes.",
    )(_task_status)

    tool_logs = server.tool(
        name="task_logs",
        description="Read the log of a background task (tail limited by max_chars).",
    )(_task_logs)

    tool_kill = server.tool(
        name="kill_task",
        description="Stop a running background task by sending it SIGTERM.",
        annotations={"destructiveHint": True},
    )(_kill_task)

    tool_cleanup = server.tool(
        name="cleanup_tasks",
        description="Delete finished tasks started before the retention window and their logs.",
        annotations={"destructiveHint": True},
    )(_cleanup_tasks)

    return ToolHandles(
        list_projects=tool_list,
        dispatch_task=tool_dispatch,
        task_status=tool_status,
        task_logs=tool_logs,
        kill_task=tool_kill,
        cleanup_tasks=tool_cleanup,
    )


__all__ = ["ToolHandles", "register_tools"]
