"""ccode command line interface."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Sequence

import yaml

from . import __version__
from .assistant import AssistantRunnerError
from .config import CcodeSettings, configure_logging, get_settings
from .dispatcher import DispatchError, DispatchOptions, Dispatcher
from .projects import ProjectConfig, ProjectConfigError
from .registry import BackgroundTask, RegistryError, TaskRegistry, TaskStatus, follow_log

logger = logging.getLogger(__name__)

_STATUS_ORDER = (TaskStatus.RUNNING, TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.KILLED)


def load_projects(settings: CcodeSettings) -> ProjectConfig:
    return ProjectConfig(settings.projects_file)


def load_registry(settings: CcodeSettings) -> TaskRegistry:
    return TaskRegistry(settings.home_dir)


def build_dispatcher(settings: CcodeSettings) -> Dispatcher:
    return Dispatcher(load_projects(settings), load_registry(settings))


def _format_time(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_task(task: BackgroundTask) -> None:
    print(f"[{task.status.value}] {task.id} - {task.project}")
    print(f"  {task.task}")
    print(f"  Started: {_format_time(task.started_at)}")
    if task.ended_at is not None:
        print(f"  Ended: {_format_time(task.ended_at)}")
    if task.exit_code is not None:
        print(f"  Exit code: {task.exit_code}")
    print()


def cmd_init(args: argparse.Namespace) -> int:
    path = load_projects(get_settings()).create_sample()
    print(f"Created sample config at: {path}")
    print("Edit this file to add your projects, then run: ccode list")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    projects = load_projects(get_settings()).list_projects()
    if not projects:
        print("No projects configured.")
        return 0

    print("Configured projects:\n")
    for project in projects:
        print(f"  {project.name}")
        print(f"    Path: {project.path}")
        if project.description:
            print(f"    {project.description}")
        if project.default_args:
            print(f"    Default args: {' '.join(project.default_args)}")
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    path = Path(args.path) if args.path else Path.cwd()
    project = load_projects(get_settings()).add_project(args.name, path, args.description)
    print("Project added successfully")
    print(f"  Name: {project.name}")
    print(f"  Path: {project.path}")
    if project.description:
        print(f"  Description: {project.description}")
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    load_projects(get_settings()).remove_project(args.name)
    print("Project removed successfully")
    print(f"  Name: {args.name}")
    return 0


def cmd_dispatch(args: argparse.Namespace) -> int:
    dispatcher = build_dispatcher(get_settings())
    result = dispatcher.dispatch(
        args.project,
        args.task,
        DispatchOptions(verbose=args.verbose, dry_run=args.dry_run, background=args.background),
    )
    return 1 if result.error else 0


def cmd_batch(args: argparse.Namespace) -> int:
    batch_file = Path(args.file)
    if not batch_file.is_file():
        raise ProjectConfigError(f"File not found: {batch_file}")
    try:
        entries = yaml.safe_load(batch_file.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ProjectConfigError(f"Invalid task file: {exc}") from exc
    if not isinstance(entries, dict):
        raise ProjectConfigError("Invalid task file format. Expected YAML with project: task pairs")

    dispatcher = build_dispatcher(get_settings())
    options = DispatchOptions(dry_run=args.dry_run, background=not args.foreground)
    started = 0
    failed = 0

    print("Batch execution\n")
    for project, task in entries.items():
        if not isinstance(task, str):
            print(f"Skipping {project}: task must be a string")
            failed += 1
            continue
        try:
            result = dispatcher.dispatch(str(project), task, options)
        except (ProjectConfigError, DispatchError, RegistryError, AssistantRunnerError) as exc:
            print(f"Failed {project}: {exc}", file=sys.stderr)
            failed += 1
            continue
        if result.error:
            print(f"Failed {project}: {result.error}", file=sys.stderr)
            failed += 1
        else:
            started += 1

    print("\nSummary:")
    print(f"  Started: {started}")
    if failed:
        print(f"  Failed: {failed}")
    return 1 if failed else 0


def cmd_status(args: argparse.Namespace) -> int:
    settings = get_settings()
    registry = load_registry(settings)
    registry.reconcile_statuses()
    all_tasks = registry.get_tasks()

    if args.all:
        tasks = all_tasks
    else:
        since = registry.now() - timedelta(hours=settings.recent_window_hours)
        tasks = [
            task
            for task in all_tasks
            if task.status is TaskStatus.RUNNING
            or (task.ended_at is not None and task.ended_at > since)
        ]

    if args.json:
        print(json.dumps([task.to_document() for task in tasks], indent=2))
        return 0

    if not all_tasks:
        print("No background tasks found.")
        print("Run a task with: ccode dispatch <project> <task> --background")
        return 0
    if not tasks:
        print("No recent background tasks.")
        print("Use --all to show all tasks")
        return 0

    print("Background tasks\n")
    for status in _STATUS_ORDER:
        group = [task for task in tasks if task.status is status]
        if not group:
            continue
        print(f"{status.value.capitalize()}:\n")
        for task in group:
            _print_task(task)

    print(f"Total: {len(tasks)} tasks")
    if not args.all:
        print("Use --all to show all tasks")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    registry = load_registry(get_settings())
    task = registry.get_task(args.task_id)
    if task is None:
        print(f"Error: Task not found: {args.task_id}", file=sys.stderr)
        print("Run: ccode status to see all tasks", file=sys.stderr)
        return 1
    if not task.log_file.is_file():
        print("Error: Log file not found", file=sys.stderr)
        return 1

    print(f"Task ID: {task.id}")
    print(f"Project: {task.project}")
    print(f"Status: {task.status.value}")
    print("-" * 60)
    print()

    if not args.follow:
        print(task.log_file.read_text(encoding="utf-8", errors="replace"))
        return 0

    def _still_running() -> bool:
        registry.reconcile_statuses()
        current = registry.get_task(task.id)
        return current is not None and current.status is TaskStatus.RUNNING

    try:
        for chunk in follow_log(task.log_file, is_running=_still_running):
            sys.stdout.write(chunk)
            sys.stdout.flush()
    except KeyboardInterrupt:
        pass
    return 0


def cmd_kill(args: argparse.Namespace) -> int:
    registry = load_registry(get_settings())
    task = registry.get_task(args.task_id)
    if task is None:
        print(f"Error: Task not found: {args.task_id}", file=sys.stderr)
        print("Run: ccode status to see all tasks", file=sys.stderr)
        return 1
    if task.status is not TaskStatus.RUNNING:
        print(f"Task is not running (status: {task.status.value})")
        return 0

    if not registry.kill_task(task.id):
        print("Error: Failed to kill task", file=sys.stderr)
        return 1

    print("Task killed successfully")
    print(f"  Task ID: {task.id}")
    print(f"  Project: {task.project}")
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    settings = get_settings()
    days = args.days if args.days is not None else settings.retention_days
    if days < 1:
        raise RegistryError("--days must be >= 1")
    removed = load_registry(settings).cleanup_old_tasks(timedelta(days=days))
    print(f"Cleaned up {len(removed)} old task(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccode", description="Multi-project manager for Claude Code"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    p_init = sub.add_parser("init", help="Create a sample project config file")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="List configured projects")
    p_list.set_defaults(func=cmd_list)

    p_add = sub.add_parser("add", help="Add a project to the config")
    p_add.add_argument("name")
    p_add.add_argument("path", nargs="?", help="Project directory (defaults to the current one)")
    p_add.add_argument("-d", "--description")
    p_add.set_defaults(func=cmd_add)

    p_remove = sub.add_parser("remove", aliases=["rm"], help="Remove a project from the config")
    p_remove.add_argument("name")
    p_remove.set_defaults(func=cmd_remove)

    p_dispatch = sub.add_parser(
        "dispatch", aliases=["run"], help="Run a Claude task in the specified project"
    )
    p_dispatch.add_argument("project")
    p_dispatch.add_argument("task")
    p_dispatch.add_argument("-b", "--background", action="store_true", help="Run in background")
    p_dispatch.add_argument(
        "--dry-run", action="store_true", help="Show what would be executed without running it"
    )
    p_dispatch.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    p_dispatch.set_defaults(func=cmd_dispatch)

    p_batch = sub.add_parser("batch", help="Dispatch project: task pairs from a YAML file")
    p_batch.add_argument("file")
    p_batch.add_argument(
        "--foreground", action="store_true", help="Run tasks one by one in the foreground"
    )
    p_batch.add_argument("--dry-run", action="store_true")
    p_batch.set_defaults(func=cmd_batch)

    p_status = sub.add_parser("status", help="Show status of background tasks")
    p_status.add_argument("-a", "--all", action="store_true", help="Show all tasks")
    p_status.add_argument("--json", action="store_true", help="Output JSON")
    p_status.set_defaults(func=cmd_status)

    p_logs = sub.add_parser("logs", help="View logs for a background task")
    p_logs.add_argument("task_id")
    p_logs.add_argument("-f", "--follow", action="store_true", help="Follow log output")
    p_logs.set_defaults(func=cmd_logs)

    p_kill = sub.add_parser("kill", help="Stop a running background task")
    p_kill.add_argument("task_id")
    p_kill.set_defaults(func=cmd_kill)

    p_cleanup = sub.add_parser("cleanup", help="Remove old finished tasks and their logs")
    p_cleanup.add_argument(
        "--days", type=int, default=None, help="Retention window in days (default: 7)"
    )
    p_cleanup.set_defaults(func=cmd_cleanup)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    settings = get_settings()
    configure_logging("DEBUG" if getattr(args, "verbose", False) else settings.log_level)

    try:
        return args.func(args)
    except (ProjectConfigError, DispatchError, RegistryError, AssistantRunnerError) as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
