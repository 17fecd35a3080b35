"""Dispatch assistant tasks to configured projects."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from . import watcher
from .assistant import AssistantInvocation, AssistantRunner, AssistantRunnerError
from .projects import Project, ProjectConfig
from .registry import BackgroundTask, TaskRegistry, TaskStatus, format_footer, format_header

logger = logging.getLogger(__name__)

# Directory holding the ``ccode`` package, so detached watchers import this copy.
_PACKAGE_ROOT = Path(__file__).resolve().parent.parent


class DispatchError(RuntimeError):
    """Raised when a task cannot be dispatched or the assistant fails in the foreground."""

    def __init__(self, message: str, *, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


@dataclass(slots=True)
class DispatchOptions:
    verbose: bool = False
    dry_run: bool = False
    background: bool = False


@dataclass(slots=True)
class DispatchResult:
    """Outcome of one dispatch call."""

    project: str
    cwd: Path
    command_line: str
    background: bool = False
    dry_run: bool = False
    returncode: int | None = None
    task_id: str | None = None
    log_file: Path | None = None
    pid: int | None = None
    error: str | None = None
    process: subprocess.Popen | None = field(default=None, repr=False)


class Dispatcher:
    """Resolve projects and run the assistant in them, foreground or background."""

    def __init__(
        self,
        projects: ProjectConfig,
        registry: TaskRegistry,
        *,
        runner: AssistantRunner | None = None,
        echo: Callable[[str], None] | None = None,
        reap_watchers: bool = False,
    ) -> None:
        self._projects = projects
        self._registry = registry
        self._runner = runner or AssistantRunner()
        self._echo = echo or print
        # Long-lived hosts wait on each watcher so finished ones are not left as zombies.
        self._reap_watchers = reap_watchers

    def resolve(self, project_name: str, task: str) -> tuple[Project, AssistantInvocation]:
        """Look up a project and build the assistant invocation for ``task``."""

        project = self._projects.get_project(project_name)
        executable = self._projects.executable
        resolved = self._projects.resolve_project_path(project.path)

        if not resolved.exists():
            raise DispatchError(
                f"Project directory does not exist: {resolved}\n"
                "Please check the path in your config file."
            )
        if not resolved.is_dir():
            raise DispatchError(f"Path is not a directory: {resolved}")

        invocation = AssistantInvocation(
            executable=executable,
            cwd=resolved,
            prompt=task,
            args=tuple(project.default_args),
        )
        return project, invocation

    def dispatch(
        self,
        project_name: str,
        task: str,
        options: DispatchOptions | None = None,
    ) -> DispatchResult:
        options = options or DispatchOptions()
        project, invocation = self.resolve(project_name, task)

        self._echo(f"Project: {project.name}")
        self._echo(f"Path: {invocation.cwd}")
        self._echo(f"Task: {task}")

        result = DispatchResult(
            project=project.name,
            cwd=invocation.cwd,
            command_line=invocation.command_line,
            background=options.background,
            dry_run=options.dry_run,
        )

        if options.dry_run:
            mode = " (in background)" if options.background else ""
            self._echo(f"Dry run - would execute{mode}:")
            self._echo(f"  cd {invocation.cwd}")
            self._echo(f"  {invocation.command_line}")
            self._echo(f"  (with input: {task})")
            return result

        if options.verbose:
            self._echo(f"Executing: {invocation.command_line}")
            self._echo(f"Working directory: {invocation.cwd}")

        if options.background:
            return self._launch_background(project, invocation, result)

        result.returncode = self._run_foreground(invocation)
        self._echo("Task completed successfully")
        return result

    def _run_foreground(self, invocation: AssistantInvocation) -> int:
        self._echo("Launching assistant...")
        logger.debug(
            "Running assistant in foreground",
            extra={"command": invocation.command_line, "cwd": str(invocation.cwd)},
        )
        try:
            returncode = asyncio.run(self._runner.run(invocation))
        except AssistantRunnerError as exc:
            raise DispatchError(str(exc)) from exc

        if returncode != 0:
            raise DispatchError(f"Assistant exited with code {returncode}", returncode=returncode)
        return returncode

    def _watcher_environment(self) -> dict[str, str]:
        env = dict(os.environ)
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = (
            f"{_PACKAGE_ROOT}{os.pathsep}{existing}" if existing else str(_PACKAGE_ROOT)
        )
        return env

    def _launch_background(
        self,
        project: Project,
        invocation: AssistantInvocation,
        result: DispatchResult,
    ) -> DispatchResult:
        task_id = self._registry.generate_task_id()
        log_file = self._registry.log_file_path(task_id)
        started_at = self._registry.now()
        command = watcher.build_command(
            home_dir=self._registry.home_dir,
            task_id=task_id,
            log_file=log_file,
            invocation=invocation,
        )
        process: subprocess.Popen | None = None
        spawn_error: str | None = None

        with log_file.open("a", encoding="utf-8") as log:
            log.write(
                format_header(
                    task_id=task_id,
                    project=project.name,
                    task=invocation.prompt,
                    started_at=started_at,
                )
            )
            log.flush()

            # The watcher's completion update waits on this lock, so it always
            # lands after the running record is stored.
            with self._registry.transaction() as batch:
                try:
                    process = subprocess.Popen(
                        command,
                        stdin=subprocess.PIPE,
                        stdout=log,
                        stderr=subprocess.STDOUT,
                        start_new_session=True,
                        env=self._watcher_environment(),
                    )
                except OSError as exc:
                    spawn_error = f"Failed to start background task: {exc}"
                    ended_at = self._registry.now()
                    log.write(f"Error: {spawn_error}\n")
                    log.write(format_footer(ended_at=ended_at, exit_code=None))
                    log.flush()
                    batch.add(
                        BackgroundTask(
                            id=task_id,
                            project=project.name,
                            task=invocation.prompt,
                            pid=0,
                            status=TaskStatus.FAILED,
                            started_at=started_at,
                            ended_at=ended_at,
                            log_file=log_file,
                        )
                    )
                else:
                    _feed_prompt(process, invocation.prompt)
                    batch.add(
                        BackgroundTask(
                            id=task_id,
                            project=project.name,
                            task=invocation.prompt,
                            pid=process.pid,
                            status=TaskStatus.RUNNING,
                            started_at=started_at,
                            log_file=log_file,
                        )
                    )

        result.task_id = task_id
        result.log_file = log_file

        if process is None:
            logger.error(
                "Background task failed to start",
                extra={"task_id": task_id, "project": project.name, "error": spawn_error},
            )
            self._echo(f"Error: {spawn_error}")
            self._echo(f"Task {task_id} recorded as failed; log file: {log_file}")
            result.error = spawn_error
            return result

        if self._reap_watchers:
            threading.Thread(target=process.wait, name=f"reap-{task_id}", daemon=True).start()

        logger.info(
            "Background task started",
            extra={"task_id": task_id, "project": project.name, "pid": process.pid},
        )
        self._echo(f"Started background task: {task_id}")
        self._echo(f"Log file: {log_file}")
        self._echo(f"View logs with: ccode logs {task_id}")

        result.pid = process.pid
        result.process = process
        return result


def _feed_prompt(process: subprocess.Popen, prompt: str) -> None:
    """Hand the task text to a freshly spawned watcher on its stdin."""

    if process.stdin is None:
        return
    # A watcher that dies during startup closes the pipe; its record is reconciled later.
    with contextlib.suppress(BrokenPipeError):
        process.stdin.write(prompt.encode("utf-8"))
    with contextlib.suppress(BrokenPipeError):
        process.stdin.close()


__all__ = ["DispatchError", "DispatchOptions", "DispatchResult", "Dispatcher"]
