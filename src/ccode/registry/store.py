"""JSON-file persistence for background tasks."""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import shutil
import signal
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator
from uuid import uuid4

from pydantic import ValidationError

from .models import BackgroundTask, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=7)


class RegistryError(RuntimeError):
    """Raised when the task registry cannot be read, written, or updated."""


def generate_task_id(now: datetime | None = None) -> str:
    """Return ``task-<epoch-ms>-<random>``; collisions are not checked."""

    moment = now or datetime.now(timezone.utc)
    return f"task-{int(moment.timestamp() * 1000)}-{uuid4().hex[:9]}"


@dataclass(slots=True)
class RegistryBatch:
    """Tasks loaded under the registry lock, written back on exit when dirty."""

    tasks: list[BackgroundTask]
    dirty: bool = False

    def index_of(self, task_id: str) -> int | None:
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                return index
        return None

    def add(self, task: BackgroundTask) -> None:
        self.tasks.append(task)
        self.dirty = True

    def replace(self, index: int, task: BackgroundTask) -> None:
        self.tasks[index] = task
        self.dirty = True

    def retain(self, tasks: list[BackgroundTask]) -> None:
        self.tasks[:] = tasks
        self.dirty = True


class TaskRegistry:
    """Durable record of background tasks stored as one JSON document.

    Every mutation is a whole-document read-modify-write performed under an
    exclusive ``flock`` on ``tasks.json.lock``; the document is replaced
    atomically, so lock-free readers always see a complete collection.
    """

    def __init__(
        self,
        home_dir: Path,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._home_dir = Path(home_dir)
        self._tasks_file = self._home_dir / "tasks.json"
        self._lock_file = self._home_dir / "tasks.json.lock"
        self._logs_dir = self._home_dir / "logs"
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def home_dir(self) -> Path:
        return self._home_dir

    @property
    def tasks_file(self) -> Path:
        return self._tasks_file

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def now(self) -> datetime:
        return self._clock()

    # ---- low-level helpers ----

    def _ensure_directories(self) -> None:
        try:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RegistryError(f"Cannot create registry directory {self._home_dir}: {exc}") from exc

    def _read_tasks(self) -> list[BackgroundTask]:
        if not self._tasks_file.exists():
            return []
        try:
            content = self._tasks_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise RegistryError(f"Cannot read task registry {self._tasks_file}: {exc}") from exc
        if not content.strip():
            return []

        try:
            document = json.loads(content)
            if not isinstance(document, list):
                raise ValueError("task registry must hold a list of tasks")
            return [BackgroundTask.model_validate(item) for item in document]
        except (ValueError, ValidationError) as exc:
            backup = self._tasks_file.with_name("tasks.corrupted.json")
            shutil.copy(self._tasks_file, backup)
            logger.error(
                "Task registry unreadable; backed up and starting empty",
                extra={"path": str(self._tasks_file), "backup": str(backup), "error": str(exc)},
            )
            return []

    def _write_tasks(self, tasks: list[BackgroundTask]) -> None:
        payload = [task.to_document() for task in tasks]
        fd, tmp_path = tempfile.mkstemp(dir=self._home_dir, prefix=".tasks-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._tasks_file)
        except OSError as exc:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            raise RegistryError(f"Cannot write task registry {self._tasks_file}: {exc}") from exc

    @contextlib.contextmanager
    def transaction(self) -> Iterator[RegistryBatch]:
        """Hold the registry lock for one read-modify-write cycle.

        The batch is persisted when the block exits normally and the batch was
        modified; an exception discards the changes.
        """

        self._ensure_directories()
        with self._lock_file.open("a+") as lock_handle:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
            try:
                batch = RegistryBatch(self._read_tasks())
                yield batch
                if batch.dirty:
                    self._write_tasks(batch.tasks)
            finally:
                fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)

    # ---- public API ----

    def generate_task_id(self) -> str:
        return generate_task_id(self.now())

    def log_file_path(self, task_id: str) -> Path:
        if not task_id or task_id in {".", ".."} or "/" in task_id or os.sep in task_id:
            raise RegistryError(f"Invalid task id for a log file name: {task_id!r}")
        self._ensure_directories()
        return self._logs_dir / f"{task_id}.log"

    def load_tasks(self) -> list[BackgroundTask]:
        return self._read_tasks()

    def add_task(self, task: BackgroundTask) -> None:
        with self.transaction() as batch:
            batch.add(task)
        logger.debug(
            "Task added",
            extra={"task_id": task.id, "project": task.project, "pid": task.pid},
        )

    def update_task(
        self,
        task_id: str,
        *,
        expected_status: TaskStatus | None = None,
        **fields: Any,
    ) -> BackgroundTask | None:
        """Merge ``fields`` into a stored task and persist the collection.

        Unknown ids are ignored, as are tasks whose status differs from
        ``expected_status`` when one is given. Returns the stored task or None.
        """

        unknown = set(fields) - set(BackgroundTask.model_fields)
        if unknown:
            raise RegistryError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        with self.transaction() as batch:
            index = batch.index_of(task_id)
            if index is None:
                logger.debug("Ignoring update for unknown task", extra={"task_id": task_id})
                return None

            current = batch.tasks[index]
            if expected_status is not None and current.status is not TaskStatus(expected_status):
                logger.debug(
                    "Ignoring update for task in unexpected state",
                    extra={
                        "task_id": task_id,
                        "status": current.status.value,
                        "expected": TaskStatus(expected_status).value,
                    },
                )
                return None

            if fields.get("status") is not None:
                target = TaskStatus(fields["status"])
                if target is not current.status and not current.status.can_transition_to(target):
                    raise RegistryError(
                        f"Cannot move task {task_id} from {current.status.value} to {target.value}"
                    )

            try:
                updated = current.merged(fields)
            except ValidationError as exc:
                raise RegistryError(f"Invalid update for task {task_id}: {exc}") from exc
            batch.replace(index, updated)
            return updated

    def get_task(self, task_id: str) -> BackgroundTask | None:
        for task in self._read_tasks():
            if task.id == task_id:
                return task
        return None

    def get_tasks(self, status: TaskStatus | None = None) -> list[BackgroundTask]:
        tasks = self._read_tasks()
        if status is None:
            return tasks
        wanted = TaskStatus(status)
        return [task for task in tasks if task.status is wanted]

    @staticmethod
    def is_process_alive(pid: int) -> bool:
        """Probe ``pid`` with signal 0; a recycled pid reads as alive."""

        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except OSError:
            return False
        return True

    def reconcile_statuses(self) -> list[BackgroundTask]:
        """Mark running tasks whose process is gone as completed.

        Without an exit code a crash cannot be told apart from a clean exit,
        so dead processes are always recorded as ``completed``.
        """

        changed: list[BackgroundTask] = []
        with self.transaction() as batch:
            now = self.now()
            for index, task in enumerate(batch.tasks):
                if task.status is not TaskStatus.RUNNING or self.is_process_alive(task.pid):
                    continue
                updated = task.merged({"status": TaskStatus.COMPLETED, "ended_at": now})
                batch.replace(index, updated)
                changed.append(updated)

        if changed:
            logger.info(
                "Reconciled stale running tasks",
                extra={"task_ids": [task.id for task in changed]},
            )
        return changed

    def kill_task(self, task_id: str) -> bool:
        """Send SIGTERM to a running task's process and mark it killed.

        The signal is sent while the registry lock is held so a completion
        update racing with the kill cannot land in between.
        """

        with self.transaction() as batch:
            index = batch.index_of(task_id)
            if index is None:
                return False
            task = batch.tasks[index]
            if task.status is not TaskStatus.RUNNING or task.pid <= 0:
                return False

            try:
                os.kill(task.pid, signal.SIGTERM)
            except OSError as exc:
                logger.warning(
                    "Failed to signal task process",
                    extra={"task_id": task_id, "pid": task.pid, "error": str(exc)},
                )
                return False

            batch.replace(
                index,
                task.merged(
                    {"status": TaskStatus.KILLED, "ended_at": self.now(), "exit_code": None}
                ),
            )

        logger.info("Task killed", extra={"task_id": task_id, "pid": task.pid})
        return True

    def cleanup_old_tasks(self, retention: timedelta = DEFAULT_RETENTION) -> list[BackgroundTask]:
        """Drop finished tasks started before the retention window, with their logs."""

        with self.transaction() as batch:
            cutoff = self.now() - retention
            keep: list[BackgroundTask] = []
            removed: list[BackgroundTask] = []
            for task in batch.tasks:
                if task.status is TaskStatus.RUNNING or task.started_at > cutoff:
                    keep.append(task)
                else:
                    removed.append(task)

            for task in removed:
                with contextlib.suppress(OSError):
                    task.log_file.unlink(missing_ok=True)

            if removed:
                batch.retain(keep)

        if removed:
            logger.info(
                "Cleaned up old tasks",
                extra={"removed": len(removed), "kept": len(keep)},
            )
        return removed


__all__ = [
    "DEFAULT_RETENTION",
    "RegistryBatch",
    "RegistryError",
    "TaskRegistry",
    "generate_task_id",
]
