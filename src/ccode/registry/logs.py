"""Background task log file helpers."""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

SEPARATOR = "─" * 60


def format_header(*, task_id: str, project: str, task: str, started_at: datetime) -> str:
    return (
        f"Task ID: {task_id}\n"
        f"Project: {project}\n"
        f"Task: {task}\n"
        f"Started: {started_at.isoformat()}\n"
        f"{SEPARATOR}\n\n"
    )


def format_footer(*, ended_at: datetime, exit_code: int | None) -> str:
    code = "-" if exit_code is None else str(exit_code)
    return f"\n{SEPARATOR}\nEnded: {ended_at.isoformat()}\nExit code: {code}\n"


def follow_log(
    path: Path,
    *,
    is_running: Callable[[], bool],
    poll_interval: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[str]:
    """Yield the log's content, then new content while the task keeps running.

    One final read happens after ``is_running`` reports False so the footer
    written on exit is not missed.
    """

    with Path(path).open("r", encoding="utf-8", errors="replace") as handle:
        while True:
            chunk = handle.read()
            if chunk:
                yield chunk
                continue
            if not is_running():
                tail = handle.read()
                if tail:
                    yield tail
                return
            sleep(poll_interval)


__all__ = ["SEPARATOR", "follow_log", "format_footer", "format_header"]
