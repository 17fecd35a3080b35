"""Detached supervisor process for one background assistant run.

The dispatcher starts ``python -m ccode.watcher`` in its own session and
writes the task text to the watcher's stdin. The watcher runs the assistant
with its output appended to the task log, forwards SIGTERM to it, and on exit
writes the log footer and records the final status.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Sequence

from .assistant import AssistantInvocation, AssistantRunner, AssistantRunnerError
from .config import configure_logging, get_settings
from .registry import RegistryError, TaskRegistry, TaskStatus, format_footer

logger = logging.getLogger(__name__)


def build_command(
    *,
    home_dir: Path,
    task_id: str,
    log_file: Path,
    invocation: AssistantInvocation,
) -> list[str]:
    """Command line that starts a watcher for ``invocation``.

    The prompt is not part of it; the caller feeds it on the watcher's stdin.
    """

    # ``--opt=value`` keeps values that start with '-' from parsing as options.
    command = [
        sys.executable,
        "-m",
        "ccode.watcher",
        f"--home={home_dir}",
        f"--task-id={task_id}",
        f"--log-file={log_file}",
        f"--cwd={invocation.cwd}",
        f"--executable={invocation.executable}",
    ]
    command.extend(f"--arg={arg}" for arg in invocation.args)
    return command


def _record_outcome(
    registry: TaskRegistry, task_id: str, status: TaskStatus, exit_code: int | None
) -> None:
    try:
        registry.update_task(
            task_id,
            expected_status=TaskStatus.RUNNING,
            status=status,
            ended_at=registry.now(),
            exit_code=exit_code,
        )
    except RegistryError:
        logger.exception("Failed to record task outcome", extra={"task_id": task_id})


async def supervise(
    registry: TaskRegistry,
    task_id: str,
    invocation: AssistantInvocation,
    log_file: Path,
    *,
    runner: AssistantRunner | None = None,
) -> int | None:
    """Run the assistant for ``task_id`` and record how it ended.

    Returns the exit code, or None when the assistant could not be started.
    """

    runner = runner or AssistantRunner()
    process: asyncio.subprocess.Process | None = None
    terminate_requested = False

    def _forward_terminate() -> None:
        nonlocal terminate_requested
        terminate_requested = True
        if process is not None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()

    # A SIGTERM that arrives mid-spawn is forwarded once the assistant exists.
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGTERM, _forward_terminate)
    try:
        with Path(log_file).open("a", encoding="utf-8") as log:
            try:
                process = await runner.start(
                    invocation, stdout=log, stderr=asyncio.subprocess.STDOUT
                )
            except AssistantRunnerError as exc:
                log.write(f"Error: {exc}\n")
                log.write(format_footer(ended_at=registry.now(), exit_code=None))
                log.flush()
                _record_outcome(registry, task_id, TaskStatus.FAILED, None)
                return None

            if terminate_requested:
                _forward_terminate()
            returncode = await process.wait()

            log.write(format_footer(ended_at=registry.now(), exit_code=returncode))
            log.flush()
    finally:
        loop.remove_signal_handler(signal.SIGTERM)

    status = TaskStatus.COMPLETED if returncode == 0 else TaskStatus.FAILED
    _record_outcome(registry, task_id, status, returncode)
    logger.info(
        "Background task finished",
        extra={"task_id": task_id, "returncode": returncode, "status": status.value},
    )
    return returncode


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ccode background task watcher (task text is read from stdin)"
    )
    parser.add_argument("--home", required=True, type=Path, help="Registry home directory")
    parser.add_argument("--task-id", required=True)
    parser.add_argument("--log-file", required=True, type=Path)
    parser.add_argument("--cwd", required=True, type=Path)
    parser.add_argument("--executable", required=True)
    parser.add_argument("--arg", dest="args", action="append", default=[])
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    prompt = sys.stdin.buffer.read().decode("utf-8")
    configure_logging(get_settings().log_level)

    registry = TaskRegistry(args.home)
    invocation = AssistantInvocation(
        executable=args.executable,
        cwd=args.cwd,
        prompt=prompt,
        args=tuple(args.args),
    )
    returncode = asyncio.run(supervise(registry, args.task_id, invocation, args.log_file))
    return 0 if returncode == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
