"""Async runner for the coding-assistant CLI."""

from __future__ import annotations

import asyncio
import contextlib
import os
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Iterable, Mapping

# Interpreter settings of ccode itself that must not leak into the assistant.
_INTERPRETER_VARS = frozenset({"PYTHONHOME", "PYTHONPATH", "VIRTUAL_ENV", "PIP_RESPECT_VIRTUALENV"})


class AssistantRunnerError(RuntimeError):
    """Base class for assistant runner errors."""


class AssistantNotFoundError(AssistantRunnerError):
    """Raised when the assistant executable cannot be located."""


class AssistantSpawnError(AssistantRunnerError):
    """Raised when the assistant process cannot be started."""


@dataclass(slots=True)
class AssistantInvocation:
    """Everything needed to start one assistant process."""

    executable: str
    cwd: Path
    prompt: str
    args: tuple[str, ...] = field(default_factory=tuple)

    @property
    def command_line(self) -> str:
        return shlex.join([self.executable, *self.args])


def assistant_environment(base: Mapping[str, str] | None = None) -> dict[str, str]:
    """Copy of ``base`` (default: the current environment) for the assistant process."""

    source = os.environ if base is None else base
    return {key: value for key, value in source.items() if key not in _INTERPRETER_VARS}


def resolve_executable(executable: str | Path) -> Path:
    """Locate the assistant executable, searching PATH for bare names."""

    candidate = Path(executable).expanduser()
    if candidate.parent != Path("."):
        if candidate.is_file():
            return candidate
        raise AssistantNotFoundError(f"Assistant executable not found at {candidate}")

    binary = shutil.which(str(executable))
    if binary is None:
        raise AssistantNotFoundError(
            f"Assistant executable '{executable}' not found on PATH.\n"
            "Make sure Claude Code is installed and accessible."
        )
    return Path(binary)


class AssistantRunner:
    """Execute the assistant CLI asynchronously with the task text on stdin."""

    async def start(
        self,
        invocation: AssistantInvocation,
        *,
        stdout: IO[Any] | int | None = None,
        stderr: IO[Any] | int | None = None,
    ) -> asyncio.subprocess.Process:
        """Spawn the assistant, feed it the prompt, and return the live process.

        ``None`` for ``stdout``/``stderr`` inherits the caller's streams.
        """

        executable = resolve_executable(invocation.executable)
        try:
            process = await asyncio.create_subprocess_exec(
                str(executable),
                *invocation.args,
                cwd=str(invocation.cwd),
                stdin=asyncio.subprocess.PIPE,
                stdout=stdout,
                stderr=stderr,
                env=assistant_environment(),
            )
        except OSError as exc:
            raise AssistantSpawnError(
                f"Failed to start assistant: {exc}\n"
                "Make sure Claude Code is installed and accessible."
            ) from exc

        if process.stdin is None:
            process.kill()
            await process.wait()
            raise AssistantSpawnError("Assistant process was started without a stdin pipe")
        # The assistant may exit before reading its input.
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            process.stdin.write(invocation.prompt.encode("utf-8") + b"\n")
            await process.stdin.drain()
        process.stdin.close()
        return process

    async def run(
        self,
        invocation: AssistantInvocation,
        *,
        stdout: IO[Any] | int | None = None,
        stderr: IO[Any] | int | None = None,
    ) -> int:
        """Run the assistant to completion and return its exit code."""

        process = await self.start(invocation, stdout=stdout, stderr=stderr)
        return await process.wait()


class FakeAssistantRunner(AssistantRunner):
    """Test double that records invocations and returns canned exit codes."""

    def __init__(self, returncodes: Iterable[int] | None = None) -> None:
        self._returncodes = list(returncodes or [])
        self._invocations: list[AssistantInvocation] = []

    async def run(  # type: ignore[override]
        self,
        invocation: AssistantInvocation,
        *,
        stdout: IO[Any] | int | None = None,
        stderr: IO[Any] | int | None = None,
    ) -> int:
        self._invocations.append(invocation)
        if self._returncodes:
            return self._returncodes.pop(0)
        return 0

    @property
    def invocations(self) -> list[AssistantInvocation]:
        return self._invocations


__all__ = [
    "AssistantInvocation",
    "AssistantNotFoundError",
    "AssistantRunner",
    "AssistantRunnerError",
    "AssistantSpawnError",
    "FakeAssistantRunner",
    "assistant_environment",
    "resolve_executable",
]
