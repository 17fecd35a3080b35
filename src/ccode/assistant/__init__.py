"""Coding-assistant CLI orchestration utilities."""

from .runner import (
    AssistantInvocation,
    AssistantNotFoundError,
    AssistantRunner,
    AssistantRunnerError,
    AssistantSpawnError,
    FakeAssistantRunner,
    assistant_environment,
    resolve_executable,
)

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
