"""Background task registry exports."""

from .logs import follow_log, format_footer, format_header
from .models import BackgroundTask, TaskStatus
from .store import DEFAULT_RETENTION, RegistryError, TaskRegistry, generate_task_id

__all__ = [
    "BackgroundTask",
    "DEFAULT_RETENTION",
    "RegistryError",
    "TaskRegistry",
    "TaskStatus",
    "follow_log",
    "format_footer",
    "format_header",
    "generate_task_id",
]
