"""Project config models and loader exports."""

from .loader import ProjectConfig, ProjectConfigError
from .models import Project, ProjectEntry, ProjectSettings, ProjectsDocument

__all__ = [
    "Project",
    "ProjectConfig",
    "ProjectConfigError",
    "ProjectEntry",
    "ProjectSettings",
    "ProjectsDocument",
]
