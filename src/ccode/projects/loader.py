"""Project config file loading and editing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import Project, ProjectsDocument

logger = logging.getLogger(__name__)

SAMPLE_CONFIG: dict[str, Any] = {
    "projects": {
        "example-project": {
            "path": "~/workspace/example-project",
            "description": "An example project",
        },
        "another-project": {
            "path": "~/workspace/another-project",
            "description": "Another example project",
            "defaultArgs": ["--continue"],
        },
    },
    "settings": {"claudePath": "claude"},
}


class ProjectConfigError(RuntimeError):
    """Raised when the project config file is missing, malformed, or lacks a project."""


class ProjectConfig:
    """Reads and edits the YAML file mapping project names to directories."""

    def __init__(self, path: Path, *, home: Path | None = None) -> None:
        self._path = Path(path)
        self._home = Path(home) if home is not None else Path.home()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def _read_raw(self) -> dict[str, Any]:
        if not self.exists():
            raise ProjectConfigError(
                f"Config file not found at {self._path}\n"
                "Run 'ccode init' to create a sample config file."
            )
        try:
            document = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ProjectConfigError(f"Failed to load config: {exc}") from exc

        if not isinstance(document, dict) or not isinstance(document.get("projects"), dict):
            raise ProjectConfigError('Failed to load config: Config must have a "projects" section')
        return document

    def _validate(self, document: dict[str, Any]) -> ProjectsDocument:
        try:
            return ProjectsDocument.model_validate(document)
        except ValidationError as exc:
            raise ProjectConfigError(f"Failed to load config: {exc}") from exc

    def _write_raw(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            yaml.safe_dump(document, sort_keys=False, allow_unicode=True), encoding="utf-8"
        )

    def load(self) -> ProjectsDocument:
        """Load and validate the whole config file."""

        return self._validate(self._read_raw())

    def list_projects(self) -> list[Project]:
        document = self.load()
        return [
            Project(name=name, **entry.model_dump()) for name, entry in document.projects.items()
        ]

    def get_project(self, name: str) -> Project:
        """Return a single project by name."""

        document = self.load()
        try:
            entry = document.projects[name]
        except KeyError as exc:
            available = ", ".join(document.projects)
            raise ProjectConfigError(
                f'Project "{name}" not found in config.\nAvailable projects: {available}'
            ) from exc
        return Project(name=name, **entry.model_dump())

    @property
    def executable(self) -> str:
        """Assistant executable configured under ``settings.claudePath``."""

        return self.load().settings.claude_path

    def resolve_project_path(self, raw_path: str) -> Path:
        """Expand ``~`` and anchor relative paths at the home directory."""

        if raw_path.startswith("~"):
            return self._home / raw_path[1:].lstrip("/\\")
        candidate = Path(raw_path)
        if not candidate.is_absolute():
            return self._home / candidate
        return candidate

    def add_project(self, name: str, path: Path, description: str | None = None) -> Project:
        """Add or replace a project entry pointing at an existing directory."""

        name = name.strip()
        if not name:
            raise ProjectConfigError("Project name must not be empty")

        absolute = Path(path).expanduser().resolve()
        if not absolute.exists():
            raise ProjectConfigError(f"Directory does not exist: {absolute}")
        if not absolute.is_dir():
            raise ProjectConfigError(f"Path is not a directory: {absolute}")

        document = self._read_raw() if self.exists() else {"projects": {}}
        if name in document["projects"]:
            logger.info("Replacing existing project entry", extra={"project": name})

        entry: dict[str, Any] = {"path": str(absolute)}
        if description:
            entry["description"] = description
        document["projects"][name] = entry

        self._validate(document)
        self._write_raw(document)
        return Project(name=name, path=str(absolute), description=description)

    def remove_project(self, name: str) -> None:
        document = self._read_raw()
        if name not in document["projects"]:
            raise ProjectConfigError(f'Project "{name}" not found in config')
        del document["projects"][name]
        self._write_raw(document)

    def create_sample(self) -> Path:
        """Write a sample config file; refuses to overwrite an existing one."""

        if self.exists():
            raise ProjectConfigError(f"Config file already exists at {self._path}")
        self._write_raw(SAMPLE_CONFIG)
        return self._path


__all__ = ["ProjectConfig", "ProjectConfigError", "SAMPLE_CONFIG"]
