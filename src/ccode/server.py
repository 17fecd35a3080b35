"""FastMCP server bootstrap for ccode."""

import logging
from typing import Optional

from fastmcp import FastMCP

from . import __version__
from .config import CcodeSettings, configure_logging, get_settings
from .dispatcher import Dispatcher
from .projects import ProjectConfig
from .registry import TaskRegistry
from .tools import register_tools

logger = logging.getLogger(__name__)


def create_server(
    settings: Optional[CcodeSettings] = None,
    *,
    projects: ProjectConfig | None = None,
    registry: TaskRegistry | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the task tools registered."""

    settings = settings or get_settings()
    projects = projects or ProjectConfig(settings.projects_file)
    registry = registry or TaskRegistry(settings.home_dir)

    # stdout carries the MCP stdio transport; dispatcher output goes to the log.
    dispatcher = Dispatcher(projects, registry, echo=logger.info, reap_watchers=True)

    server = FastMCP(
        name="ccode",
        instructions=(
            "ccode runs Claude Code tasks in configured project directories. Dispatch "
            "background tasks, then poll task_status and task_logs, and kill or clean "
            "them up when done."
        ),
    )

    handles = register_tools(
        server,
        projects=projects,
        registry=registry,
        dispatcher=dispatcher,
    )

    setattr(server, "projects", projects)
    setattr(server, "registry", registry)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the ccode MCP server."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching ccode MCP server",
        extra={
            "version": __version__,
            "projects_file": str(settings.projects_file),
            "home_dir": str(settings.home_dir),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
