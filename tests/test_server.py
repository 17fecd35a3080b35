from pathlib import Path

import pytest

from ccode.config import get_settings
from ccode.server import create_server


def test_create_server_uses_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CCODE_PROJECTS_FILE", str(tmp_path / "projects.yaml"))
    monkeypatch.setenv("CCODE_HOME", str(tmp_path / "home"))
    get_settings.cache_clear()
    try:
        server = create_server()
    finally:
        get_settings.cache_clear()

    assert server.name == "ccode"
    assert server.projects.path == tmp_path / "projects.yaml"
    assert server.registry.home_dir == tmp_path / "home"
    assert server.tool_handles.dispatch_task is not None
