from pathlib import Path
import textwrap

import pytest

from ccode.projects import ProjectConfig, ProjectConfigError


def write_config(path: Path, body: str) -> Path:
    path.write_text(textwrap.dedent(body).strip() + "\n", encoding="utf-8")
    return path


def test_get_project_reads_entry(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path / "projects.yaml",
        """
        projects:
          web:
            path: ~/code/web
            description: Frontend
            defaultArgs:
              - --continue
          api:
            path: /srv/api
        settings:
          claudePath: /opt/bin/claude
          timeout: 300000
        """,
    )
    config = ProjectConfig(config_file, home=tmp_path)

    project = config.get_project("web")

    assert project.name == "web"
    assert project.description == "Frontend"
    assert project.default_args == ["--continue"]
    assert config.executable == "/opt/bin/claude"
    assert [p.name for p in config.list_projects()] == ["web", "api"]


def test_unknown_project_lists_available(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path / "projects.yaml",
        """
        projects:
          web:
            path: /srv/web
          api:
            path: /srv/api
        """,
    )
    config = ProjectConfig(config_file, home=tmp_path)

    with pytest.raises(ProjectConfigError, match="Available projects: web, api"):
        config.get_project("mobile")
    assert config.executable == "claude"


def test_missing_config_points_to_init(tmp_path: Path) -> None:
    config = ProjectConfig(tmp_path / "absent.yaml")

    with pytest.raises(ProjectConfigError, match="ccode init"):
        config.load()


@pytest.mark.parametrize(
    "body",
    [
        "settings:\n  claudePath: claude\n",
        "projects: [a, b]\n",
        "projects:\n  web:\n    description: no path\n",
        "projects: {web: [unclosed\n",
    ],
)
def test_invalid_config_is_reported(tmp_path: Path, body: str) -> None:
    config_file = tmp_path / "projects.yaml"
    config_file.write_text(body, encoding="utf-8")

    with pytest.raises(ProjectConfigError, match="Failed to load config"):
        ProjectConfig(config_file).load()


def test_resolve_project_path(tmp_path: Path) -> None:
    config = ProjectConfig(tmp_path / "projects.yaml", home=tmp_path)

    assert config.resolve_project_path("~/code/web") == tmp_path / "code" / "web"
    assert config.resolve_project_path("~") == tmp_path
    assert config.resolve_project_path("code/api") == tmp_path / "code" / "api"
    assert config.resolve_project_path("/srv/api") == Path("/srv/api")


def test_add_and_remove_project(tmp_path: Path) -> None:
    project_dir = tmp_path / "web"
    project_dir.mkdir()
    config = ProjectConfig(tmp_path / "projects.yaml", home=tmp_path)

    added = config.add_project("web", project_dir, "Frontend")

    assert added.path == str(project_dir.resolve())
    assert config.get_project("web").description == "Frontend"

    config.remove_project("web")
    assert config.list_projects() == []
    with pytest.raises(ProjectConfigError):
        config.remove_project("web")


def test_add_project_preserves_other_settings(tmp_path: Path) -> None:
    config_file = write_config(
        tmp_path / "projects.yaml",
        """
        projects:
          api:
            path: /srv/api
        settings:
          claudePath: /opt/bin/claude
        """,
    )
    project_dir = tmp_path / "web"
    project_dir.mkdir()
    config = ProjectConfig(config_file, home=tmp_path)

    config.add_project("web", project_dir)

    assert config.executable == "/opt/bin/claude"
    assert {p.name for p in config.list_projects()} == {"api", "web"}


def test_add_project_requires_directory(tmp_path: Path) -> None:
    config = ProjectConfig(tmp_path / "projects.yaml", home=tmp_path)
    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("x", encoding="utf-8")

    with pytest.raises(ProjectConfigError, match="does not exist"):
        config.add_project("ghost", tmp_path / "ghost")
    with pytest.raises(ProjectConfigError, match="not a directory"):
        config.add_project("file", not_a_dir)
    assert not config.exists()


def test_create_sample_refuses_overwrite(tmp_path: Path) -> None:
    config = ProjectConfig(tmp_path / "projects.yaml", home=tmp_path)

    config.create_sample()

    assert [p.name for p in config.list_projects()] == ["example-project", "another-project"]
    assert config.get_project("another-project").default_args == ["--continue"]
    with pytest.raises(ProjectConfigError, match="already exists"):
        config.create_sample()
