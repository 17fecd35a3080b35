from pathlib import Path

from ccode.registry import format_footer, format_header, follow_log
from ccode.registry.logs import SEPARATOR

from .conftest import NOW


def test_header_and_footer_layout() -> None:
    header = format_header(task_id="task-1-abc", project="web", task="fix bug", started_at=NOW)

    assert header.splitlines()[:5] == [
        "Task ID: task-1-abc",
        "Project: web",
        "Task: fix bug",
        f"Started: {NOW.isoformat()}",
        SEPARATOR,
    ]
    assert format_footer(ended_at=NOW, exit_code=3).splitlines()[-1] == "Exit code: 3"
    assert format_footer(ended_at=NOW, exit_code=None).splitlines()[-1] == "Exit code: -"


def test_follow_log_reads_until_task_stops(tmp_path: Path) -> None:
    log_file = tmp_path / "task.log"
    log_file.write_text("first\n", encoding="utf-8")
    polls = {"count": 0}

    def is_running() -> bool:
        polls["count"] += 1
        if polls["count"] == 1:
            with log_file.open("a", encoding="utf-8") as handle:
                handle.write("second\n")
            return True
        if polls["count"] == 2:
            with log_file.open("a", encoding="utf-8") as handle:
                handle.write("footer\n")
            return False
        raise AssertionError("polled after the task stopped")

    chunks = list(follow_log(log_file, is_running=is_running, sleep=lambda _: None))

    assert "".join(chunks) == "first\nsecond\nfooter\n"
