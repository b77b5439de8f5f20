from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from agent_inbox import __version__
from agent_inbox.controllers import TaskCliController, WatchCommand
from agent_inbox.main import agent_inbox
from agent_inbox.storage.common import utc_now
from agent_inbox.tasks.models import Task, TaskStatus
from agent_inbox.tasks.repository import TaskStore

pytestmark = [
    allure.epic("Command Surface"),
    allure.feature("agent-inbox CLI"),
]


def _invoke(db_path: Path, *args: str, input: str | None = None):  # noqa: A002
    runner = CliRunner()
    return runner.invoke(agent_inbox, [*args, "--db-path", str(db_path)], input=input)


def _seed(db_path: Path, *tasks: Task) -> None:
    store = TaskStore(db_path)
    store.init_schema()
    try:
        for task in tasks:
            store.insert(task)
    finally:
        store.close()


def _load(db_path: Path, task_id: str) -> Task | None:
    store = TaskStore(db_path)
    try:
        return store.get_by_id(task_id)
    finally:
        store.close()


def _waiting(task_id: str, reason: str = "Approve edit") -> Task:
    task = Task.create(task_id, "claude_code", f"Task {task_id}", pid=321)
    task.mark_needs_attention(reason)
    return task


def _finished(task_id: str, exit_code: int) -> Task:
    task = Task.create(task_id, "claude_web", f"Task {task_id}")
    task.complete(exit_code)
    return task


def test_version_option() -> None:
    result = CliRunner().invoke(agent_inbox, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_default_invocation_lists_only_tasks_needing_attention(db_path: Path) -> None:
    _seed(db_path, _waiting("waits"), Task.create("busy", "claude_code", "Busy task"))

    result = CliRunner().invoke(agent_inbox, ["--db-path", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "1 need attention" in result.output
    assert "NEEDS ATTENTION" in result.output
    assert "Task waits" in result.output
    assert "-> Approve edit" in result.output
    assert "Busy task" not in result.output


def test_empty_store_message(db_path: Path) -> None:
    result = _invoke(db_path, "list")

    assert result.exit_code == 0, result.output
    assert "No active tasks" in result.output
    assert db_path.exists()


def test_list_all_groups_by_status(db_path: Path) -> None:
    _seed(
        db_path,
        Task.create("run", "claude_code", "Running one", pid=77),
        _waiting("wait"),
        _finished("ok", 0),
        _finished("bad", 2),
    )

    result = _invoke(db_path, "list", "--all")

    assert result.exit_code == 0, result.output
    output = result.output
    assert "1 need attention  |  1 running  |  1 completed  |  1 failed" in output
    assert output.index("NEEDS ATTENTION") < output.index("RUNNING") < output.index("COMPLETED")
    assert output.index("COMPLETED") < output.index("FAILED")
    assert "[claude-code]" in output
    assert "[claude.ai]" in output
    assert "-> Exit code: 2" in output
    assert "s ago)" in output


def test_list_status_filter(db_path: Path) -> None:
    _seed(db_path, _finished("ok", 0), _finished("bad", 1))

    result = _invoke(db_path, "list", "--status", "failed")

    assert result.exit_code == 0, result.output
    assert "Task bad" in result.output
    assert "Task ok" not in result.output


def test_list_rejects_unknown_status(db_path: Path) -> None:
    result = _invoke(db_path, "list", "--status", "exited")

    assert result.exit_code != 0


def test_show_renders_details(db_path: Path) -> None:
    task = _waiting("detail", reason="Needs review")
    task.ppid = 10
    _seed(db_path, task)

    result = _invoke(db_path, "show", "detail")

    assert result.exit_code == 0, result.output
    assert "Status: NEEDS_ATTENTION" in result.output
    assert "ID: detail" in result.output
    assert "PID:     321" in result.output
    assert "Parent:  10" in result.output
    assert "Attention Reason: Needs review" in result.output


def test_show_missing_task_fails(db_path: Path) -> None:
    result = _invoke(db_path, "show", "missing")

    assert result.exit_code == 1
    assert "Task not found: missing" in result.output


def test_clear_and_clear_all(db_path: Path) -> None:
    _seed(db_path, _finished("ok", 0), _finished("bad", 1), _waiting("wait"), _waiting("drop"))

    cleared = _invoke(db_path, "clear", "drop")
    cleared_missing = _invoke(db_path, "clear", "drop")
    cleared_all = _invoke(db_path, "clear-all")

    assert "Task drop cleared" in cleared.output
    assert "Task not found: drop" in cleared_missing.output
    assert "Cleared 2 tasks" in cleared_all.output
    assert _load(db_path, "wait") is not None
    assert _load(db_path, "ok") is None


def test_reset_requires_confirmation(db_path: Path) -> None:
    _seed(db_path, _waiting("one"), _finished("two", 0))

    declined = _invoke(db_path, "reset", input="n\n")

    assert declined.exit_code == 0, declined.output
    assert "This will delete ALL 2 tasks:" in declined.output
    assert "Aborted. No tasks were deleted." in declined.output
    assert _load(db_path, "one") is not None

    accepted = _invoke(db_path, "reset", input="y\n")

    assert "Cleared all 2 tasks" in accepted.output
    assert _load(db_path, "one") is None


def test_reset_force_and_empty_store(db_path: Path) -> None:
    _seed(db_path, _waiting("one"))

    forced = _invoke(db_path, "reset", "--force")
    empty = _invoke(db_path, "reset")

    assert "Cleared all 1 tasks" in forced.output
    assert "No tasks to clear." in empty.output


def test_cleanup_uses_retention_override(db_path: Path) -> None:
    old = _finished("old", 0)
    old.completed_at = utc_now() - timedelta(minutes=30)
    _seed(db_path, old)

    kept = _invoke(db_path, "cleanup")
    removed = _invoke(db_path, "cleanup", "--retention-secs", "600")

    assert "Cleaned up 0 old completed tasks" in kept.output
    assert "Cleaned up 1 old completed tasks" in removed.output


def test_cleanup_with_negative_retention_purges_every_completed_task(db_path: Path) -> None:
    _seed(db_path, _finished("just-done", 0), _finished("broke", 2))

    result = _invoke(db_path, "cleanup", "--retention-secs", "-1")

    assert result.exit_code == 0, result.output
    assert "Cleaned up 1 old completed tasks" in result.output
    assert _load(db_path, "just-done") is None
    assert _load(db_path, "broke") is not None


def test_every_invocation_applies_retention(db_path: Path) -> None:
    expired = _finished("expired", 0)
    expired.completed_at = utc_now() - timedelta(hours=2)
    _seed(db_path, expired, _waiting("wait"))

    result = _invoke(db_path, "list")

    assert result.exit_code == 0, result.output
    assert _load(db_path, "expired") is None


def test_report_lifecycle(db_path: Path) -> None:
    started = _invoke(
        db_path,
        "report",
        "start",
        "cc-1",
        "claude_code",
        "/work/repo",
        "Refactor " + "x" * 120,
        "--pid",
        "4000",
        "--ppid",
        "3999",
    )
    attention = _invoke(db_path, "report", "needs-attention", "cc-1", "Permission prompt")
    waiting = _load(db_path, "cc-1")
    completed = _invoke(db_path, "report", "complete", "cc-1", "--exit-code", "0")
    done = _load(db_path, "cc-1")

    assert "Task started: cc-1" in started.output
    assert "Task needs attention: cc-1" in attention.output
    assert "Task completed: cc-1" in completed.output
    assert waiting is not None
    assert waiting.attention_reason == "Permission prompt"
    assert done is not None
    assert done.status == TaskStatus.COMPLETED
    assert done.exit_code == 0
    assert done.pid == 4000
    assert done.ppid == 3999
    assert len(done.title) == 100
    assert done.context is not None
    assert done.context.project_path == "/work/repo"


def test_report_failed_records_exit_code(db_path: Path) -> None:
    _seed(db_path, Task.create("cc-2", "claude_code", "Build"))

    result = _invoke(db_path, "report", "failed", "cc-2", "--exit-code", "3")
    task = _load(db_path, "cc-2")

    assert "Task failed: cc-2" in result.output
    assert task is not None
    assert task.status == TaskStatus.FAILED
    assert task.exit_code == 3


def test_report_start_duplicate_fails(db_path: Path) -> None:
    _seed(db_path, Task.create("dup", "claude_code", "First"))

    result = _invoke(db_path, "report", "start", "dup", "claude_code", "/tmp", "Second")

    assert result.exit_code == 1
    assert "Task already exists: dup" in result.output


@pytest.mark.parametrize("action", [["complete"], ["needs-attention", "REASON"]])
def test_report_on_missing_task_fails(db_path: Path, action: list[str]) -> None:
    result = _invoke(db_path, "report", action[0], "ghost", *action[1:])

    assert result.exit_code == 1
    assert "Task not found: ghost" in result.output


def test_monitor_command_completes_task_of_exited_process(db_path: Path) -> None:
    # pid 0 never has a /proc entry
    _seed(db_path, Task.create("mon", "claude_code", "Monitored", pid=0))

    result = _invoke(db_path, "monitor", "mon", "0")
    task = _load(db_path, "mon")

    assert result.exit_code == 0, result.output
    assert "Monitor stopped: process_exited" in result.output
    assert task is not None
    assert task.status == TaskStatus.COMPLETED
    assert task.monitor_pid is not None


def test_watch_renders_requested_number_of_frames(db_path: Path) -> None:
    _seed(db_path, Task.create("busy", "claude_code", "Busy task"))

    result = _invoke(db_path, "watch", "--interval", "0.01", "--max-refreshes", "2")

    assert result.exit_code == 0, result.output
    assert result.output.count("Watching tasks (Ctrl+C to exit)...") == 2
    assert "Busy task" in result.output


def test_watch_sleeps_between_frames(db_path: Path) -> None:
    calls: list[float] = []
    controller = TaskCliController(sleep=calls.append)

    frames = list(
        controller.watch(WatchCommand(db_path=db_path, interval_seconds=None, max_refreshes=3)),
    )

    assert len(frames) == 3
    assert calls == [2.0, 2.0]
