"""CLI entrypoints for agent-inbox and agent-bridge."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from agent_inbox import __version__
from agent_inbox.controllers import (
    BridgeCommand,
    CleanupCommand,
    MonitorCommand,
    ReportAttentionCommand,
    ReportCompleteCommand,
    ReportStartCommand,
    StoreCommand,
    TaskCliController,
    TaskListCommand,
    TaskRefCommand,
    WatchCommand,
)
from agent_inbox.tasks.models import TaskStatus
from agent_inbox.tasks.repository import TaskStoreError

click.rich_click.USE_MARKDOWN = True
TASK_CONTROLLER = TaskCliController()

STATUS_CHOICES = [status.value for status in TaskStatus]

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path (default: `$HOME/.agent-tasks/tasks.db`).",
)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="agent-inbox")
@db_path_option
@click.pass_context
def agent_inbox(ctx: click.Context, db_path: Path | None) -> None:
    """Inbox for background coding-agent and browser assistant tasks.

    Without a subcommand, shows tasks that need attention.
    """

    if ctx.invoked_subcommand is None:
        with _cli_errors():
            _emit_lines(TASK_CONTROLLER.list_tasks(TaskListCommand(db_path=db_path)))


@agent_inbox.command("list")
@db_path_option
@click.option("--all", "show_all", is_flag=True, help="Show tasks in every status.")
@click.option(
    "--status",
    type=click.Choice(STATUS_CHOICES),
    default=None,
    help="Only show tasks with this status.",
)
def list_tasks(db_path: Path | None, show_all: bool, status: str | None) -> None:
    """List tasks (needs-attention only unless `--all` or `--status` is given)."""

    with _cli_errors():
        _emit_lines(
            TASK_CONTROLLER.list_tasks(
                TaskListCommand(db_path=db_path, status=status, show_all=show_all),
            ),
        )


@agent_inbox.command("show")
@db_path_option
@click.argument("task_id")
def show_task(db_path: Path | None, task_id: str) -> None:
    """Show all stored details of one task."""

    with _cli_errors():
        _emit_lines(TASK_CONTROLLER.show_task(TaskRefCommand(db_path=db_path, task_id=task_id)))


@agent_inbox.command("clear")
@db_path_option
@click.argument("task_id")
def clear_task(db_path: Path | None, task_id: str) -> None:
    """Delete one task."""

    with _cli_errors():
        _emit_lines(TASK_CONTROLLER.clear_task(TaskRefCommand(db_path=db_path, task_id=task_id)))


@agent_inbox.command("clear-all")
@db_path_option
def clear_all(db_path: Path | None) -> None:
    """Delete every completed and failed task."""

    with _cli_errors():
        _emit_lines(TASK_CONTROLLER.clear_finished(StoreCommand(db_path=db_path)))


@agent_inbox.command("reset")
@db_path_option
@click.option("--force", is_flag=True, help="Skip confirmation prompt.")
def reset(db_path: Path | None, force: bool) -> None:
    """Delete ALL tasks regardless of status."""

    command = StoreCommand(db_path=db_path)
    with _cli_errors():
        preview = TASK_CONTROLLER.reset_preview(command)
        _emit_lines(preview.lines)
        if preview.task_count == 0:
            return
        if not force and not click.confirm(
            "Are you sure you want to delete ALL tasks?",
            default=False,
        ):
            click.echo("Aborted. No tasks were deleted.")
            return
        _emit_lines(TASK_CONTROLLER.reset(command))


@agent_inbox.command("watch")
@db_path_option
@click.option(
    "--interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between refreshes (default: `AGENT_INBOX_WATCH_SECONDS` or 2).",
)
@click.option(
    "--max-refreshes",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many refreshes instead of running until Ctrl+C.",
)
def watch(db_path: Path | None, interval: float | None, max_refreshes: int | None) -> None:
    """Continuously show all tasks."""

    with _cli_errors():
        for frame in TASK_CONTROLLER.watch(
            WatchCommand(
                db_path=db_path,
                interval_seconds=interval,
                max_refreshes=max_refreshes,
            ),
        ):
            click.clear()
            click.echo("Watching tasks (Ctrl+C to exit)...")
            click.echo("")
            _emit_lines(frame)


@agent_inbox.command("cleanup")
@db_path_option
@click.option(
    "--retention-secs",
    type=int,
    default=None,
    help="Delete completed tasks finished longer ago than this (default: 3600; negative purges all).",
)
def cleanup(db_path: Path | None, retention_secs: int | None) -> None:
    """Delete old completed tasks."""

    with _cli_errors():
        _emit_lines(
            TASK_CONTROLLER.cleanup(
                CleanupCommand(db_path=db_path, retention_seconds=retention_secs),
            ),
        )


@agent_inbox.group()
def report() -> None:
    """Status reports sent by agent wrapper scripts and hooks."""


@report.command("start")
@db_path_option
@click.argument("task_id")
@click.argument("agent_type")
@click.argument("cwd")
@click.argument("title")
@click.option("--pid", type=int, default=None, help="Agent process id.")
@click.option("--ppid", type=int, default=None, help="Parent process id.")
def report_start(  # noqa: PLR0913
    db_path: Path | None,
    task_id: str,
    agent_type: str,
    cwd: str,
    title: str,
    pid: int | None,
    ppid: int | None,
) -> None:
    """Register a new running task."""

    with _cli_errors():
        _emit_lines(
            TASK_CONTROLLER.report_start(
                ReportStartCommand(
                    db_path=db_path,
                    task_id=task_id,
                    agent_type=agent_type,
                    cwd=cwd,
                    title=title,
                    pid=pid,
                    ppid=ppid,
                ),
            ),
        )


@report.command("complete")
@db_path_option
@click.argument("task_id")
@click.option("--exit-code", type=int, default=None, help="Process exit code.")
def report_complete(db_path: Path | None, task_id: str, exit_code: int | None) -> None:
    """Mark a task finished; a non-zero exit code marks it failed."""

    with _cli_errors():
        _emit_lines(
            TASK_CONTROLLER.report_complete(
                ReportCompleteCommand(db_path=db_path, task_id=task_id, exit_code=exit_code),
            ),
        )


@report.command("needs-attention")
@db_path_option
@click.argument("task_id")
@click.argument("reason")
def report_needs_attention(db_path: Path | None, task_id: str, reason: str) -> None:
    """Flag a task as waiting for the user."""

    with _cli_errors():
        _emit_lines(
            TASK_CONTROLLER.report_needs_attention(
                ReportAttentionCommand(db_path=db_path, task_id=task_id, reason=reason),
            ),
        )


@report.command("failed")
@db_path_option
@click.argument("task_id")
@click.option("--exit-code", type=int, required=True, help="Process exit code.")
def report_failed(db_path: Path | None, task_id: str, exit_code: int) -> None:
    """Mark a task finished with the given exit code."""

    with _cli_errors():
        _emit_lines(
            TASK_CONTROLLER.report_complete(
                ReportCompleteCommand(db_path=db_path, task_id=task_id, exit_code=exit_code),
            ),
        )


@agent_inbox.command("monitor")
@db_path_option
@click.argument("task_id")
@click.argument("pid", type=int)
def monitor(db_path: Path | None, task_id: str, pid: int) -> None:
    """Watch a task's process tree until it exits or needs attention."""

    with _cli_errors():
        _emit_lines(
            TASK_CONTROLLER.monitor(MonitorCommand(db_path=db_path, task_id=task_id, pid=pid)),
        )


@click.command()
@click.version_option(version=__version__, prog_name="agent-bridge")
@db_path_option
def agent_bridge(db_path: Path | None) -> None:
    """Browser native messaging host.

    Reads length-prefixed JSON task updates on stdin and answers each one on
    stdout. Diagnostics go to stderr and the log file only.
    """

    with _cli_errors():
        TASK_CONTROLLER.bridge(
            BridgeCommand(
                db_path=db_path,
                stdin=click.get_binary_stream("stdin"),
                stdout=click.get_binary_stream("stdout"),
            ),
        )


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except (TaskStoreError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_inbox()
