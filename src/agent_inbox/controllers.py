"""Controllers for agent-inbox CLI commands."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from sqlalchemy.exc import SQLAlchemyError

from agent_inbox.bridge.adapter import BridgeRunSummary, run_bridge
from agent_inbox.config import Settings, ensure_data_dir
from agent_inbox.display import render_task_detail, render_task_list
from agent_inbox.logging_setup import setup_logging
from agent_inbox.monitor.detectors import default_detectors
from agent_inbox.monitor.monitor import TaskMonitor
from agent_inbox.tasks.models import Task, TaskContext, TaskStatus
from agent_inbox.tasks.repository import TaskNotFoundError, TaskStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskListCommand:
    """CLI input for task listing."""

    db_path: Path | None
    status: str | None = None
    show_all: bool = False


@dataclass(slots=True)
class TaskRefCommand:
    """CLI input for commands addressing one task."""

    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class StoreCommand:
    """CLI input for commands acting on the whole store."""

    db_path: Path | None


@dataclass(slots=True)
class CleanupCommand:
    db_path: Path | None
    retention_seconds: int | None


@dataclass(slots=True)
class WatchCommand:
    db_path: Path | None
    interval_seconds: float | None
    max_refreshes: int | None = None


@dataclass(slots=True)
class ReportStartCommand:
    """CLI input for a wrapper announcing a new local agent run."""

    db_path: Path | None
    task_id: str
    agent_type: str
    cwd: str
    title: str
    pid: int | None
    ppid: int | None


@dataclass(slots=True)
class ReportCompleteCommand:
    db_path: Path | None
    task_id: str
    exit_code: int | None


@dataclass(slots=True)
class ReportAttentionCommand:
    db_path: Path | None
    task_id: str
    reason: str


@dataclass(slots=True)
class MonitorCommand:
    db_path: Path | None
    task_id: str
    pid: int


@dataclass(slots=True)
class BridgeCommand:
    db_path: Path | None
    stdin: BinaryIO
    stdout: BinaryIO


@dataclass(slots=True)
class ResetPreview:
    lines: list[str]
    task_count: int


class TaskCliController:
    """Controller that maps CLI commands to task store operations."""

    def __init__(self, sleep: Callable[[float], None] = time.sleep) -> None:
        self.sleep = sleep

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = _settings(command.db_path)
        if command.status is not None:
            status_filter: TaskStatus | None = TaskStatus.parse(command.status)
        elif command.show_all:
            status_filter = None
        else:
            status_filter = TaskStatus.NEEDS_ATTENTION
        with _store(settings) as store:
            tasks = store.list(status=status_filter)
        return render_task_list(
            tasks,
            retention_seconds=settings.retention.completed_retention_seconds,
        )

    def show_task(self, command: TaskRefCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _store(settings) as store:
            task = store.get_by_id(command.task_id)
        if task is None:
            raise TaskNotFoundError(command.task_id)
        return render_task_detail(task)

    def clear_task(self, command: TaskRefCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _store(settings) as store:
            deleted = store.delete(command.task_id)
        if deleted:
            return [f"Task {command.task_id} cleared"]
        return [f"Task not found: {command.task_id}"]

    def clear_finished(self, command: StoreCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _store(settings) as store:
            count = store.delete_with_status([TaskStatus.COMPLETED, TaskStatus.FAILED])
        return [f"Cleared {count} tasks"]

    def reset_preview(self, command: StoreCommand) -> ResetPreview:
        settings = _settings(command.db_path)
        with _store(settings) as store:
            tasks = store.list()
        if not tasks:
            return ResetPreview(lines=["No tasks to clear."], task_count=0)
        lines = [f"This will delete ALL {len(tasks)} tasks:"]
        lines.extend(f"  - [{task.agent_type}] {task.title}" for task in tasks)
        return ResetPreview(lines=lines, task_count=len(tasks))

    def reset(self, command: StoreCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _store(settings) as store:
            count = store.delete_all()
        logger.info("Reset removed %d task(s)", count)
        return [f"Cleared all {count} tasks"]

    def cleanup(self, command: CleanupCommand) -> list[str]:
        settings = _settings(command.db_path)
        retention = (
            command.retention_seconds
            if command.retention_seconds is not None
            else settings.retention.completed_retention_seconds
        )
        with _store(settings) as store:
            deleted = store.cleanup_older_than(retention)
        return [f"Cleaned up {deleted} old completed tasks"]

    def watch(self, command: WatchCommand) -> Iterator[list[str]]:
        """Yield one full listing of all tasks per refresh."""

        settings = _settings(command.db_path)
        interval = command.interval_seconds or settings.display.watch_interval_seconds
        refreshes = 0
        with _store(settings) as store:
            while True:
                yield render_task_list(
                    store.list(),
                    retention_seconds=settings.retention.completed_retention_seconds,
                )
                refreshes += 1
                if command.max_refreshes is not None and refreshes >= command.max_refreshes:
                    return
                self.sleep(interval)

    def report_start(self, command: ReportStartCommand) -> list[str]:
        settings = _settings(command.db_path)
        task = Task.create(
            command.task_id,
            command.agent_type,
            command.title,
            pid=command.pid,
            ppid=command.ppid,
        )
        task.context = TaskContext(project_path=command.cwd)
        with _store(settings) as store:
            store.insert(task)
        return [f"Task started: {task.task_id}"]

    def report_complete(self, command: ReportCompleteCommand) -> list[str]:
        task = self._transition(
            command.db_path,
            command.task_id,
            lambda task: task.complete(command.exit_code),
        )
        if task.status == TaskStatus.FAILED:
            return [f"Task failed: {task.task_id}"]
        return [f"Task completed: {task.task_id}"]

    def report_needs_attention(self, command: ReportAttentionCommand) -> list[str]:
        task = self._transition(
            command.db_path,
            command.task_id,
            lambda task: task.mark_needs_attention(command.reason),
        )
        return [f"Task needs attention: {task.task_id}"]

    def monitor(self, command: MonitorCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _store(settings) as store:
            monitor = TaskMonitor(
                store,
                detectors=default_detectors(settings.monitor),
                poll_interval_seconds=settings.monitor.poll_interval_seconds,
                sleep=self.sleep,
            )
            summary = monitor.run(command.task_id, command.pid)
        lines = [
            f"Monitor stopped: {summary.stop_reason.value} "
            f"task_id={command.task_id} polls={summary.polls}",
        ]
        if summary.attention_reason:
            lines.append(f"Attention reason: {summary.attention_reason}")
        return lines

    def bridge(self, command: BridgeCommand) -> BridgeRunSummary:
        settings = _settings(command.db_path)
        logger.info("agent-bridge started db=%s", settings.db_path)
        with _store(settings) as store:
            return run_bridge(store, command.stdin, command.stdout)

    def _transition(
        self,
        db_path: Path | None,
        task_id: str,
        apply: Callable[[Task], None],
    ) -> Task:
        settings = _settings(db_path)
        with _store(settings) as store:
            task = store.get_by_id(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            apply(task)
            store.update(task)
        return task


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    ensure_data_dir(settings.db_path)
    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)
    return settings


@contextmanager
def _store(settings: Settings) -> Iterator[TaskStore]:
    store = TaskStore(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    store.init_schema()
    try:
        _cleanup_expired(store, settings)
        yield store
    finally:
        store.close()


def _cleanup_expired(store: TaskStore, settings: Settings) -> None:
    try:
        store.cleanup_older_than(settings.retention.completed_retention_seconds)
    except SQLAlchemyError:
        logger.warning("Retention cleanup failed", exc_info=True)
