"""Durable task table shared by independent processes."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import timedelta
from pathlib import Path
from typing import Any

from alembic.util.exc import CommandError
from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from agent_inbox.storage.alembic_runner import upgrade_head
from agent_inbox.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from agent_inbox.storage.sqlmodel_models import AgentTaskRow
from agent_inbox.tasks.models import Task, TaskContext, TaskStatus

logger = logging.getLogger(__name__)


class TaskStoreError(RuntimeError):
    """Base error for task store operations."""


class DuplicateTaskError(TaskStoreError):
    """A task with the same task_id is already stored."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task already exists: {task_id}")
        self.task_id = task_id


class TaskNotFoundError(TaskStoreError):
    """No stored task has the requested task_id."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskParseError(TaskStoreError):
    """A stored row cannot be turned into a Task."""


class TaskStore:
    """Task persistence facade backed by SQLModel + SQLite.

    Each call runs in its own short session, so a call is one atomic row
    create/replace/delete. Nothing is cached between calls: other processes
    may change any row at any time.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.sqlite_busy_timeout_ms = sqlite_busy_timeout_ms
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        try:
            upgrade_head(self.db_path, busy_timeout_ms=self.sqlite_busy_timeout_ms)
        except (CommandError, SQLAlchemyError) as exc:
            raise TaskStoreError(f"Cannot prepare task store {self.db_path}: {exc}") from exc

    def insert(self, task: Task) -> int:
        """Store a new task and return its surrogate id."""

        row = AgentTaskRow(task_id=task.task_id, **_row_values(task))
        with Session(self.engine) as session:
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise DuplicateTaskError(task.task_id) from error
            session.refresh(row)
            if row.id is None:
                raise TaskStoreError(f"SQLite did not return an id for task {task.task_id}")
            logger.debug("Task inserted id=%s task_id=%s status=%s", row.id, task.task_id, task.status.value)
            return row.id

    def update(self, task: Task) -> None:
        """Overwrite the stored row for ``task.task_id`` with the given record."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(AgentTaskRow)
                .where(col(AgentTaskRow.task_id) == task.task_id)
                .values(**_row_values(task)),
            )
            if result.rowcount != 1:
                session.rollback()
                raise TaskNotFoundError(task.task_id)
            session.commit()
        logger.debug("Task updated task_id=%s status=%s", task.task_id, task.status.value)

    def get_by_id(self, task_id: str) -> Task | None:
        """Return the task or None when no row has this task_id."""

        with Session(self.engine) as session:
            row = session.exec(
                select(AgentTaskRow).where(AgentTaskRow.task_id == task_id),
            ).one_or_none()
        if row is None:
            return None
        return _to_task(row)

    def list(self, *, status: TaskStatus | None = None) -> list[Task]:
        """List tasks, most recently updated first, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = select(AgentTaskRow).order_by(
                col(AgentTaskRow.updated_at).desc(),
                col(AgentTaskRow.id).desc(),
            )
            if status is not None:
                statement = statement.where(AgentTaskRow.status == status.value)
            rows = session.exec(statement).all()
        return [_to_task(row) for row in rows]

    def count(self) -> int:
        with Session(self.engine) as session:
            return int(session.exec(select(func.count()).select_from(AgentTaskRow)).one())

    def delete(self, task_id: str) -> bool:
        """Delete one task; True if a row was removed."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(AgentTaskRow).where(col(AgentTaskRow.task_id) == task_id),
            )
            session.commit()
        return result.rowcount > 0

    def delete_with_status(self, statuses: Iterable[TaskStatus]) -> int:
        """Delete every task in one of ``statuses``; returns rows removed."""

        values = [status.value for status in statuses]
        if not values:
            return 0
        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(AgentTaskRow).where(col(AgentTaskRow.status).in_(values)),
            )
            session.commit()
        return result.rowcount

    def delete_all(self) -> int:
        """Delete every task regardless of status."""

        with Session(self.engine) as session:
            result = session.exec(sa_delete(AgentTaskRow))
            session.commit()
        return result.rowcount

    def cleanup_older_than(self, seconds: int) -> int:
        """Delete completed tasks whose completion is older than ``seconds`` ago.

        Failed, running and needs-attention rows are never removed here.
        """

        cutoff = utc_now() - timedelta(seconds=seconds)
        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(AgentTaskRow).where(
                    col(AgentTaskRow.status) == TaskStatus.COMPLETED.value,
                    col(AgentTaskRow.completed_at) < to_db_datetime(cutoff),
                ),
            )
            session.commit()
        removed = result.rowcount
        if removed:
            logger.info("Retention cleanup removed %d completed task(s)", removed)
        return removed


def _row_values(task: Task) -> dict[str, Any]:
    return {
        "agent_type": task.agent_type,
        "title": task.title,
        "status": task.status.value,
        "created_at": to_db_datetime(task.created_at),
        "updated_at": to_db_datetime(task.updated_at),
        "completed_at": (
            to_db_datetime(task.completed_at) if task.completed_at is not None else None
        ),
        "pid": task.pid,
        "ppid": task.ppid,
        "monitor_pid": task.monitor_pid,
        "attention_reason": task.attention_reason,
        "exit_code": task.exit_code,
        "context_json": _dump_json(task.context.to_dict()) if task.context is not None else None,
        "metadata_json": _dump_json(task.metadata) if task.metadata is not None else None,
    }


def _to_task(row: AgentTaskRow) -> Task:
    try:
        status = TaskStatus.parse(row.status)
    except ValueError as error:
        raise TaskParseError(f"Cannot read task {row.task_id}: {error}") from error

    context_payload = _load_json_object(row.context_json)
    return Task(
        id=row.id,
        task_id=row.task_id,
        agent_type=row.agent_type,
        title=row.title,
        status=status,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
        pid=row.pid,
        ppid=row.ppid,
        monitor_pid=row.monitor_pid,
        attention_reason=row.attention_reason,
        exit_code=row.exit_code,
        context=TaskContext.from_dict(context_payload) if context_payload is not None else None,
        metadata=_load_json_object(row.metadata_json),
    )


def _dump_json(value: dict[str, Any]) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _load_json_object(raw: str | None) -> dict[str, Any] | None:
    # Malformed optional JSON reads as absent rather than failing the row.
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
