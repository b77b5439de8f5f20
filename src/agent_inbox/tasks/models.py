"""Task record and its status state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from agent_inbox.storage.common import utc_now

MAX_TITLE_CHARS = 100
TITLE_ELLIPSIS = "..."


class TaskStatus(str, Enum):
    """Task lifecycle states as persisted in the store."""

    RUNNING = "running"
    COMPLETED = "completed"
    NEEDS_ATTENTION = "needs_attention"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: str) -> TaskStatus:
        """Parse a persisted/user supplied status string."""

        try:
            return cls(value.strip().lower())
        except ValueError as error:
            raise ValueError(f"Invalid task status: {value!r}") from error

    @property
    def is_terminal(self) -> bool:
        return self in {TaskStatus.COMPLETED, TaskStatus.FAILED}


@dataclass(slots=True)
class TaskContext:
    """Where the task runs: browser URL, project directory, agent session."""

    url: str | None = None
    project_path: str | None = None
    session_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flatten known fields and extra values into one JSON object."""

        payload: dict[str, Any] = dict(self.extra)
        payload["url"] = self.url
        payload["project_path"] = self.project_path
        payload["session_id"] = self.session_id
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> TaskContext:
        extra = {
            key: value
            for key, value in payload.items()
            if key not in {"url", "project_path", "session_id"}
        }
        return cls(
            url=_optional_str(payload.get("url")),
            project_path=_optional_str(payload.get("project_path")),
            session_id=_optional_str(payload.get("session_id")),
            extra=extra,
        )


@dataclass(slots=True)
class Task:
    """One tracked unit of agent activity.

    Transition methods only mutate the in-memory record; persisting the result
    is the caller's job (see ``TaskStore.update``). None of them raise: the
    caller picks the transition that matches the observed signal.
    """

    task_id: str
    agent_type: str
    title: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    pid: int | None = None
    ppid: int | None = None
    monitor_pid: int | None = None
    attention_reason: str | None = None
    exit_code: int | None = None
    context: TaskContext | None = None
    metadata: dict[str, Any] | None = None
    id: int | None = None

    @classmethod
    def create(
        cls,
        task_id: str,
        agent_type: str,
        title: str,
        pid: int | None = None,
        ppid: int | None = None,
    ) -> Task:
        """Start tracking a new running task."""

        now = utc_now()
        return cls(
            task_id=task_id,
            agent_type=agent_type,
            title=truncate_title(title),
            status=TaskStatus.RUNNING,
            created_at=now,
            updated_at=now,
            pid=pid,
            ppid=ppid,
        )

    def complete(self, exit_code: int | None = None) -> None:
        """Finish the task; a non-zero exit code means failure."""

        now = self._touch()
        self.status = (
            TaskStatus.FAILED if exit_code is not None and exit_code != 0 else TaskStatus.COMPLETED
        )
        self.exit_code = exit_code
        self.completed_at = now
        self.attention_reason = None

    def mark_needs_attention(self, reason: str) -> None:
        """Pause the task until a human looks at it."""

        self._touch()
        self.status = TaskStatus.NEEDS_ATTENTION
        self.attention_reason = reason

    def resume(self) -> None:
        """Back to running on follow-up activity."""

        self._touch()
        self.status = TaskStatus.RUNNING
        self.completed_at = None
        self.attention_reason = None

    def _touch(self) -> datetime:
        # updated_at never moves backwards, even if the wall clock does.
        now = max(utc_now(), self.updated_at)
        self.updated_at = now
        return now


def truncate_title(title: str, max_chars: int = MAX_TITLE_CHARS) -> str:
    """Cut long titles to ``max_chars`` characters ending with an ellipsis."""

    if len(title) <= max_chars:
        return title
    return title[: max_chars - len(TITLE_ELLIPSIS)] + TITLE_ELLIPSIS


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)
