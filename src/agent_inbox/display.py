"""Plain-text rendering of task lists and task details for CLI output."""

from __future__ import annotations

from datetime import datetime

from agent_inbox.storage.common import utc_now
from agent_inbox.tasks.models import Task, TaskStatus

LIST_TITLE_CHARS = 60
SECTION_RULE = "-" * 50

_SECTIONS = (
    (TaskStatus.NEEDS_ATTENTION, "NEEDS ATTENTION", "need attention"),
    (TaskStatus.RUNNING, "RUNNING", "running"),
    (TaskStatus.COMPLETED, "COMPLETED", "completed"),
    (TaskStatus.FAILED, "FAILED", "failed"),
)

_AGENT_BADGES = {
    "claude_web": "claude.ai",
    "gemini_web": "gemini",
    "claude_code": "claude-code",
    "opencode": "opencode",
}


def render_task_list(
    tasks: list[Task],
    *,
    now: datetime | None = None,
    retention_seconds: int | None = None,
) -> list[str]:
    """Tasks grouped by status with a summary line; numbering runs across groups."""

    if not tasks:
        return [
            "No active tasks",
            "Start a conversation in Claude.ai or Gemini to create tasks",
        ]

    now = now or utc_now()
    groups = {status: [task for task in tasks if task.status == status] for status, *_ in _SECTIONS}
    summary = [
        f"{len(groups[status])} {label}" for status, _, label in _SECTIONS if groups[status]
    ]
    lines = ["Agent Inbox", "", "  |  ".join(summary), ""]

    index = 0
    for status, heading, _ in _SECTIONS:
        if not groups[status]:
            continue
        lines.append(heading)
        lines.append(SECTION_RULE)
        for task in groups[status]:
            index += 1
            lines.extend(_task_summary_lines(index, task, now=now))
        lines.append("")

    if retention_seconds is not None:
        lines.append(f"Completed tasks auto-clear after {format_duration(retention_seconds)}")
    lines.append("Run `agent-inbox show <id>` for details")
    return lines


def render_task_detail(task: Task) -> list[str]:
    lines = [
        f"Status: {task.status.value.upper()}",
        "",
        f"ID: {task.task_id}",
        f"Agent: {task.agent_type}",
        f"Title: {task.title}",
        "",
        "Timestamps:",
        f"  Created:   {format_datetime(task.created_at)}",
        f"  Updated:   {format_datetime(task.updated_at)}",
    ]
    if task.completed_at is not None:
        lines.append(f"  Completed: {format_datetime(task.completed_at)}")

    if task.pid is not None or task.ppid is not None:
        lines.extend(["", "Process Info:"])
        if task.pid is not None:
            lines.append(f"  PID:     {task.pid}")
        if task.ppid is not None:
            lines.append(f"  Parent:  {task.ppid}")
        if task.monitor_pid is not None:
            lines.append(f"  Monitor: {task.monitor_pid}")

    if task.attention_reason is not None:
        lines.extend(["", f"Attention Reason: {task.attention_reason}"])
    if task.exit_code is not None:
        lines.extend(["", f"Exit Code: {task.exit_code}"])

    context = task.context
    if context is not None:
        lines.extend(["", "Context:"])
        if context.url is not None:
            lines.append(f"  URL:        {context.url}")
        if context.project_path is not None:
            lines.append(f"  Project:    {context.project_path}")
        if context.session_id is not None:
            lines.append(f"  Session ID: {context.session_id}")
        if context.extra:
            lines.append("  Extra:")
            for key, value in sorted(context.extra.items()):
                lines.append(f"    {key}: {value}")
    return lines


def format_elapsed(then: datetime, *, now: datetime | None = None) -> str:
    """Coarse "(Ns ago)" marker using the largest whole unit."""

    elapsed = max(0, int(((now or utc_now()) - then).total_seconds()))
    if elapsed < 60:
        return f"({elapsed}s ago)"
    if elapsed < 3_600:
        return f"({elapsed // 60}m ago)"
    if elapsed < 86_400:
        return f"({elapsed // 3_600}h ago)"
    return f"({elapsed // 86_400}d ago)"


def format_datetime(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_duration(seconds: int) -> str:
    if seconds % 3_600 == 0 and seconds >= 3_600:
        hours = seconds // 3_600
        return "1 hour" if hours == 1 else f"{hours} hours"
    if seconds % 60 == 0 and seconds >= 60:
        return f"{seconds // 60} min"
    return f"{seconds}s"


def _task_summary_lines(index: int, task: Task, *, now: datetime) -> list[str]:
    badge = _AGENT_BADGES.get(task.agent_type)
    if badge is None:
        badge = f"{task.agent_type}:{task.pid}" if task.pid is not None else task.agent_type
    title = task.title
    if len(title) > LIST_TITLE_CHARS:
        title = title[: LIST_TITLE_CHARS - 3] + "..."

    lines = [
        f"  {index:2}. [{badge}] \"{title}\" {format_elapsed(task.updated_at, now=now)}",
        f"      id: {task.task_id}",
    ]
    if task.status == TaskStatus.NEEDS_ATTENTION and task.attention_reason:
        lines.append(f"      -> {task.attention_reason}")
    if task.status == TaskStatus.FAILED and task.exit_code is not None:
        lines.append(f"      -> Exit code: {task.exit_code}")
    return lines
