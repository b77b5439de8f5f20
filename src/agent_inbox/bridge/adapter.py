"""Translate browser extension events into task store operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from agent_inbox.bridge.protocol import (
    BridgeFramingError,
    BridgeMessageError,
    read_message,
    write_message,
)
from agent_inbox.tasks.models import Task, TaskContext, TaskStatus
from agent_inbox.tasks.repository import TaskStore, TaskStoreError

logger = logging.getLogger(__name__)

WAITING_FOR_USER_REASON = "Waiting for user action"


@dataclass(frozen=True, slots=True)
class BridgeMessage:
    """One task update sent by the browser extension."""

    type: str
    task_id: str
    agent_type: str
    status: str
    title: str
    url: str | None = None
    conversation_id: str | None = None
    timestamp: int | None = None
    duration_ms: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> BridgeMessage:
        values = {name: _required_str(payload, name) for name in _REQUIRED_FIELDS}
        context = payload.get("context")
        if not isinstance(context, dict):
            raise BridgeMessageError("Field 'context' must be an object")
        return cls(
            **values,
            url=_optional_str(context, "url"),
            conversation_id=_optional_str(context, "conversation_id"),
            timestamp=_optional_int(context, "timestamp"),
            duration_ms=_optional_int(context, "duration_ms"),
        )

    def task_context(self) -> TaskContext:
        extra: dict[str, Any] = {}
        if self.conversation_id is not None:
            extra["conversation_id"] = self.conversation_id
        if self.duration_ms is not None:
            extra["duration_ms"] = self.duration_ms
        if self.timestamp is not None:
            extra["timestamp"] = self.timestamp
        return TaskContext(url=self.url, extra=extra)


_REQUIRED_FIELDS = ("type", "task_id", "agent_type", "status", "title")


@dataclass(slots=True)
class BridgeRunSummary:
    processed: int = 0
    errors: int = 0
    stop_error: str | None = None
    error_messages: list[str] = field(default_factory=list)


def process_message(store: TaskStore, message: BridgeMessage) -> None:
    """Apply one browser event to the store."""

    logger.debug(
        "Processing message type=%s status=%s task_id=%s",
        message.type,
        message.status,
        message.task_id,
    )
    if message.status == TaskStatus.RUNNING.value:
        existing = store.get_by_id(message.task_id)
        if existing is not None:
            existing.resume()
            store.update(existing)
            logger.info("Resumed task_id=%s", message.task_id)
            return
        task = Task.create(message.task_id, message.agent_type, message.title)
        task.context = message.task_context()
        store.insert(task)
        logger.info("Created task_id=%s agent_type=%s", message.task_id, message.agent_type)
        return

    if message.status == TaskStatus.COMPLETED.value:
        task = store.get_by_id(message.task_id)
        if task is None:
            logger.warning("Task not found for completion: %s", message.task_id)
            return
        task.complete(0)
        store.update(task)
        logger.info("Completed task_id=%s", message.task_id)
        return

    if message.status == TaskStatus.NEEDS_ATTENTION.value:
        task = store.get_by_id(message.task_id)
        if task is None:
            logger.warning("Task not found for attention: %s", message.task_id)
            return
        task.mark_needs_attention(WAITING_FOR_USER_REASON)
        store.update(task)
        logger.info("Task task_id=%s needs attention", message.task_id)
        return

    raise BridgeMessageError(f"Unknown status: {message.status}")


def run_bridge(store: TaskStore, stdin: BinaryIO, stdout: BinaryIO) -> BridgeRunSummary:
    """Serve framed messages until end of input or a framing error.

    Every complete frame gets exactly one reply, ``{"status": "ok"}`` or
    ``{"status": "error", "message": ...}``.
    """

    summary = BridgeRunSummary()
    while True:
        try:
            payload = read_message(stdin)
        except BridgeFramingError as error:
            logger.error("Error reading message: %s", error)
            summary.stop_error = str(error)
            break
        except BridgeMessageError as error:
            _reply_error(stdout, summary, str(error))
            continue
        if payload is None:
            break

        try:
            process_message(store, BridgeMessage.from_payload(payload))
        except (BridgeMessageError, TaskStoreError) as error:
            _reply_error(stdout, summary, str(error))
            continue
        summary.processed += 1
        write_message(stdout, {"status": "ok"})

    logger.info(
        "Bridge exiting processed=%d errors=%d",
        summary.processed,
        summary.errors,
    )
    return summary


def _reply_error(stdout: BinaryIO, summary: BridgeRunSummary, message: str) -> None:
    logger.warning("Error processing message: %s", message)
    summary.errors += 1
    summary.error_messages.append(message)
    write_message(stdout, {"status": "error", "message": message})


def _required_str(payload: dict[str, Any], name: str) -> str:
    value = payload.get(name)
    if not isinstance(value, str):
        raise BridgeMessageError(f"Field '{name}' must be a string")
    if not value and name != "title":
        raise BridgeMessageError(f"Field '{name}' must not be empty")
    return value


def _optional_str(payload: dict[str, Any], name: str) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise BridgeMessageError(f"Field 'context.{name}' must be a string")
    return value


def _optional_int(payload: dict[str, Any], name: str) -> int | None:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise BridgeMessageError(f"Field 'context.{name}' must be an integer")
    return value
