"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from agent_inbox.logging_setup import remove_handlers
from agent_inbox.tasks.repository import TaskStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Point $HOME at a temp dir and drop AGENT_INBOX_* overrides."""

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for name in (
        "AGENT_INBOX_DB_PATH",
        "AGENT_INBOX_SQLITE_BUSY_TIMEOUT_MS",
        "AGENT_INBOX_LOG_LEVEL",
        "AGENT_INBOX_RETENTION_SECONDS",
        "AGENT_INBOX_MONITOR_POLL_SECONDS",
        "AGENT_INBOX_IDLE_THRESHOLD_SECONDS",
        "AGENT_INBOX_IDLE_ROOT_ONLY",
        "AGENT_INBOX_WATCH_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    remove_handlers()


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "tasks.db"


@pytest.fixture()
def store(db_path: Path) -> Iterator[TaskStore]:
    task_store = TaskStore(db_path)
    task_store.init_schema()
    try:
        yield task_store
    finally:
        task_store.close()
