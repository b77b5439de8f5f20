import multiprocessing
from pathlib import Path

import allure
import pytest
from sqlalchemy import inspect, text

import agent_inbox.storage
from agent_inbox.storage.alembic_runner import (
    MIGRATIONS_DIR,
    alembic_config,
    current_revision,
    upgrade_head,
)
from agent_inbox.tasks.models import Task
from agent_inbox.tasks.repository import TaskStore, TaskStoreError

pytestmark = [
    allure.epic("Task Lifecycle"),
    allure.feature("Shared Task Store"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "migrations.db")
    store.init_schema()
    store.init_schema()

    with store.engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
        inspector = inspect(connection)
        columns = {column["name"] for column in inspector.get_columns("tasks")}
        indexes = {index["name"] for index in inspector.get_indexes("tasks")}
    store.close()

    assert version == "20261019_0001"
    assert columns == {
        "id",
        "task_id",
        "agent_type",
        "title",
        "status",
        "created_at",
        "updated_at",
        "completed_at",
        "pid",
        "ppid",
        "monitor_pid",
        "attention_reason",
        "exit_code",
        "context",
        "metadata",
    }
    assert {
        "idx_tasks_status",
        "idx_tasks_updated_at",
        "idx_tasks_pid",
        "idx_tasks_completed_at",
    } <= indexes


def test_current_revision_is_none_before_first_open_and_head_after(tmp_path: Path) -> None:
    db_path = tmp_path / "revision.db"
    assert current_revision(db_path) is None

    upgrade_head(db_path)
    upgrade_head(db_path)

    assert current_revision(db_path) == "20261019_0001"


def _open_and_insert(db_path: str, task_id: str, barrier) -> None:
    barrier.wait(timeout=30)
    store = TaskStore(Path(db_path))
    try:
        store.init_schema()
        store.insert(Task.create(task_id, "claude_code", f"Task {task_id}"))
    finally:
        store.close()


def test_concurrent_first_opens_migrate_a_fresh_file_once(tmp_path: Path) -> None:
    db_path = tmp_path / "fresh.db"
    ctx = multiprocessing.get_context("fork")
    workers = 6
    barrier = ctx.Barrier(workers)
    processes = [
        ctx.Process(target=_open_and_insert, args=(str(db_path), f"task-{index}", barrier))
        for index in range(workers)
    ]
    for process in processes:
        process.start()
    for process in processes:
        process.join(timeout=60)

    assert [process.exitcode for process in processes] == [0] * workers
    store = TaskStore(db_path)
    try:
        assert store.count() == workers
    finally:
        store.close()
    assert current_revision(db_path) == "20261019_0001"


def test_migrations_ship_inside_the_package(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)

    upgrade_head(tmp_path / "elsewhere.db")

    assert MIGRATIONS_DIR.parent == Path(agent_inbox.storage.__file__).resolve().parent
    assert (MIGRATIONS_DIR / "script.py.mako").is_file()
    assert alembic_config(tmp_path / "x.db").config_file_name is None
    assert current_revision(tmp_path / "elsewhere.db") == "20261019_0001"


def test_unopenable_store_raises_task_store_error(tmp_path: Path) -> None:
    store = TaskStore(tmp_path)

    with pytest.raises(TaskStoreError, match="Cannot prepare task store"):
        store.init_schema()
    store.close()
