"""Alembic environment for the agent task store."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Connection
from sqlmodel import SQLModel

from agent_inbox.storage import sqlmodel_models  # noqa: F401
from agent_inbox.storage.common import build_sqlite_engine

from alembic import context

config = context.config
target_metadata = SQLModel.metadata


def _db_path() -> Path:
    url = config.get_main_option("sqlalchemy.url") or ""
    return Path(url.removeprefix("sqlite:///"))


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connection = config.attributes.get("connection")
    if connection is not None:
        _run_on(connection)
        return

    engine = build_sqlite_engine(db_path=_db_path(), busy_timeout_ms=5000)
    try:
        with engine.connect() as connection:
            _run_on(connection)
    finally:
        engine.dispose()


def _run_on(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
