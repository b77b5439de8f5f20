"""Utilities to run Alembic migrations programmatically."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import event
from sqlalchemy.engine import Connection

from agent_inbox.storage.common import build_sqlite_engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def upgrade_head(db_path: Path, *, busy_timeout_ms: int = 5000) -> None:
    """Bring the task store schema to the latest revision.

    Every CLI, bridge and monitor process opens the store, so the common case
    (already at head) is answered from ``alembic_version`` without a write
    lock. Otherwise the upgrade runs inside ``BEGIN IMMEDIATE`` and the
    revision is read again under that lock, so processes racing on a fresh
    file migrate it exactly once.
    """

    config = alembic_config(db_path)
    head = ScriptDirectory.from_config(config).get_current_head()
    if current_revision(db_path, busy_timeout_ms=busy_timeout_ms) == head:
        return

    engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    @event.listens_for(engine, "connect")
    def _manual_transactions(dbapi_connection: sqlite3.Connection, _record: object) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection: Connection) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    try:
        with engine.begin() as connection:
            current = MigrationContext.configure(connection).get_current_revision()
            if current == head:
                return
            logger.info(
                "Migrating task store %s from %s to %s",
                db_path,
                current or "empty",
                head,
            )
            config.attributes["connection"] = connection
            command.upgrade(config, "head")
    finally:
        engine.dispose()


def current_revision(db_path: Path, *, busy_timeout_ms: int = 5000) -> str | None:
    engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()


def alembic_config(db_path: Path) -> Config:
    """Alembic config pointing at the migrations shipped inside the package."""

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config
