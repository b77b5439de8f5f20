"""SQLModel ORM table for the shared task store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class AgentTaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_updated_at", "updated_at"),
        Index("idx_tasks_pid", "pid"),
        Index("idx_tasks_completed_at", "completed_at"),
        {"sqlite_autoincrement": True},
    )

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(unique=True, nullable=False)
    agent_type: str
    title: str
    status: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    pid: int | None = None
    ppid: int | None = None
    monitor_pid: int | None = None
    attention_reason: str | None = Field(default=None, sa_column=Column(Text))
    exit_code: int | None = None
    # "metadata" is reserved on declarative models, so both JSON columns get
    # explicit attribute names.
    context_json: str | None = Field(default=None, sa_column=Column("context", Text))
    metadata_json: str | None = Field(default=None, sa_column=Column("metadata", Text))
