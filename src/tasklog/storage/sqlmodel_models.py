"""SQLModel ORM tables for the task cache."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    title: str
    description: str | None = Field(default="", sa_column=Column(Text, nullable=True))
    status: str = Field(default="open", index=True)
    priority: int = Field(default=2, index=True)
    task_type: str = Field(
        default="task",
        sa_column=Column("type", String, nullable=False, server_default="task", index=True),
    )
    assignee: str | None = Field(default=None, index=True)
    parent_id: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    content_hash: str | None = None
    plan: bool = Field(default=False, index=True)
    source_plan_id: str | None = Field(default=None, index=True)
    ephemeral: bool = Field(default=False, index=True)
    notes: str | None = Field(default="", sa_column=Column(Text, nullable=True))


class DependencyRow(SQLModel, table=True):
    __tablename__ = "dependencies"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    source_id: str = Field(index=True)
    target_id: str = Field(index=True)
    dep_type: str = Field(
        default="blocks",
        sa_column=Column("type", String, nullable=False, server_default="blocks", index=True),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class LabelRow(SQLModel, table=True):
    __tablename__ = "labels"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("task_id", "name", name="uq_labels_task_name"),)

    id: str = Field(primary_key=True)
    task_id: str = Field(index=True)
    name: str = Field(index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CommentRow(SQLModel, table=True):
    __tablename__ = "comments"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    task_id: str = Field(index=True)
    author: str | None = None
    body: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class BlockedTaskRow(SQLModel, table=True):
    """Materialized set of currently blocked task IDs; rebuilt, never edited in place."""

    __tablename__ = "blocked_tasks"  # type: ignore[bad-override]

    task_id: str = Field(primary_key=True)
