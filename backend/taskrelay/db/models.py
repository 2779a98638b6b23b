from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, Index, String, Text
from sqlmodel import Field, SQLModel

from taskrelay.db.enums import INITIAL_TASK_STATUS, LogAction, TaskStatus


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back without tzinfo even though they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ContentEdit(BaseModel):
    """Previous content of a task, captured before an edit overwrote it."""

    content: str
    images: list[str] | None = None
    timestamp: datetime
    user_id: int


class LogEdit(BaseModel):
    """Previous comment of a log entry, captured before its author edited it."""

    comment: str | None = None
    images: list[str] | None = None
    timestamp: datetime = PydanticField(default_factory=utc_now)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(sa_column=Column(String(length=320), nullable=False, unique=True))
    name: str | None = Field(default=None, sa_column=Column(String(length=200), nullable=True))
    picture: str | None = Field(default=None, sa_column=Column(String(length=1024), nullable=True))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_creator_creation_time", "creator_id", "creation_time"),)

    id: int | None = Field(default=None, primary_key=True)
    content: str = Field(sa_column=Column(Text(), nullable=False))
    images: list[str] | None = Field(default=None, sa_column=Column(JSON(), nullable=True))
    creator_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    assignee_email: str = Field(
        sa_column=Column(String(length=320), nullable=False, index=True),
    )
    assignee_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    status: TaskStatus = Field(
        default=INITIAL_TASK_STATUS,
        sa_column=Column(String(length=32), nullable=False, index=True),
    )
    parent_id: int | None = Field(default=None, foreign_key="tasks.id", index=True)
    last_comment: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    last_comment_images: list[str] | None = Field(
        default=None,
        sa_column=Column(JSON(), nullable=True),
    )
    creation_time: datetime = Field(default_factory=utc_now, nullable=False, index=True)
    content_edits: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON(), nullable=False),
    )

    def content_history(self) -> list[ContentEdit]:
        return [ContentEdit.model_validate(entry) for entry in self.content_edits or []]


class TaskLog(SQLModel, table=True):
    __tablename__ = "task_logs"
    __table_args__ = (Index("ix_task_logs_task_timestamp", "task_id", "timestamp"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    action: LogAction = Field(sa_column=Column(String(length=32), nullable=False, index=True))
    comment: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    images: list[str] | None = Field(default=None, sa_column=Column(JSON(), nullable=True))
    timestamp: datetime = Field(default_factory=utc_now, nullable=False)
    edits: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON(), nullable=False),
    )

    def edit_history(self) -> list[LogEdit]:
        return [LogEdit.model_validate(entry) for entry in self.edits or []]
