"""SQLModel ORM tables for the daily task store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class DailyTask(SQLModel, table=True):
    __tablename__ = "daily_tasks"  # type: ignore[bad-override]

    task_date: str = Field(primary_key=True)
    status: str = Field(index=True)
    total_items: int = Field(default=0)
    completed_count: int = Field(default=0)
    failed_count: int = Field(default=0)
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    published_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    archived_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class TaskItem(SQLModel, table=True):
    __tablename__ = "task_items"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("task_date", "source_id", name="uq_task_items_date_source"),
        Index("idx_task_items_date_status", "task_date", "status"),
        Index("idx_task_items_date_rank", "task_date", "rank"),
    )

    id: int | None = Field(default=None, primary_key=True)
    task_date: str = Field(
        sa_column=Column(
            ForeignKey("daily_tasks.task_date", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    rank: int
    source_id: str
    title: str
    url: str | None = None
    score: int | None = None
    author: str | None = None
    source_published_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    metadata_json: str | None = Field(default=None, sa_column=Column(Text))
    status: str
    retry_count: int = Field(default=0)
    claim_token: str | None = Field(default=None, index=True)
    claimed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    translated_title: str | None = Field(default=None, sa_column=Column(Text))
    content_summary: str | None = Field(default=None, sa_column=Column(Text))
    comment_summary: str | None = Field(default=None, sa_column=Column(Text))
    failure_reason: str | None = None
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskBatch(SQLModel, table=True):
    __tablename__ = "task_batches"  # type: ignore[bad-override]
    __table_args__ = (
        Index("uq_task_batches_date_index", "task_date", "batch_index", unique=True),
    )

    id: int | None = Field(default=None, primary_key=True)
    task_date: str = Field(
        sa_column=Column(
            ForeignKey("daily_tasks.task_date", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    batch_index: int
    item_count: int
    external_call_count: int = Field(default=0)
    duration_ms: int = Field(default=0)
    status: str
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskEvent(SQLModel, table=True):
    __tablename__ = "task_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_task_events_date_time", "task_date", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    task_date: str = Field(
        sa_column=Column(
            ForeignKey("daily_tasks.task_date", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
