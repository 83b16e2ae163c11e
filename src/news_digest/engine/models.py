"""Domain models for the daily task engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Daily task lifecycle states, in forward order."""

    INIT = "init"
    LISTED = "listed"
    PROCESSING = "processing"
    AGGREGATING = "aggregating"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ItemStatus(str, Enum):
    """Per-item processing states."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class FailureReason(str, Enum):
    """Normalized item failure reasons."""

    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    EMPTY_RESULT = "empty_result"
    UNKNOWN = "unknown"


class TickAction(str, Enum):
    """What one tick did, for operator-facing reporting."""

    LISTED = "listed"
    PROCESSED = "processed"
    AGGREGATED = "aggregated"
    PUBLISHED = "published"
    WAITING = "waiting"
    NOOP = "noop"
    FAILED = "failed"


@dataclass(slots=True)
class TaskView:
    """Readable task view for orchestrator and CLI logic."""

    task_date: str
    status: TaskStatus
    total_items: int
    completed_count: int
    failed_count: int
    last_error: str | None
    created_at: datetime
    updated_at: datetime
    published_at: datetime | None
    archived_at: datetime | None


@dataclass(slots=True)
class ItemCreate:
    """Input payload for inserting one pending item."""

    rank: int
    source_id: str
    title: str
    url: str | None = None
    score: int | None = None
    author: str | None = None
    source_published_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ItemView:
    """Readable item view with its processing result, if any."""

    item_id: int
    task_date: str
    rank: int
    source_id: str
    title: str
    url: str | None
    score: int | None
    author: str | None
    source_published_at: datetime | None
    metadata: dict[str, Any]
    status: ItemStatus
    retry_count: int
    claim_token: str | None
    claimed_at: datetime | None
    translated_title: str | None
    content_summary: str | None
    comment_summary: str | None
    failure_reason: FailureReason | None
    error_message: str | None
    updated_at: datetime


@dataclass(slots=True)
class ItemOutcome:
    """Result of running the enrichment pipeline for one claimed item."""

    item_id: int
    claim_token: str
    success: bool
    translated_title: str | None = None
    content_summary: str | None = None
    comment_summary: str | None = None
    failure_reason: FailureReason | None = None
    error_message: str | None = None
    external_calls: int = 0


@dataclass(slots=True)
class OutcomeWriteSummary:
    """How many outcomes were applied; stale writes are counted separately."""

    completed: int = 0
    failed: int = 0
    stale: int = 0


@dataclass(slots=True)
class BatchRecordWrite:
    task_date: str
    item_count: int
    external_call_count: int
    duration_ms: int
    status: BatchStatus
    error_message: str | None = None


@dataclass(slots=True)
class BatchRecordView:
    batch_id: int
    task_date: str
    batch_index: int
    item_count: int
    external_call_count: int
    duration_ms: int
    status: BatchStatus
    error_message: str | None
    created_at: datetime


@dataclass(slots=True)
class BatchStatistics:
    """Aggregated batch audit counters for one task."""

    task_date: str
    batches: int = 0
    items: int = 0
    external_calls: int = 0
    total_duration_ms: int = 0
    by_status: dict[str, int] = field(default_factory=dict)

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.batches if self.batches else 0.0


@dataclass(slots=True)
class TaskEventView:
    """Task event entry for audit trail."""

    event_id: int
    task_date: str
    event_type: str
    status_from: TaskStatus | None
    status_to: TaskStatus | None
    created_at: datetime
    details: dict[str, object]


@dataclass(slots=True)
class TaskStatusView:
    """Operator-facing snapshot: task counters plus live item distribution."""

    task: TaskView
    item_counts: dict[ItemStatus, int]
    batches: int

    @property
    def pending(self) -> int:
        return self.item_counts.get(ItemStatus.PENDING, 0)

    @property
    def in_flight(self) -> int:
        return self.item_counts.get(ItemStatus.IN_FLIGHT, 0)


@dataclass(slots=True)
class TickResult:
    """Summary of one orchestrator invocation."""

    task_date: str
    status_before: TaskStatus
    status_after: TaskStatus
    action: TickAction
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    reclaimed: int = 0
    pending: int = 0
    in_flight: int = 0
    published_items: int = 0
    archived_tasks: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def finished(self) -> bool:
        return self.status_after in {TaskStatus.PUBLISHED, TaskStatus.ARCHIVED}
