"""Persistent store for daily tasks, their items, batch records and events.

Every state change is a conditional UPDATE whose WHERE clause restates the
state the caller expects (compare-and-swap). ``rowcount`` tells whether this
writer won; losers roll back and report ``False`` instead of raising, so
overlapping ticks never corrupt each other.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, or_
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from news_digest.engine.models import (
    BatchRecordView,
    BatchRecordWrite,
    BatchStatistics,
    BatchStatus,
    FailureReason,
    ItemCreate,
    ItemOutcome,
    ItemStatus,
    ItemView,
    OutcomeWriteSummary,
    TaskEventView,
    TaskStatus,
    TaskStatusView,
    TaskView,
)
from news_digest.storage.alembic_runner import upgrade_head
from news_digest.storage.common import (
    build_sqlite_engine,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from news_digest.storage.tables import DailyTask, TaskBatch, TaskEvent, TaskItem

logger = logging.getLogger(__name__)

RETRYABLE_TASK_STATUSES = frozenset(
    {TaskStatus.LISTED, TaskStatus.PROCESSING, TaskStatus.AGGREGATING},
)
PUBLISHER_SUCCEEDED_EVENT = "publisher_succeeded"
BATCH_INDEX_ATTEMPTS = 10


class TaskRepository:
    """Store facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    # Tasks

    def get_task(self, task_date: str) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.get(DailyTask, task_date)
            return _to_task_view(row) if row is not None else None

    def get_or_create_task(self, task_date: str) -> TaskView:
        """Return the task for a date, inserting it in ``init`` if absent.

        Two ticks racing on the same date both attempt the insert; the loser
        hits the primary key and falls back to reading the winner's row.
        """

        existing = self.get_task(task_date)
        if existing is not None:
            return existing

        now = utc_now()
        with Session(self.engine) as session:
            session.add(
                DailyTask(
                    task_date=task_date,
                    status=TaskStatus.INIT.value,
                    created_at=now,
                    updated_at=now,
                ),
            )
            try:
                session.flush()
                self._add_event(
                    session=session,
                    task_date=task_date,
                    event_type="created",
                    status_from=None,
                    status_to=TaskStatus.INIT,
                    details={},
                )
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.info("Task %s was created concurrently, reusing it", task_date)

        created = self.get_task(task_date)
        if created is None:
            raise RuntimeError(f"Task not found after create: {task_date}")
        return created

    def list_tasks(self, *, status: TaskStatus | None = None, limit: int = 50) -> list[TaskView]:
        """List tasks, newest date first."""

        with Session(self.engine) as session:
            statement = select(DailyTask).order_by(col(DailyTask.task_date).desc()).limit(limit)
            if status is not None:
                statement = statement.where(DailyTask.status == status.value)
            rows = session.exec(statement).all()
            return [_to_task_view(row) for row in rows]

    def transition_task(  # noqa: PLR0913
        self,
        *,
        task_date: str,
        from_statuses: frozenset[TaskStatus] | set[TaskStatus],
        to_status: TaskStatus,
        event_type: str,
        details: dict[str, object] | None = None,
    ) -> bool:
        """Move a task forward if it is still in one of ``from_statuses``."""

        with Session(self.engine) as session:
            moved = self._transition(
                session=session,
                task_date=task_date,
                from_statuses=from_statuses,
                to_status=to_status,
                event_type=event_type,
                details=details or {},
            )
            if not moved:
                session.rollback()
                return False
            session.commit()
            return True

    def list_task_items(self, *, task_date: str, items: list[ItemCreate]) -> int:
        """Insert pending items and move ``init`` -> ``listed`` in one transaction.

        Items whose ``source_id`` already exists for the date are skipped.
        Returns the number of inserted rows, or 0 when another tick listed the
        task first.
        """

        now = utc_now()
        with Session(self.engine) as session:
            existing = set(
                session.exec(select(TaskItem.source_id).where(TaskItem.task_date == task_date)),
            )
            inserted = 0
            for item in items:
                if item.source_id in existing:
                    continue
                existing.add(item.source_id)
                session.add(
                    TaskItem(
                        task_date=task_date,
                        rank=item.rank,
                        source_id=item.source_id,
                        title=item.title,
                        url=item.url,
                        score=item.score,
                        author=item.author,
                        source_published_at=item.source_published_at,
                        metadata_json=_dump_json(item.metadata),
                        status=ItemStatus.PENDING.value,
                        retry_count=0,
                        created_at=now,
                        updated_at=now,
                    ),
                )
                inserted += 1
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                logger.info("Items for %s were listed concurrently", task_date)
                return 0

            total = session.exec(
                select(func.count()).select_from(TaskItem).where(TaskItem.task_date == task_date),
            ).one()
            result = session.exec(
                sa_update(DailyTask)
                .where(
                    col(DailyTask.task_date) == task_date,
                    col(DailyTask.status) == TaskStatus.INIT.value,
                )
                .values(
                    status=TaskStatus.LISTED.value,
                    total_items=total,
                    last_error=None,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return 0
            self._add_event(
                session=session,
                task_date=task_date,
                event_type="listed",
                status_from=TaskStatus.INIT,
                status_to=TaskStatus.LISTED,
                details={"inserted": inserted, "total_items": total},
            )
            session.commit()
            return inserted

    def record_task_error(self, *, task_date: str, phase: TaskStatus, error: str) -> None:
        """Store the latest phase failure without changing status.

        A failure identical to the stored ``last_error`` only refreshes
        ``updated_at``; the event trail keeps one entry per distinct error.
        """

        with Session(self.engine) as session:
            previous = session.exec(
                select(DailyTask.last_error).where(DailyTask.task_date == task_date),
            ).first()
            session.exec(
                sa_update(DailyTask)
                .where(col(DailyTask.task_date) == task_date)
                .values(last_error=error, updated_at=to_db_datetime(utc_now())),
            )
            if previous == error:
                logger.debug("Task %s failed again in %s: %s", task_date, phase.value, error)
                session.commit()
                return
            self._add_event(
                session=session,
                task_date=task_date,
                event_type="phase_failed",
                status_from=phase,
                status_to=phase,
                details={"error": error},
            )
            session.commit()

    def mark_published(
        self,
        *,
        task_date: str,
        from_statuses: frozenset[TaskStatus] | set[TaskStatus],
        details: dict[str, object] | None = None,
    ) -> bool:
        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(DailyTask, task_date)
            if row is None or TaskStatus(row.status) not in from_statuses:
                return False
            previous = TaskStatus(row.status)
            result = session.exec(
                sa_update(DailyTask)
                .where(
                    col(DailyTask.task_date) == task_date,
                    col(DailyTask.status) == previous.value,
                )
                .values(
                    status=TaskStatus.PUBLISHED.value,
                    published_at=to_db_datetime(now),
                    last_error=None,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_date=task_date,
                event_type="published",
                status_from=previous,
                status_to=TaskStatus.PUBLISHED,
                details=details or {},
            )
            session.commit()
            return True

    def archive_published_tasks(
        self,
        *,
        retention: timedelta,
        purge_items: bool,
        now: datetime | None = None,
    ) -> list[str]:
        """Archive tasks published before ``now - retention``.

        With ``purge_items`` the item rows and batch records go away; the task
        row, its counters and its event trail are kept.
        """

        cutoff = to_db_datetime((now or utc_now()) - retention)
        archived: list[str] = []
        with Session(self.engine) as session:
            candidates = session.exec(
                select(DailyTask.task_date).where(
                    DailyTask.status == TaskStatus.PUBLISHED.value,
                    col(DailyTask.published_at).is_not(None),
                    col(DailyTask.published_at) < cutoff,
                ),
            ).all()

        for task_date in candidates:
            with Session(self.engine) as session:
                archived_at = utc_now()
                result = session.exec(
                    sa_update(DailyTask)
                    .where(
                        col(DailyTask.task_date) == task_date,
                        col(DailyTask.status) == TaskStatus.PUBLISHED.value,
                    )
                    .values(
                        status=TaskStatus.ARCHIVED.value,
                        archived_at=to_db_datetime(archived_at),
                        updated_at=to_db_datetime(archived_at),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue
                purged_items = 0
                if purge_items:
                    purged_items = session.exec(
                        sa_delete(TaskItem).where(col(TaskItem.task_date) == task_date),
                    ).rowcount
                    session.exec(sa_delete(TaskBatch).where(col(TaskBatch.task_date) == task_date))
                self._add_event(
                    session=session,
                    task_date=task_date,
                    event_type="archived",
                    status_from=TaskStatus.PUBLISHED,
                    status_to=TaskStatus.ARCHIVED,
                    details={"purged_items": purged_items},
                )
                session.commit()
                archived.append(task_date)
        return archived

    def get_status(self, task_date: str) -> TaskStatusView | None:
        with Session(self.engine) as session:
            row = session.get(DailyTask, task_date)
            if row is None:
                return None
            batches = session.exec(
                select(func.count())
                .select_from(TaskBatch)
                .where(TaskBatch.task_date == task_date),
            ).one()
            return TaskStatusView(
                task=_to_task_view(row),
                item_counts=self._count_items(session=session, task_date=task_date),
                batches=batches,
            )

    # Items

    def count_items_by_status(self, task_date: str) -> dict[ItemStatus, int]:
        with Session(self.engine) as session:
            return self._count_items(session=session, task_date=task_date)

    def list_items(self, task_date: str, *, status: ItemStatus | None = None) -> list[ItemView]:
        """List items of a task ordered by rank."""

        with Session(self.engine) as session:
            statement = (
                select(TaskItem)
                .where(TaskItem.task_date == task_date)
                .order_by(col(TaskItem.rank).asc(), col(TaskItem.id).asc())
            )
            if status is not None:
                statement = statement.where(TaskItem.status == status.value)
            return [item_view_from_row(row) for row in session.exec(statement).all()]

    def list_completed_items(self, task_date: str) -> list[ItemView]:
        return self.list_items(task_date, status=ItemStatus.COMPLETED)

    def list_claimed_items(self, claim_token: str) -> list[ItemView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskItem)
                .where(
                    TaskItem.claim_token == claim_token,
                    TaskItem.status == ItemStatus.IN_FLIGHT.value,
                )
                .order_by(col(TaskItem.rank).asc()),
            ).all()
            return [item_view_from_row(row) for row in rows]

    def write_item_outcomes(
        self,
        *,
        task_date: str,
        outcomes: list[ItemOutcome],
    ) -> OutcomeWriteSummary:
        """Persist pipeline results for items still held under their claim token.

        An outcome whose claim was reclaimed in the meantime (status or token
        changed) is dropped and counted as stale.
        """

        summary = OutcomeWriteSummary()
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            for outcome in outcomes:
                guard = (
                    col(TaskItem.id) == outcome.item_id,
                    col(TaskItem.status) == ItemStatus.IN_FLIGHT.value,
                    col(TaskItem.claim_token) == outcome.claim_token,
                )
                if outcome.success:
                    values: dict[str, object] = {
                        "status": ItemStatus.COMPLETED.value,
                        "translated_title": outcome.translated_title,
                        "content_summary": outcome.content_summary,
                        "comment_summary": outcome.comment_summary,
                        "failure_reason": None,
                        "error_message": None,
                    }
                else:
                    reason = outcome.failure_reason or FailureReason.UNKNOWN
                    values = {
                        "status": ItemStatus.FAILED.value,
                        "retry_count": col(TaskItem.retry_count) + 1,
                        "failure_reason": reason.value,
                        "error_message": outcome.error_message,
                    }
                values.update(claim_token=None, updated_at=now)
                result = session.exec(sa_update(TaskItem).where(*guard).values(**values))
                if result.rowcount != 1:
                    summary.stale += 1
                elif outcome.success:
                    summary.completed += 1
                else:
                    summary.failed += 1

            self._recompute_counters(session=session, task_date=task_date)
            session.commit()

        if summary.stale:
            logger.warning(
                "Dropped %d stale item outcomes for %s (claim reclaimed meanwhile)",
                summary.stale,
                task_date,
            )
        return summary

    def revert_claimed_items(self, *, task_date: str, claim_token: str, reason: str) -> int:
        """Hand a claim back: in-flight items under ``claim_token`` become pending."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TaskItem)
                .where(
                    col(TaskItem.task_date) == task_date,
                    col(TaskItem.claim_token) == claim_token,
                    col(TaskItem.status) == ItemStatus.IN_FLIGHT.value,
                )
                .values(
                    status=ItemStatus.PENDING.value,
                    claim_token=None,
                    claimed_at=None,
                    updated_at=to_db_datetime(utc_now()),
                ),
            )
            reverted = result.rowcount
            self._add_event(
                session=session,
                task_date=task_date,
                event_type="claim_reverted",
                status_from=None,
                status_to=None,
                details={"items": reverted, "reason": reason},
            )
            session.commit()
            return reverted

    def reclaim_stuck_items(
        self,
        *,
        task_date: str,
        stale_after: timedelta,
        now: datetime | None = None,
    ) -> int:
        """Return in-flight items untouched for ``stale_after`` to pending."""

        if stale_after.total_seconds() <= 0:
            raise ValueError("stale_after must be > 0")

        current = now or utc_now()
        cutoff = to_db_datetime(current - stale_after)
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(TaskItem)
                .where(
                    col(TaskItem.task_date) == task_date,
                    col(TaskItem.status) == ItemStatus.IN_FLIGHT.value,
                    col(TaskItem.updated_at) < cutoff,
                )
                .values(
                    status=ItemStatus.PENDING.value,
                    claim_token=None,
                    claimed_at=None,
                    updated_at=to_db_datetime(current),
                ),
            )
            reclaimed = result.rowcount
            if reclaimed == 0:
                session.rollback()
                return 0
            self._add_event(
                session=session,
                task_date=task_date,
                event_type="stuck_items_reclaimed",
                status_from=None,
                status_to=None,
                details={
                    "items": reclaimed,
                    "stale_after_seconds": int(stale_after.total_seconds()),
                },
            )
            session.commit()
        logger.warning("Reclaimed %d stuck in-flight items for %s", reclaimed, task_date)
        return reclaimed

    def retry_failed_items(self, *, task_date: str, max_retry: int) -> int:
        """Reset failed items with ``retry_count < max_retry`` to pending.

        ``retry_count`` is left as is. A task already in ``aggregating`` is
        re-opened to ``processing`` in the same transaction so the reset items
        get claimed again. Tasks outside listed/processing/aggregating are not
        touched.
        """

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            task = session.get(DailyTask, task_date)
            if task is None or TaskStatus(task.status) not in RETRYABLE_TASK_STATUSES:
                return 0
            previous = TaskStatus(task.status)

            result = session.exec(
                sa_update(TaskItem)
                .where(
                    col(TaskItem.task_date) == task_date,
                    col(TaskItem.status) == ItemStatus.FAILED.value,
                    col(TaskItem.retry_count) < max_retry,
                )
                .values(
                    status=ItemStatus.PENDING.value,
                    claim_token=None,
                    claimed_at=None,
                    failure_reason=None,
                    updated_at=now,
                ),
            )
            reset = result.rowcount
            if reset == 0:
                session.rollback()
                return 0

            status_to = previous
            if previous == TaskStatus.AGGREGATING:
                if not self._transition(
                    session=session,
                    task_date=task_date,
                    from_statuses={TaskStatus.AGGREGATING},
                    to_status=TaskStatus.PROCESSING,
                    event_type="reopened",
                    details={"reason": "manual_retry"},
                ):
                    session.rollback()
                    return 0
                status_to = TaskStatus.PROCESSING

            self._add_event(
                session=session,
                task_date=task_date,
                event_type="manual_retry",
                status_from=previous,
                status_to=status_to,
                details={"items": reset, "max_retry": max_retry},
            )
            session.commit()
            return reset

    def recompute_counters(self, task_date: str) -> TaskView:
        with Session(self.engine) as session:
            self._recompute_counters(session=session, task_date=task_date)
            session.commit()
            row = session.get(DailyTask, task_date)
            if row is None:
                raise RuntimeError(f"Task not found: {task_date}")
            session.refresh(row)
            return _to_task_view(row)

    # Batch records

    def record_batch(self, payload: BatchRecordWrite) -> BatchRecordView:
        """Append a batch record numbered after the last one for the date.

        ``(task_date, batch_index)`` is unique; a writer that loses the race for
        an index re-reads the maximum and tries the next one.
        """

        for attempt in range(1, BATCH_INDEX_ATTEMPTS + 1):
            with Session(self.engine) as session:
                last_index = session.exec(
                    select(func.max(TaskBatch.batch_index)).where(
                        TaskBatch.task_date == payload.task_date,
                    ),
                ).one()
                batch_index = (last_index or 0) + 1
                row = TaskBatch(
                    task_date=payload.task_date,
                    batch_index=batch_index,
                    item_count=payload.item_count,
                    external_call_count=payload.external_call_count,
                    duration_ms=payload.duration_ms,
                    status=payload.status.value,
                    error_message=payload.error_message,
                    created_at=utc_now(),
                )
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    if attempt == BATCH_INDEX_ATTEMPTS:
                        raise
                    logger.info(
                        "Batch index %d for %s was taken concurrently, retrying",
                        batch_index,
                        payload.task_date,
                    )
                    continue
                session.refresh(row)
                return _to_batch_view(row)
        raise RuntimeError(f"Could not record batch for {payload.task_date}")

    def list_batches(self, task_date: str) -> list[BatchRecordView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskBatch)
                .where(TaskBatch.task_date == task_date)
                .order_by(col(TaskBatch.batch_index).asc(), col(TaskBatch.id).asc()),
            ).all()
            return [_to_batch_view(row) for row in rows]

    def batch_statistics(self, task_date: str) -> BatchStatistics:
        stats = BatchStatistics(task_date=task_date)
        for batch in self.list_batches(task_date):
            stats.batches += 1
            stats.items += batch.item_count
            stats.external_calls += batch.external_call_count
            stats.total_duration_ms += batch.duration_ms
            stats.by_status[batch.status.value] = stats.by_status.get(batch.status.value, 0) + 1
        return stats

    # Events

    def record_event(
        self,
        *,
        task_date: str,
        event_type: str,
        details: dict[str, object] | None = None,
    ) -> None:
        with Session(self.engine) as session:
            self._add_event(
                session=session,
                task_date=task_date,
                event_type=event_type,
                status_from=None,
                status_to=None,
                details=details or {},
            )
            session.commit()

    def list_events(
        self,
        task_date: str,
        *,
        event_type: str | None = None,
    ) -> list[TaskEventView]:
        with Session(self.engine) as session:
            statement = (
                select(TaskEvent)
                .where(TaskEvent.task_date == task_date)
                .order_by(col(TaskEvent.created_at).asc(), col(TaskEvent.id).asc())
            )
            if event_type is not None:
                statement = statement.where(TaskEvent.event_type == event_type)
            rows = session.exec(statement).all()
            return [_to_event_view(row) for row in rows]

    def successful_publishers(self, task_date: str, *, digest: str | None = None) -> set[str]:
        """Names of publishers that already delivered this date's digest.

        With ``digest`` only deliveries of exactly that rendered content count.
        """

        names: set[str] = set()
        for event in self.list_events(task_date, event_type=PUBLISHER_SUCCEEDED_EVENT):
            name = event.details.get("publisher")
            if not isinstance(name, str):
                continue
            if digest is not None and event.details.get("digest") != digest:
                continue
            names.add(name)
        return names

    def _transition(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_date: str,
        from_statuses: frozenset[TaskStatus] | set[TaskStatus],
        to_status: TaskStatus,
        event_type: str,
        details: dict[str, object],
    ) -> bool:
        row = session.get(DailyTask, task_date)
        if row is None:
            raise RuntimeError(f"Task not found: {task_date}")
        previous = TaskStatus(row.status)
        if previous not in from_statuses:
            return False
        values: dict[str, object] = {
            "status": to_status.value,
            "updated_at": to_db_datetime(utc_now()),
        }
        if previous != to_status:
            values["last_error"] = None
        result = session.exec(
            sa_update(DailyTask)
            .where(
                col(DailyTask.task_date) == task_date,
                col(DailyTask.status) == previous.value,
            )
            .values(**values),
        )
        if result.rowcount != 1:
            return False
        self._add_event(
            session=session,
            task_date=task_date,
            event_type=event_type,
            status_from=previous,
            status_to=to_status,
            details=details,
        )
        return True

    def _count_items(self, *, session: Session, task_date: str) -> dict[ItemStatus, int]:
        rows = session.exec(
            select(TaskItem.status, func.count())
            .where(TaskItem.task_date == task_date)
            .group_by(TaskItem.status),
        ).all()
        counts = dict.fromkeys(ItemStatus, 0)
        for status, count in rows:
            counts[ItemStatus(status)] = count
        return counts

    def _recompute_counters(self, *, session: Session, task_date: str) -> None:
        """Derive task counters from item rows.

        ``failed_count`` also covers items reset for retry that have not
        finished again yet (``retry_count > 0`` and not terminal), so the sum
        of both counters never drops while a retry is pending.
        """

        completed = session.exec(
            select(func.count())
            .select_from(TaskItem)
            .where(
                TaskItem.task_date == task_date,
                TaskItem.status == ItemStatus.COMPLETED.value,
            ),
        ).one()
        failed = session.exec(
            select(func.count())
            .select_from(TaskItem)
            .where(
                TaskItem.task_date == task_date,
                col(TaskItem.status) != ItemStatus.COMPLETED.value,
                or_(
                    col(TaskItem.status) == ItemStatus.FAILED.value,
                    col(TaskItem.retry_count) > 0,
                ),
            ),
        ).one()
        session.exec(
            sa_update(DailyTask)
            .where(col(DailyTask.task_date) == task_date)
            .values(
                completed_count=completed,
                failed_count=failed,
                updated_at=to_db_datetime(utc_now()),
            ),
        )

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_date: str,
        event_type: str,
        status_from: TaskStatus | None,
        status_to: TaskStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            TaskEvent(
                task_date=task_date,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=_dump_json(details),
                created_at=utc_now(),
            ),
        )


def _dump_json(payload: dict[str, object]) -> str | None:
    if not payload:
        return None
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)


def _load_json(raw: str | None) -> dict[str, object]:
    if not raw:
        return {}
    parsed = json.loads(raw)
    return parsed if isinstance(parsed, dict) else {}


def _to_task_view(row: DailyTask) -> TaskView:
    return TaskView(
        task_date=row.task_date,
        status=TaskStatus(row.status),
        total_items=row.total_items,
        completed_count=row.completed_count,
        failed_count=row.failed_count,
        last_error=row.last_error,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        published_at=optional_utc(row.published_at),
        archived_at=optional_utc(row.archived_at),
    )


def item_view_from_row(row: TaskItem) -> ItemView:
    return ItemView(
        item_id=row.id or 0,
        task_date=row.task_date,
        rank=row.rank,
        source_id=row.source_id,
        title=row.title,
        url=row.url,
        score=row.score,
        author=row.author,
        source_published_at=optional_utc(row.source_published_at),
        metadata=_load_json(row.metadata_json),
        status=ItemStatus(row.status),
        retry_count=row.retry_count,
        claim_token=row.claim_token,
        claimed_at=optional_utc(row.claimed_at),
        translated_title=row.translated_title,
        content_summary=row.content_summary,
        comment_summary=row.comment_summary,
        failure_reason=FailureReason(row.failure_reason) if row.failure_reason else None,
        error_message=row.error_message,
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_batch_view(row: TaskBatch) -> BatchRecordView:
    return BatchRecordView(
        batch_id=row.id or 0,
        task_date=row.task_date,
        batch_index=row.batch_index,
        item_count=row.item_count,
        external_call_count=row.external_call_count,
        duration_ms=row.duration_ms,
        status=BatchStatus(row.status),
        error_message=row.error_message,
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_event_view(row: TaskEvent) -> TaskEventView:
    return TaskEventView(
        event_id=row.id or 0,
        task_date=row.task_date,
        event_type=row.event_type,
        status_from=TaskStatus(row.status_from) if row.status_from is not None else None,
        status_to=TaskStatus(row.status_to) if row.status_to is not None else None,
        created_at=to_utc_aware_datetime(row.created_at),
        details=_load_json(row.details_json),
    )
