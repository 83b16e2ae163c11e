"""Operator recovery actions: reclaim, retry, force publish, archive."""

from __future__ import annotations

import logging
from datetime import timedelta

from news_digest.engine.models import TaskStatus
from news_digest.engine.orchestrator import FINISHED_STATUSES, EngineContext
from news_digest.engine.repository import TaskRepository

logger = logging.getLogger(__name__)

FORCE_PUBLISHABLE_STATUSES = frozenset(
    {TaskStatus.LISTED, TaskStatus.PROCESSING, TaskStatus.AGGREGATING},
)


class RecoveryService:
    def __init__(self, context: EngineContext) -> None:
        self.context = context

    @property
    def repository(self) -> TaskRepository:
        return self.context.repository

    def reclaim_stuck(self, task_date: str) -> int:
        """Reset abandoned in-flight items of a task to pending."""

        return self.repository.reclaim_stuck_items(
            task_date=task_date,
            stale_after=timedelta(
                seconds=self.context.settings.engine.stuck_item_timeout_seconds,
            ),
            now=self.context.clock(),
        )

    def retry_failed(self, task_date: str) -> int:
        """Reset retryable failed items to pending; returns how many were reset."""

        max_retry = self.context.settings.engine.max_retry
        reset = self.repository.retry_failed_items(task_date=task_date, max_retry=max_retry)
        logger.info(
            "Manual retry for %s reset %d items (max_retry=%d)",
            task_date,
            reset,
            max_retry,
        )
        return reset

    def force_publish(self, task_date: str) -> int:
        """Publish whatever is completed now, ignoring pending and failed items.

        Raises ``NothingToPublishError`` when no item is completed and
        ``RuntimeError`` when the task is missing, already published, or a
        hard publisher failed.
        """

        task = self.repository.get_task(task_date)
        if task is None:
            raise RuntimeError(f"Task not found: {task_date}")
        if task.status in FINISHED_STATUSES:
            raise RuntimeError(f"Task {task_date} is already {task.status.value}.")
        if task.status not in FORCE_PUBLISHABLE_STATUSES:
            raise RuntimeError(f"Task {task_date} has no items yet (status={task.status.value}).")

        report = self.context.publisher.publish(task_date)
        if not report.ok:
            error = f"Hard publisher failed: {report.error_summary()}"
            self.repository.record_task_error(task_date=task_date, phase=task.status, error=error)
            raise RuntimeError(error)

        published = self.repository.mark_published(
            task_date=task_date,
            from_statuses=FORCE_PUBLISHABLE_STATUSES,
            details={"items": report.items, "digest": report.digest, "forced": True},
        )
        if not published:
            raise RuntimeError(
                f"Task {task_date} changed state concurrently while force publishing; "
                "check status and retry.",
            )
        logger.info("Force published %s with %d items", task_date, report.items)
        return report.items

    def archive_sweep(self) -> list[str]:
        engine = self.context.settings.engine
        archived = self.repository.archive_published_tasks(
            retention=timedelta(days=engine.retention_days),
            purge_items=engine.purge_on_archive,
            now=self.context.clock(),
        )
        if archived:
            logger.info("Archived %d tasks: %s", len(archived), ", ".join(archived))
        return archived
