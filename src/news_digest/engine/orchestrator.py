"""Tick entry point: advance one daily task by at most one phase."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from news_digest.config import Settings
from news_digest.engine.claimer import BatchClaimer
from news_digest.engine.collaborators import (
    ContentClassifier,
    StoryCandidate,
    StorySource,
)
from news_digest.engine.models import (
    BatchRecordWrite,
    BatchStatus,
    ItemCreate,
    ItemStatus,
    TaskStatus,
    TaskView,
    TickAction,
    TickResult,
)
from news_digest.engine.pipeline import ItemPipelineRunner
from news_digest.engine.publishing import NothingToPublishError, PublishCoordinator
from news_digest.engine.repository import TaskRepository
from news_digest.storage.common import utc_now

logger = logging.getLogger(__name__)

PROCESSING_STATUSES = frozenset({TaskStatus.LISTED, TaskStatus.PROCESSING})
FINISHED_STATUSES = frozenset({TaskStatus.PUBLISHED, TaskStatus.ARCHIVED})


@dataclass(slots=True)
class EngineContext:
    """Everything a tick needs, passed in explicitly."""

    repository: TaskRepository
    story_source: StorySource
    pipeline: ItemPipelineRunner
    publisher: PublishCoordinator
    settings: Settings
    classifier: ContentClassifier | None = None
    clock: Callable[[], datetime] = field(default=utc_now)


def default_task_date(now: datetime | None = None) -> str:
    """The most recently elapsed processing period: yesterday in UTC."""

    current = (now or utc_now()).astimezone(UTC)
    return (current.date() - timedelta(days=1)).isoformat()


def normalize_task_date(value: str) -> str:
    try:
        return date.fromisoformat(value.strip()).isoformat()
    except ValueError as error:
        raise ValueError(f"Task date must be YYYY-MM-DD, got {value!r}.") from error


class TaskOrchestrator:
    """Runs one tick: load or create the task, reclaim, dispatch by phase."""

    def __init__(self, context: EngineContext) -> None:
        self.context = context
        self.claimer = BatchClaimer(context.repository)

    @property
    def repository(self) -> TaskRepository:
        return self.context.repository

    def run_tick(self, task_date: str | None = None) -> TickResult:
        date_key = (
            normalize_task_date(task_date)
            if task_date
            else default_task_date(self.context.clock())
        )
        task = self.repository.get_or_create_task(date_key)

        reclaimed = 0
        if task.status not in FINISHED_STATUSES:
            reclaimed = self.repository.reclaim_stuck_items(
                task_date=date_key,
                stale_after=timedelta(
                    seconds=self.context.settings.engine.stuck_item_timeout_seconds,
                ),
                now=self.context.clock(),
            )

        if task.status == TaskStatus.INIT:
            result = self._run_listing(task)
        elif task.status in PROCESSING_STATUSES:
            result = self._run_processing(task)
        elif task.status == TaskStatus.AGGREGATING:
            result = self._run_aggregating(task)
        else:
            result = self._run_archive_sweep(task)

        result.reclaimed = reclaimed
        counts = self.repository.count_items_by_status(date_key)
        result.pending = counts[ItemStatus.PENDING]
        result.in_flight = counts[ItemStatus.IN_FLIGHT]
        logger.info(
            "Tick %s: %s -> %s action=%s claimed=%d completed=%d failed=%d error=%s",
            date_key,
            result.status_before.value,
            result.status_after.value,
            result.action.value,
            result.claimed,
            result.completed,
            result.failed,
            result.error,
        )
        return result

    def _run_listing(self, task: TaskView) -> TickResult:
        try:
            candidates = self.context.story_source.fetch_candidates(task.task_date)
        except Exception as error:  # noqa: BLE001
            logger.exception("Story source failed for %s", task.task_date)
            return self._phase_failed(task, f"Story source failed: {error}")

        candidates = self._filter_sensitive(candidates)
        if not candidates:
            return self._phase_failed(task, "Story source returned no candidates")

        items = [
            ItemCreate(
                rank=rank,
                source_id=candidate.source_id,
                title=candidate.title,
                url=candidate.url,
                score=candidate.score,
                author=candidate.author,
                source_published_at=candidate.published_at,
                metadata=candidate.metadata,
            )
            for rank, candidate in enumerate(candidates, start=1)
        ]
        inserted = self.repository.list_task_items(task_date=task.task_date, items=items)
        logger.info("Listed %d of %d candidates for %s", inserted, len(items), task.task_date)
        return self._result(task, action=TickAction.LISTED)

    def _filter_sensitive(self, candidates: list[StoryCandidate]) -> list[StoryCandidate]:
        classifier = self.context.classifier
        if classifier is None or not candidates:
            return candidates
        try:
            labels = classifier.classify([candidate.title for candidate in candidates])
        except Exception as error:  # noqa: BLE001
            logger.warning("Content classifier failed, keeping all candidates: %s", error)
            return candidates
        if len(labels) != len(candidates):
            logger.warning(
                "Content classifier returned %d labels for %d titles, keeping all candidates",
                len(labels),
                len(candidates),
            )
            return candidates
        kept = [
            candidate
            for candidate, label in zip(candidates, labels, strict=True)
            if not label.sensitive
        ]
        if len(kept) != len(candidates):
            logger.info("Filtered %d sensitive candidates", len(candidates) - len(kept))
        return kept

    def _run_processing(self, task: TaskView) -> TickResult:
        date_key = task.task_date
        claimed = self.claimer.claim(date_key, self.context.settings.engine.batch_size)
        if not claimed:
            if self._drained(date_key):
                self.repository.recompute_counters(date_key)
                self.repository.transition_task(
                    task_date=date_key,
                    from_statuses=PROCESSING_STATUSES,
                    to_status=TaskStatus.AGGREGATING,
                    event_type="aggregating",
                )
                return self._result(task, action=TickAction.AGGREGATED)
            return self._result(task, action=TickAction.WAITING)

        claim_token = claimed[0].claim_token or ""
        started = time.monotonic()
        try:
            outcomes = self.context.pipeline.process(claimed)
        except Exception as error:  # noqa: BLE001
            # Per-item failures come back as outcomes; anything raised means the
            # batch never ran, so the claim is handed back.
            logger.exception("Item pipeline unavailable for %s", date_key)
            self.repository.revert_claimed_items(
                task_date=date_key,
                claim_token=claim_token,
                reason=str(error),
            )
            self.repository.record_batch(
                BatchRecordWrite(
                    task_date=date_key,
                    item_count=len(claimed),
                    external_call_count=0,
                    duration_ms=_elapsed_ms(started),
                    status=BatchStatus.FAILURE,
                    error_message=str(error),
                ),
            )
            return self._phase_failed(task, f"Item pipeline unavailable: {error}")

        written = self.repository.write_item_outcomes(task_date=date_key, outcomes=outcomes)
        if written.completed and not written.failed and not written.stale:
            batch_status = BatchStatus.SUCCESS
        elif written.completed:
            batch_status = BatchStatus.PARTIAL
        else:
            batch_status = BatchStatus.FAILURE
        self.repository.record_batch(
            BatchRecordWrite(
                task_date=date_key,
                item_count=len(claimed),
                external_call_count=sum(outcome.external_calls for outcome in outcomes),
                duration_ms=_elapsed_ms(started),
                status=batch_status,
                error_message=(
                    f"{written.failed} failed, {written.stale} stale"
                    if batch_status != BatchStatus.SUCCESS
                    else None
                ),
            ),
        )

        self.repository.transition_task(
            task_date=date_key,
            from_statuses={TaskStatus.LISTED},
            to_status=TaskStatus.PROCESSING,
            event_type="processing",
        )
        if self._drained(date_key):
            self.repository.transition_task(
                task_date=date_key,
                from_statuses=PROCESSING_STATUSES,
                to_status=TaskStatus.AGGREGATING,
                event_type="aggregating",
            )

        result = self._result(task, action=TickAction.PROCESSED, claimed=len(claimed))
        result.completed = written.completed
        result.failed = written.failed
        return result

    def _run_aggregating(self, task: TaskView) -> TickResult:
        try:
            report = self.context.publisher.publish(task.task_date)
        except NothingToPublishError as error:
            return self._phase_failed(task, str(error))
        except Exception as error:  # noqa: BLE001
            logger.exception("Aggregation failed for %s", task.task_date)
            return self._phase_failed(task, f"Aggregation failed: {error}")

        if not report.ok:
            return self._phase_failed(task, f"Hard publisher failed: {report.error_summary()}")

        self.repository.mark_published(
            task_date=task.task_date,
            from_statuses={TaskStatus.AGGREGATING},
            details={"items": report.items, "digest": report.digest},
        )
        result = self._result(task, action=TickAction.PUBLISHED)
        result.published_items = report.items
        return result

    def _run_archive_sweep(self, task: TaskView) -> TickResult:
        engine = self.context.settings.engine
        archived = self.repository.archive_published_tasks(
            retention=timedelta(days=engine.retention_days),
            purge_items=engine.purge_on_archive,
            now=self.context.clock(),
        )
        result = self._result(task, action=TickAction.NOOP)
        result.archived_tasks = len(archived)
        return result

    def _drained(self, task_date: str) -> bool:
        counts = self.repository.count_items_by_status(task_date)
        return counts[ItemStatus.PENDING] == 0 and counts[ItemStatus.IN_FLIGHT] == 0

    def _phase_failed(self, task: TaskView, error: str) -> TickResult:
        self.repository.record_task_error(task_date=task.task_date, phase=task.status, error=error)
        result = self._result(task, action=TickAction.FAILED)
        result.error = error
        return result

    def _result(
        self,
        task: TaskView,
        *,
        action: TickAction,
        claimed: int = 0,
    ) -> TickResult:
        after = self.repository.get_task(task.task_date)
        return TickResult(
            task_date=task.task_date,
            status_before=task.status,
            status_after=after.status if after is not None else task.status,
            action=action,
            claimed=claimed,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
