"""Digest aggregation and delivery to hard-fail and soft-fail publishers."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field

from news_digest.engine.collaborators import DigestEntry, DigestRenderer, Publisher
from news_digest.engine.models import ItemView
from news_digest.engine.repository import PUBLISHER_SUCCEEDED_EVENT, TaskRepository

logger = logging.getLogger(__name__)

PUBLISHER_FAILED_EVENT = "publisher_failed"


class NothingToPublishError(RuntimeError):
    """No completed items exist for the date."""


@dataclass(slots=True)
class PublisherBinding:
    """A publisher plus its criticality: hard failures keep the task open."""

    publisher: Publisher
    hard_fail: bool = True

    @property
    def name(self) -> str:
        return self.publisher.name


@dataclass(slots=True)
class PublisherResult:
    name: str
    hard_fail: bool
    success: bool
    skipped: bool = False
    error: str | None = None


@dataclass(slots=True)
class PublishReport:
    task_date: str
    items: int
    digest: str
    results: list[PublisherResult] = field(default_factory=list)

    @property
    def hard_failures(self) -> list[PublisherResult]:
        return [result for result in self.results if result.hard_fail and not result.success]

    @property
    def ok(self) -> bool:
        return not self.hard_failures

    def error_summary(self) -> str:
        return "; ".join(
            f"{result.name}: {result.error or 'failed'}" for result in self.hard_failures
        )


class PublishCoordinator:
    """Renders completed items and hands the digest to every publisher.

    Each successful delivery is recorded as a task event keyed by publisher
    name and digest fingerprint. A later attempt with the same content skips
    publishers that already delivered it, so a soft target is not spammed
    while a hard target is being retried.
    """

    def __init__(
        self,
        *,
        repository: TaskRepository,
        renderer: DigestRenderer,
        publishers: list[PublisherBinding],
    ) -> None:
        self.repository = repository
        self.renderer = renderer
        self.publishers = publishers

    def publish(self, task_date: str) -> PublishReport:
        items = self.repository.list_completed_items(task_date)
        if not items:
            raise NothingToPublishError(f"No completed items to publish for {task_date}")

        content = self.renderer.render([_to_entry(item) for item in items], task_date)
        digest = hashlib.sha256(content.markdown.encode("utf-8")).hexdigest()
        delivered = self.repository.successful_publishers(task_date, digest=digest)
        report = PublishReport(task_date=task_date, items=len(items), digest=digest)

        for binding in self.publishers:
            if binding.name in delivered:
                logger.info("Publisher %s already delivered %s, skipping", binding.name, task_date)
                report.results.append(
                    PublisherResult(
                        name=binding.name,
                        hard_fail=binding.hard_fail,
                        success=True,
                        skipped=True,
                    ),
                )
                continue
            try:
                binding.publisher.publish(content)
            except Exception as error:  # noqa: BLE001
                message = f"{type(error).__name__}: {error}"
                logger.log(
                    logging.ERROR if binding.hard_fail else logging.WARNING,
                    "%s publisher %s failed for %s: %s",
                    "Hard" if binding.hard_fail else "Soft",
                    binding.name,
                    task_date,
                    message,
                )
                self.repository.record_event(
                    task_date=task_date,
                    event_type=PUBLISHER_FAILED_EVENT,
                    details={
                        "publisher": binding.name,
                        "hard_fail": binding.hard_fail,
                        "error": message,
                    },
                )
                report.results.append(
                    PublisherResult(
                        name=binding.name,
                        hard_fail=binding.hard_fail,
                        success=False,
                        error=message,
                    ),
                )
                continue

            self.repository.record_event(
                task_date=task_date,
                event_type=PUBLISHER_SUCCEEDED_EVENT,
                details={
                    "publisher": binding.name,
                    "hard_fail": binding.hard_fail,
                    "digest": digest,
                    "items": len(items),
                },
            )
            report.results.append(
                PublisherResult(name=binding.name, hard_fail=binding.hard_fail, success=True),
            )
        return report


def _to_entry(item: ItemView) -> DigestEntry:
    return DigestEntry(
        rank=item.rank,
        source_id=item.source_id,
        title=item.title,
        translated_title=item.translated_title or item.title,
        url=item.url,
        score=item.score,
        content_summary=item.content_summary,
        comment_summary=item.comment_summary,
    )
