"""Per-item enrichment: fetch, summarize and translate claimed items."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from news_digest.config import PipelineSettings
from news_digest.engine.collaborators import (
    CallBudgetExhaustedError,
    Comment,
    CommentFetcher,
    ContentFetcher,
    FetchedContent,
    PipelineUnavailableError,
    Summarizer,
    Translator,
)
from news_digest.engine.models import FailureReason, ItemOutcome, ItemView
from news_digest.engine.retry import RetryPolicy, call_with_retry, classify_failure

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class PipelineCollaborators:
    content_fetcher: ContentFetcher
    comment_fetcher: CommentFetcher
    summarizer: Summarizer
    translator: Translator


@dataclass(slots=True)
class CallMeter:
    """Thread-safe outbound call counter shared by every item of a batch.

    With a ``limit``, ``acquire`` refuses the call that would go past it, so a
    batch never issues more than ``limit`` calls however many retries it needs.
    """

    limit: int | None = None
    count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def acquire(self) -> None:
        with self._lock:
            if self.limit is not None and self.count >= self.limit:
                raise CallBudgetExhaustedError(
                    message=f"Call budget of {self.limit} calls per tick is spent",
                    code="call_budget_exhausted",
                )
            self.count += 1


@dataclass(slots=True)
class _Attempt(Generic[T]):
    value: T | None = None
    error: Exception | None = None


@dataclass(slots=True)
class _ItemContext:
    item: ItemView
    budget: CallMeter
    calls: int = 0
    degraded: list[FailureReason] = field(default_factory=list)

    def record_call(self) -> None:
        self.budget.acquire()
        self.calls += 1


class ItemPipelineRunner:
    """Runs the enrichment chain for a batch with bounded concurrency.

    ``process`` returns exactly one outcome per input item, in input order.
    Individual item failures become failed outcomes; only
    ``PipelineUnavailableError`` escapes, meaning the whole batch must be
    handed back.

    Chain per item: content fetch, comment fetch, content summary (falling
    back to a translated short description), comment summary when there are
    enough comments, title translation. The item completes only with both a
    translated title and a description.

    All items of one ``process`` call share a meter capped at ``call_budget``;
    attempts past it are refused and fail like a rate limit.
    """

    def __init__(
        self,
        *,
        collaborators: PipelineCollaborators,
        settings: PipelineSettings,
        concurrency: int,
        call_budget: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.collaborators = collaborators
        self.settings = settings
        self.concurrency = max(1, concurrency)
        self.call_budget = call_budget
        self.retry_policy = RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
        )
        self._sleep = sleep

    def process(self, items: list[ItemView]) -> list[ItemOutcome]:
        if not items:
            return []
        budget = CallMeter(limit=self.call_budget)
        with ThreadPoolExecutor(
            max_workers=min(self.concurrency, len(items)),
            thread_name_prefix="digest-item",
        ) as executor:
            try:
                futures = [executor.submit(self._process_item, item, budget) for item in items]
            except RuntimeError as error:
                # Worker threads could not start or the interpreter is shutting down.
                executor.shutdown(wait=True, cancel_futures=True)
                raise PipelineUnavailableError(f"Item executor unavailable: {error}") from error
            return [future.result() for future in futures]

    def _process_item(self, item: ItemView, budget: CallMeter) -> ItemOutcome:
        context = _ItemContext(item=item, budget=budget)
        try:
            return self._run_chain(context)
        except PipelineUnavailableError:
            raise
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected failure processing item %s", item.source_id)
            return self._failed(
                context,
                reason=classify_failure(error),
                message=f"{type(error).__name__}: {error}",
            )

    def _run_chain(self, context: _ItemContext) -> ItemOutcome:
        item = context.item
        content = self._fetch_content(context)
        comments = self._fetch_comments(context)
        description = self._describe(context, content)
        comment_summary = self._summarize_comments(context, comments)

        title = self._attempt(
            context,
            f"translate title {item.source_id}",
            lambda: self.collaborators.translator.translate(item.title),
        )
        if title.error is not None:
            return self._failed(
                context,
                reason=classify_failure(title.error),
                message=f"title translation failed: {title.error}",
            )
        translated_title = (title.value or "").strip()
        if not translated_title:
            return self._failed(
                context,
                reason=FailureReason.EMPTY_RESULT,
                message="title translation returned nothing",
            )

        if not description:
            reason = context.degraded[0] if context.degraded else FailureReason.EMPTY_RESULT
            return self._failed(context, reason=reason, message="missing description")

        return ItemOutcome(
            item_id=item.item_id,
            claim_token=item.claim_token or "",
            success=True,
            translated_title=translated_title,
            content_summary=description,
            comment_summary=comment_summary,
            external_calls=context.calls,
        )

    def _fetch_content(self, context: _ItemContext) -> FetchedContent:
        item = context.item
        if not item.url:
            story_text = item.metadata.get("story_text")
            return FetchedContent(full_text=story_text if isinstance(story_text, str) else None)

        url = item.url
        fetched = self._attempt(
            context,
            f"fetch content {item.source_id}",
            lambda: self.collaborators.content_fetcher.fetch(url),
        )
        if fetched.error is not None or fetched.value is None:
            return FetchedContent()
        return fetched.value

    def _fetch_comments(self, context: _ItemContext) -> list[Comment]:
        item = context.item
        fetched = self._attempt(
            context,
            f"fetch comments {item.source_id}",
            lambda: self.collaborators.comment_fetcher.fetch_top(
                item.source_id,
                self.settings.comment_limit,
            ),
            degrade=False,
        )
        return fetched.value or []

    def _describe(self, context: _ItemContext, content: FetchedContent) -> str | None:
        item = context.item
        full_text = (content.full_text or "").strip()
        if full_text:
            text = full_text[: self.settings.content_max_chars]
            summary = self._attempt(
                context,
                f"summarize content {item.source_id}",
                lambda: self.collaborators.summarizer.summarize(
                    text,
                    self.settings.summary_max_length,
                ),
            )
            if summary.value and summary.value.strip():
                return summary.value.strip()
            if summary.error is None:
                context.degraded.append(FailureReason.EMPTY_RESULT)

        description = (content.short_description or "").strip()
        if not description:
            return None
        translated = self._attempt(
            context,
            f"translate description {item.source_id}",
            lambda: self.collaborators.translator.translate(description),
        )
        return (translated.value or "").strip() or None

    def _summarize_comments(self, context: _ItemContext, comments: list[Comment]) -> str | None:
        texts = [comment.text for comment in comments if comment.text.strip()]
        if len(texts) < self.settings.min_comments:
            return None
        joined = "\n\n".join(texts)
        summary = self._attempt(
            context,
            f"summarize comments {context.item.source_id}",
            lambda: self.collaborators.summarizer.summarize(
                joined,
                self.settings.summary_max_length,
            ),
            degrade=False,
        )
        return (summary.value or "").strip() or None

    def _attempt(
        self,
        context: _ItemContext,
        operation: str,
        func: Callable[[], T],
        *,
        degrade: bool = True,
    ) -> _Attempt[T]:
        try:
            return _Attempt(
                value=call_with_retry(
                    func,
                    policy=self.retry_policy,
                    operation=operation,
                    sleep=self._sleep,
                    on_attempt=context.record_call,
                ),
            )
        except PipelineUnavailableError:
            raise
        except Exception as error:  # noqa: BLE001
            logger.warning("%s failed: %s", operation, error)
            if degrade:
                context.degraded.append(classify_failure(error))
            return _Attempt(error=error)

    def _failed(
        self,
        context: _ItemContext,
        *,
        reason: FailureReason,
        message: str,
    ) -> ItemOutcome:
        logger.info("Item %s failed: %s (%s)", context.item.source_id, message, reason.value)
        return ItemOutcome(
            item_id=context.item.item_id,
            claim_token=context.item.claim_token or "",
            success=False,
            failure_reason=reason,
            error_message=message,
            external_calls=context.calls,
        )
