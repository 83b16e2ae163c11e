"""Assemble an engine context from settings with the bundled collaborators."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import ExitStack, contextmanager

from news_digest.config import Settings
from news_digest.engine.orchestrator import EngineContext
from news_digest.engine.pipeline import ItemPipelineRunner, PipelineCollaborators
from news_digest.engine.publishing import PublishCoordinator
from news_digest.engine.repository import TaskRepository
from news_digest.http.fetcher import HttpFetcher
from news_digest.integrations.content import HttpContentFetcher
from news_digest.integrations.hackernews import HackerNewsCommentFetcher, HackerNewsStorySource
from news_digest.integrations.llm import (
    LlmContentClassifier,
    LlmSummarizer,
    LlmTranslator,
    build_llm_client,
)
from news_digest.publishers.factory import build_publishers
from news_digest.publishers.markdown import MarkdownDigestRenderer


@contextmanager
def engine_context(settings: Settings, repository: TaskRepository) -> Iterator[EngineContext]:
    """Yield a context whose HTTP clients are closed on exit."""

    with ExitStack() as stack:
        story_source = HackerNewsStorySource(settings=settings.source)
        stack.callback(story_source.close)
        comment_fetcher = HackerNewsCommentFetcher(settings=settings.source)
        stack.callback(comment_fetcher.close)
        content_fetcher = HttpContentFetcher(
            fetcher=HttpFetcher(timeout_seconds=settings.source.request_timeout_seconds),
            max_chars=settings.pipeline.content_max_chars,
        )
        stack.callback(content_fetcher.close)

        llm = build_llm_client(settings.llm)
        stack.callback(llm.close)
        language = settings.llm.target_language

        publishers = build_publishers(settings.publishers)
        for binding in publishers:
            close = getattr(binding.publisher, "close", None)
            if callable(close):
                stack.callback(close)

        yield EngineContext(
            repository=repository,
            story_source=story_source,
            pipeline=ItemPipelineRunner(
                collaborators=PipelineCollaborators(
                    content_fetcher=content_fetcher,
                    comment_fetcher=comment_fetcher,
                    summarizer=LlmSummarizer(client=llm, language=language),
                    translator=LlmTranslator(client=llm, language=language),
                ),
                settings=settings.pipeline,
                concurrency=settings.engine.item_concurrency,
                call_budget=settings.engine.call_budget,
            ),
            publisher=PublishCoordinator(
                repository=repository,
                renderer=MarkdownDigestRenderer(),
                publishers=publishers,
            ),
            settings=settings,
            classifier=(
                LlmContentClassifier(client=llm) if settings.source.classifier_enabled else None
            ),
        )
