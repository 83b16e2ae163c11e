"""Shared test fixtures: in-memory collaborators and an engine harness."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from news_digest.config import EngineSettings, PipelineSettings, Settings
from news_digest.engine.collaborators import (
    Comment,
    ContentLabel,
    FetchedContent,
    PublishContent,
    StoryCandidate,
)
from news_digest.engine.control import ControlSurface
from news_digest.engine.orchestrator import EngineContext, TaskOrchestrator
from news_digest.engine.pipeline import ItemPipelineRunner, PipelineCollaborators
from news_digest.engine.publishing import PublishCoordinator, PublisherBinding
from news_digest.engine.recovery import RecoveryService
from news_digest.engine.repository import TaskRepository
from news_digest.publishers.markdown import MarkdownDigestRenderer
from news_digest.storage.common import utc_now

TASK_DATE = "2026-10-17"


def make_candidates(count: int) -> list[StoryCandidate]:
    return [
        StoryCandidate(
            source_id=f"story-{index}",
            rank=index,
            title=f"Story number {index}",
            url=f"https://example.com/articles/{index}",
            score=1_000 - index,
            author=f"author{index}",
        )
        for index in range(1, count + 1)
    ]


@dataclass
class FakeStorySource:
    candidates: list[StoryCandidate]
    error: Exception | None = None
    calls: int = 0

    def fetch_candidates(self, task_date: str) -> list[StoryCandidate]:
        del task_date
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.candidates)


@dataclass
class FakeContentFetcher:
    errors: dict[str, Exception] = field(default_factory=dict)
    urls: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def fetch(self, url: str) -> FetchedContent:
        with self._lock:
            self.urls.append(url)
        if url in self.errors:
            raise self.errors[url]
        return FetchedContent(
            full_text=f"Full article text for {url}.",
            short_description=f"Short description of {url}",
        )


@dataclass
class FakeCommentFetcher:
    per_story: int = 3

    def fetch_top(self, source_id: str, limit: int) -> list[Comment]:
        return [
            Comment(comment_id=f"{source_id}-c{index}", author="hn", text=f"Comment {index}")
            for index in range(min(self.per_story, limit))
        ]


class FakeSummarizer:
    def summarize(self, text: str, max_length: int) -> str | None:
        return f"summary: {text}"[:max_length]


@dataclass
class FakeTranslator:
    """Prefixes text; titles listed in ``failing`` raise the configured error."""

    failing: dict[str, Exception] = field(default_factory=dict)

    def translate(self, text: str) -> str:
        if text in self.failing:
            raise self.failing[text]
        return f"[zh] {text}"


@dataclass
class FakeClassifier:
    sensitive_titles: set[str] = field(default_factory=set)
    error: Exception | None = None

    def classify(self, titles: list[str]) -> list[ContentLabel]:
        if self.error is not None:
            raise self.error
        return [ContentLabel(sensitive=title in self.sensitive_titles) for title in titles]


@dataclass
class FakePublisher:
    name: str
    fail: bool = False
    published: list[PublishContent] = field(default_factory=list)

    def publish(self, content: PublishContent) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.published.append(content)


@dataclass
class FakeClock:
    now: datetime = field(default_factory=utc_now)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class DigestHarness:
    repository: TaskRepository
    context: EngineContext
    story_source: FakeStorySource
    content_fetcher: FakeContentFetcher
    translator: FakeTranslator
    publishers: dict[str, FakePublisher]
    clock: FakeClock

    @property
    def orchestrator(self) -> TaskOrchestrator:
        return TaskOrchestrator(self.context)

    @property
    def recovery(self) -> RecoveryService:
        return RecoveryService(self.context)

    @property
    def control(self) -> ControlSurface:
        return ControlSurface(self.context)

    def tick(self, task_date: str = TASK_DATE):
        return self.orchestrator.run_tick(task_date)


def build_settings(db_path: Path, **engine_overrides: Any) -> Settings:
    return Settings(
        db_path=db_path,
        engine=EngineSettings(**engine_overrides),
        pipeline=PipelineSettings(retry_base_delay_seconds=0.0, retry_max_delay_seconds=0.0),
    )


@pytest.fixture()
def make_harness(tmp_path: Path) -> Iterator[Callable[..., DigestHarness]]:
    """Factory building an engine over a fresh SQLite file and in-memory fakes."""

    repositories: list[TaskRepository] = []

    def _make(  # noqa: PLR0913
        *,
        stories: int = 30,
        publishers: tuple[tuple[str, bool], ...] = (("local_file", True),),
        classifier: FakeClassifier | None = None,
        db_name: str = "digest.db",
        **engine_overrides: Any,
    ) -> DigestHarness:
        settings = build_settings(tmp_path / db_name, **engine_overrides)
        repository = TaskRepository(settings.db_path)
        repository.init_schema()
        repositories.append(repository)

        story_source = FakeStorySource(candidates=make_candidates(stories))
        content_fetcher = FakeContentFetcher()
        translator = FakeTranslator()
        fakes = {name: FakePublisher(name=name) for name, _ in publishers}
        clock = FakeClock()
        context = EngineContext(
            repository=repository,
            story_source=story_source,
            pipeline=ItemPipelineRunner(
                collaborators=PipelineCollaborators(
                    content_fetcher=content_fetcher,
                    comment_fetcher=FakeCommentFetcher(),
                    summarizer=FakeSummarizer(),
                    translator=translator,
                ),
                settings=settings.pipeline,
                concurrency=settings.engine.item_concurrency,
                call_budget=settings.engine.call_budget,
                sleep=lambda _: None,
            ),
            publisher=PublishCoordinator(
                repository=repository,
                renderer=MarkdownDigestRenderer(),
                publishers=[
                    PublisherBinding(publisher=fakes[name], hard_fail=hard)
                    for name, hard in publishers
                ],
            ),
            settings=settings,
            classifier=classifier,
            clock=clock,
        )
        return DigestHarness(
            repository=repository,
            context=context,
            story_source=story_source,
            content_fetcher=content_fetcher,
            translator=translator,
            publishers=fakes,
            clock=clock,
        )

    yield _make

    for repository in repositories:
        repository.close()
