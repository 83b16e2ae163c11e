"""Narrow contracts for the collaborators the engine drives.

The engine never talks to a network, a model vendor or a publishing target
directly. Everything outside the store is reached through these protocols, and
failures are reported with the error classes below so that retry and item
failure reasons stay independent of any particular client library.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


@dataclass(slots=True)
class CollaboratorError(Exception):
    """Base collaborator failure."""

    message: str
    code: str = "collaborator_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class TransientCollaboratorError(CollaboratorError):
    """Retryable failure: transport error, timeout or 5xx."""


@dataclass(slots=True)
class RateLimitedError(TransientCollaboratorError):
    """Provider asked us to slow down; ``retry_after`` is in seconds."""

    retry_after: float | None = None


@dataclass(slots=True)
class EmptyResultError(CollaboratorError):
    """Call succeeded but produced nothing usable."""


@dataclass(slots=True)
class CallBudgetExhaustedError(CollaboratorError):
    """The tick has spent its outbound call budget; the call was not made."""


@dataclass(slots=True)
class PipelineUnavailableError(CollaboratorError):
    """The pipeline itself cannot run; claimed items must be handed back."""


@dataclass(slots=True)
class StoryCandidate:
    """One entry of the daily list, in source order."""

    source_id: str
    rank: int
    title: str
    url: str | None = None
    score: int | None = None
    author: str | None = None
    published_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class FetchedContent:
    full_text: str | None = None
    short_description: str | None = None


@dataclass(slots=True)
class Comment:
    comment_id: str
    author: str | None
    text: str


@dataclass(slots=True)
class ContentLabel:
    """Classifier verdict for one title; aligned by position with the input."""

    sensitive: bool
    category: str | None = None


@dataclass(slots=True)
class DigestEntry:
    """One completed item as it appears in the published digest."""

    rank: int
    source_id: str
    title: str
    translated_title: str
    url: str | None
    score: int | None
    content_summary: str | None
    comment_summary: str | None


@dataclass(slots=True)
class PublishContent:
    """Rendered digest handed to every publisher."""

    task_date: str
    title: str
    markdown: str
    entries: list[DigestEntry]


class StorySource(Protocol):
    def fetch_candidates(self, task_date: str) -> list[StoryCandidate]:
        """Return the ordered candidate list for a processing date."""
        raise NotImplementedError


class ContentFetcher(Protocol):
    def fetch(self, url: str) -> FetchedContent:
        """Fetch article body and/or short description."""
        raise NotImplementedError


class CommentFetcher(Protocol):
    def fetch_top(self, source_id: str, limit: int) -> list[Comment]:
        """Return up to ``limit`` top-level comments."""
        raise NotImplementedError


class Summarizer(Protocol):
    def summarize(self, text: str, max_length: int) -> str | None:
        raise NotImplementedError


class Translator(Protocol):
    def translate(self, text: str) -> str:
        raise NotImplementedError


class ContentClassifier(Protocol):
    def classify(self, titles: list[str]) -> list[ContentLabel]:
        """Label titles; callers treat any failure as "nothing sensitive"."""
        raise NotImplementedError


class DigestRenderer(Protocol):
    def render(self, entries: list[DigestEntry], task_date: str) -> PublishContent:
        raise NotImplementedError


class Publisher(Protocol):
    """Delivery target. Must raise on failure; the task date is the idempotent key."""

    name: str

    def publish(self, content: PublishContent) -> None:
        raise NotImplementedError
