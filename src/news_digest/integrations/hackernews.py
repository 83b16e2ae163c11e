"""Hacker News stories and comments via the Algolia search API."""

from __future__ import annotations

import html
import logging
import re
import time
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any

import httpx

from news_digest.config import SourceSettings
from news_digest.engine.collaborators import (
    CollaboratorError,
    Comment,
    RateLimitedError,
    StoryCandidate,
    TransientCollaboratorError,
)
from news_digest.engine.retry import RetryPolicy, call_with_retry, parse_retry_after

logger = logging.getLogger(__name__)

HN_ITEM_URL = "https://news.ycombinator.com/item?id={item_id}"
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500

_TAG_RE = re.compile(r"<[^>]+>")
_PARAGRAPH_RE = re.compile(r"<p>", re.IGNORECASE)


class _AlgoliaClient:
    def __init__(
        self,
        *,
        settings: SourceSettings,
        client: httpx.Client | None,
        sleep: Callable[[float], None],
    ) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            base_url=settings.api_base_url,
            timeout=httpx.Timeout(settings.request_timeout_seconds),
        )
        self._retry_policy = RetryPolicy(
            max_attempts=max(1, settings.max_retries),
            base_delay_seconds=1.0,
            max_delay_seconds=10.0,
        )
        self._sleep = sleep

    def get_json(self, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return call_with_retry(
            lambda: self._get_once(path, params=params),
            policy=self._retry_policy,
            operation=f"algolia GET {path}",
            sleep=self._sleep,
        )

    def close(self) -> None:
        self._client.close()

    def _get_once(self, path: str, *, params: dict[str, Any] | None) -> dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
        except httpx.TransportError as error:
            raise TransientCollaboratorError(
                message=f"Algolia transport error: {error}",
                code="transport",
            ) from error
        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise RateLimitedError(
                message="Algolia rate limited",
                code="429",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code >= HTTP_SERVER_ERROR:
            raise TransientCollaboratorError(
                message=f"Algolia HTTP {response.status_code}",
                code=str(response.status_code),
            )
        if not response.is_success:
            raise CollaboratorError(
                message=f"Algolia HTTP {response.status_code} for {path}",
                code=str(response.status_code),
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise CollaboratorError(message=f"Unexpected Algolia payload for {path}")
        return payload


class HackerNewsStorySource:
    """Top stories created during one UTC day, ranked by points."""

    def __init__(
        self,
        *,
        settings: SourceSettings,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._api = _AlgoliaClient(settings=settings, client=client, sleep=sleep)

    def fetch_candidates(self, task_date: str) -> list[StoryCandidate]:
        day = date.fromisoformat(task_date)
        start = datetime(day.year, day.month, day.day, tzinfo=UTC)
        end = start + timedelta(days=1)
        hits: list[dict[str, Any]] = []
        for page in range(self.settings.max_pages):
            payload = self._api.get_json(
                "/search_by_date",
                params={
                    "tags": "story",
                    "numericFilters": (
                        f"created_at_i>={int(start.timestamp())},"
                        f"created_at_i<{int(end.timestamp())}"
                    ),
                    "hitsPerPage": self.settings.hits_per_page,
                    "page": page,
                },
            )
            page_hits = payload.get("hits") or []
            hits.extend(hit for hit in page_hits if isinstance(hit, dict))
            if page + 1 >= int(payload.get("nbPages") or 0) or not page_hits:
                break

        stories = [hit for hit in hits if hit.get("objectID") and hit.get("title")]
        stories.sort(key=lambda hit: int(hit.get("points") or 0), reverse=True)
        top = stories[: self.settings.story_limit]
        logger.info(
            "Hacker News %s: %d stories fetched, keeping top %d",
            task_date,
            len(stories),
            len(top),
        )
        return [_to_candidate(hit, rank) for rank, hit in enumerate(top, start=1)]

    def close(self) -> None:
        self._api.close()


class HackerNewsCommentFetcher:
    """Top-level comments of a story, in thread order."""

    def __init__(
        self,
        *,
        settings: SourceSettings,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api = _AlgoliaClient(settings=settings, client=client, sleep=sleep)

    def fetch_top(self, source_id: str, limit: int) -> list[Comment]:
        payload = self._api.get_json(f"/items/{source_id}")
        comments: list[Comment] = []
        for child in payload.get("children") or []:
            if not isinstance(child, dict) or child.get("type", "comment") != "comment":
                continue
            text = clean_comment_html(child.get("text") or "")
            if not text:
                continue
            comments.append(
                Comment(comment_id=str(child.get("id")), author=child.get("author"), text=text),
            )
            if len(comments) >= limit:
                break
        return comments

    def close(self) -> None:
        self._api.close()


def clean_comment_html(value: str) -> str:
    text = _PARAGRAPH_RE.sub("\n\n", value)
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def _to_candidate(hit: dict[str, Any], rank: int) -> StoryCandidate:
    object_id = str(hit["objectID"])
    created_at_i = hit.get("created_at_i")
    story_text = hit.get("story_text")
    return StoryCandidate(
        source_id=object_id,
        rank=rank,
        title=str(hit["title"]).strip(),
        url=hit.get("url") or None,
        score=int(hit.get("points") or 0),
        author=hit.get("author"),
        published_at=(
            datetime.fromtimestamp(int(created_at_i), tz=UTC) if created_at_i else None
        ),
        metadata={
            "discussion_url": HN_ITEM_URL.format(item_id=object_id),
            "comments": int(hit.get("num_comments") or 0),
            **({"story_text": clean_comment_html(story_text)} if story_text else {}),
        },
    )
