"""Article content fetcher: HTTP fetch plus trafilatura extraction."""

from __future__ import annotations

from news_digest.engine.collaborators import (
    EmptyResultError,
    FetchedContent,
    RateLimitedError,
    TransientCollaboratorError,
)
from news_digest.http.fetcher import HttpFetcher
from news_digest.http.html_extractor import extract_article

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


class HttpContentFetcher:
    def __init__(self, *, fetcher: HttpFetcher, max_chars: int = 12_000) -> None:
        self.fetcher = fetcher
        self.max_chars = max_chars

    def fetch(self, url: str) -> FetchedContent:
        result = self.fetcher.fetch(url)
        if not result.is_success:
            if result.status_code == HTTP_TOO_MANY_REQUESTS:
                raise RateLimitedError(
                    message=f"Rate limited fetching {url}",
                    code="429",
                    retry_after=result.retry_after,
                )
            if result.status_code == 0 or result.status_code >= HTTP_SERVER_ERROR:
                raise TransientCollaboratorError(
                    message=f"Fetching {url} failed: {result.error}",
                    code=str(result.status_code or "transport"),
                )
            raise EmptyResultError(
                message=f"Fetching {url} failed: {result.error}",
                code=str(result.status_code),
            )
        if not result.is_html:
            raise EmptyResultError(
                message=f"Unsupported content type for {url}: {result.content_type}",
                code="content_type",
            )

        extracted = extract_article(result.content, url=url, max_chars=self.max_chars)
        return FetchedContent(
            full_text=extracted.text or None,
            short_description=extracted.description,
        )

    def close(self) -> None:
        self.fetcher.close()
