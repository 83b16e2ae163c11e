"""Commit the digest to a GitHub Pages repository through the contents API."""

from __future__ import annotations

import base64
import logging

import httpx

from news_digest.engine.collaborators import PublishContent

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404


class GithubPublisher:
    """Create or update ``path_template`` on ``branch``.

    The path is derived from the task date only, so republishing the same date
    updates one file instead of creating versions.
    """

    name = "github"

    def __init__(  # noqa: PLR0913
        self,
        *,
        token: str,
        repo: str,
        branch: str = "main",
        path_template: str = "_posts/{date}-daily.md",
        api_url: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.repo = repo
        self.branch = branch
        self.path_template = path_template
        self._client = client or httpx.Client(
            base_url=api_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
        )
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
        }

    def publish(self, content: PublishContent) -> None:
        path = self.path_template.format(date=content.task_date)
        url = f"/repos/{self.repo}/contents/{path}"
        encoded = base64.b64encode(content.markdown.encode("utf-8")).decode("ascii")

        existing = self._client.get(url, params={"ref": self.branch}, headers=self._headers)
        sha: str | None = None
        if existing.status_code != HTTP_NOT_FOUND:
            existing.raise_for_status()
            payload = existing.json()
            sha = payload.get("sha")
            current = (payload.get("content") or "").replace("\n", "")
            if current == encoded:
                logger.info("GitHub %s:%s already up to date", self.repo, path)
                return

        body = {
            "message": f"Publish daily digest {content.task_date}",
            "content": encoded,
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha
        response = self._client.put(url, json=body, headers=self._headers)
        response.raise_for_status()
        logger.info("GitHub %s:%s %s", self.repo, path, "updated" if sha else "created")

    def close(self) -> None:
        self._client.close()
