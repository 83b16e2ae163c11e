"""Post the digest to a Telegram channel via the Bot API."""

from __future__ import annotations

import httpx

from news_digest.engine.collaborators import PublishContent
from news_digest.publishers.markdown import strip_front_matter

TELEGRAM_MESSAGE_LIMIT = 4096


class TelegramPublisher:
    name = "telegram"

    def __init__(  # noqa: PLR0913
        self,
        *,
        bot_token: str,
        channel_id: str,
        api_url: str = "https://api.telegram.org",
        timeout_seconds: float = 30.0,
        chunk_size: int = 4000,
        client: httpx.Client | None = None,
    ) -> None:
        self.channel_id = channel_id
        self.chunk_size = min(chunk_size, TELEGRAM_MESSAGE_LIMIT)
        self._send_path = f"/bot{bot_token}/sendMessage"
        self._client = client or httpx.Client(
            base_url=api_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
        )

    def publish(self, content: PublishContent) -> None:
        text = f"{content.title}\n\n{strip_front_matter(content.markdown)}"
        for chunk in split_message(text, self.chunk_size):
            response = self._client.post(
                self._send_path,
                json={
                    "chat_id": self.channel_id,
                    "text": chunk,
                    "disable_web_page_preview": True,
                },
            )
            response.raise_for_status()
            payload = response.json()
            if not payload.get("ok", False):
                raise RuntimeError(
                    f"Telegram rejected message: {payload.get('description', 'unknown error')}",
                )

    def close(self) -> None:
        self._client.close()


def split_message(text: str, limit: int) -> list[str]:
    """Split on line boundaries; a single oversized line is cut hard."""

    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current.strip():
        chunks.append(current)
    return [chunk.rstrip("\n") for chunk in chunks if chunk.strip()]
