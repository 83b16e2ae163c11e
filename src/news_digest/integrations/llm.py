"""LLM-backed summarizer, translator and content classifier.

Two backends are bundled: an OpenAI-compatible ``chat/completions`` client
(DeepSeek by default) and a deterministic ``echo`` client that returns its
input unchanged, for offline runs and tests.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

import httpx

from news_digest.config import LlmSettings
from news_digest.engine.collaborators import (
    CollaboratorError,
    ContentLabel,
    EmptyResultError,
    RateLimitedError,
    TransientCollaboratorError,
)
from news_digest.engine.retry import parse_retry_after

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500

SUMMARY_SYSTEM_PROMPT = (
    "You summarize technology articles and discussions for a daily news digest. "
    "Answer in {language}. Keep the summary under {max_length} characters. "
    "Return only the summary text."
)
TRANSLATE_SYSTEM_PROMPT = (
    "Translate the user's text into {language}. Keep product names, code and URLs "
    "as they are. Return only the translation."
)
CLASSIFY_SYSTEM_PROMPT = (
    "You screen news headlines for a public digest. For each numbered headline decide "
    "whether it is sensitive (politics, violence, adult content). Reply with a JSON "
    'array of objects {"index": <number>, "sensitive": <bool>, "category": <string|null>}.'
)


class LlmClient(Protocol):
    def complete(self, *, system: str, prompt: str) -> str:
        """Return the model's text reply."""
        raise NotImplementedError


class EchoLlmClient:
    """Returns the prompt unchanged."""

    def complete(self, *, system: str, prompt: str) -> str:
        del system
        return prompt

    def close(self) -> None:
        return None


class OpenAICompatibleClient:
    """Minimal ``POST /chat/completions`` client."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        temperature: float = 0.3,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
        )
        self._headers = {"Authorization": f"Bearer {api_key}"}

    def complete(self, *, system: str, prompt: str) -> str:
        body: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }
        try:
            response = self._client.post("/chat/completions", json=body, headers=self._headers)
        except httpx.TransportError as error:
            raise TransientCollaboratorError(
                message=f"LLM transport error: {error}",
                code="transport",
            ) from error

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise RateLimitedError(
                message="LLM provider rate limited",
                code="429",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code >= HTTP_SERVER_ERROR:
            raise TransientCollaboratorError(
                message=f"LLM provider HTTP {response.status_code}",
                code=str(response.status_code),
            )
        if not response.is_success:
            raise CollaboratorError(
                message=f"LLM provider HTTP {response.status_code}: {response.text[:200]}",
                code=str(response.status_code),
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as error:
            raise CollaboratorError(
                message=f"Malformed LLM response: {error}",
                code="malformed_response",
            ) from error
        if not isinstance(content, str) or not content.strip():
            raise EmptyResultError(message="LLM returned an empty reply", code="empty")
        return content.strip()

    def close(self) -> None:
        self._client.close()


class LlmSummarizer:
    def __init__(self, *, client: LlmClient, language: str) -> None:
        self.client = client
        self.language = language

    def summarize(self, text: str, max_length: int) -> str | None:
        if not text.strip():
            return None
        reply = self.client.complete(
            system=SUMMARY_SYSTEM_PROMPT.format(language=self.language, max_length=max_length),
            prompt=text,
        )
        summary = reply.strip()[:max_length].rstrip()
        return summary or None


class LlmTranslator:
    def __init__(self, *, client: LlmClient, language: str) -> None:
        self.client = client
        self.language = language

    def translate(self, text: str) -> str:
        return self.client.complete(
            system=TRANSLATE_SYSTEM_PROMPT.format(language=self.language),
            prompt=text,
        ).strip()


class LlmContentClassifier:
    """Flags sensitive headlines in one request per listing."""

    def __init__(self, *, client: LlmClient) -> None:
        self.client = client

    def classify(self, titles: list[str]) -> list[ContentLabel]:
        if not titles:
            return []
        prompt = "\n".join(f"{index}. {title}" for index, title in enumerate(titles))
        reply = self.client.complete(system=CLASSIFY_SYSTEM_PROMPT, prompt=prompt)
        return parse_labels(reply, expected=len(titles))


def parse_labels(reply: str, *, expected: int) -> list[ContentLabel]:
    """Parse a classifier reply; indexes the model skipped count as not sensitive."""

    text = reply.strip()
    if text.startswith("```"):
        text = text.strip("`").removeprefix("json").strip()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as error:
        raise CollaboratorError(
            message=f"Classifier reply is not JSON: {error}",
            code="malformed_response",
        ) from error
    if not isinstance(payload, list):
        raise CollaboratorError(
            message="Classifier reply is not a list",
            code="malformed_response",
        )

    labels = [ContentLabel(sensitive=False) for _ in range(expected)]
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        index = entry.get("index")
        if isinstance(index, int) and 0 <= index < expected:
            labels[index] = ContentLabel(
                sensitive=bool(entry.get("sensitive")),
                category=entry.get("category"),
            )
    return labels


def build_llm_client(settings: LlmSettings) -> EchoLlmClient | OpenAICompatibleClient:
    if settings.provider == "echo":
        return EchoLlmClient()
    if settings.provider == "openai_compatible":
        if not settings.api_key:
            raise ValueError("NEWS_DIGEST_LLM_API_KEY is required for openai_compatible.")
        return OpenAICompatibleClient(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            temperature=settings.temperature,
            timeout_seconds=settings.request_timeout_seconds,
        )
    raise ValueError(f"Unsupported NEWS_DIGEST_LLM_PROVIDER: {settings.provider}")
