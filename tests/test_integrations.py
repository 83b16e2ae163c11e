"""Collaborator adapters exercised against mocked HTTP transports."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable

import allure
import httpx
import pytest

from news_digest.config import LlmSettings, SourceSettings
from news_digest.engine.collaborators import (
    CollaboratorError,
    EmptyResultError,
    PublishContent,
    RateLimitedError,
    TransientCollaboratorError,
)
from news_digest.http.fetcher import HttpFetcher
from news_digest.integrations.content import HttpContentFetcher
from news_digest.integrations.hackernews import (
    HackerNewsCommentFetcher,
    HackerNewsStorySource,
    clean_comment_html,
)
from news_digest.integrations.llm import (
    EchoLlmClient,
    LlmContentClassifier,
    LlmSummarizer,
    LlmTranslator,
    OpenAICompatibleClient,
    build_llm_client,
    parse_labels,
)
from news_digest.publishers.github import GithubPublisher
from news_digest.publishers.telegram import TelegramPublisher

pytestmark = [
    allure.epic("Daily Task Engine"),
    allure.feature("Collaborators"),
]

Handler = Callable[[httpx.Request], httpx.Response]

ARTICLE_HTML = """
<html>
  <head>
    <title>Cooperative scheduling in practice</title>
    <meta name="description" content="How a small team moved to cooperative scheduling.">
  </head>
  <body>
    <article>
      <h1>Cooperative scheduling in practice</h1>
      <p>Our job runner used to rely on a single long running process that owned every
      piece of work for the day. When it crashed, the whole day had to start again from
      scratch, and nobody could tell which items had already been handled.</p>
      <p>We replaced it with cooperative scheduling: every invocation claims a small batch
      of items, processes it within a fixed budget and records the outcome before it
      exits. Progress survives restarts because the state lives in the database.</p>
      <p>The change made the system boring in the best possible way. Operators can see
      how far the day has progressed and can retry failed items with one command.</p>
    </article>
  </body>
</html>
"""


def _client(handler: Handler, base_url: str) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), base_url=base_url)


def _content(markdown: str = "---\ntitle: x\n---\n\n## 1. Story\n") -> PublishContent:
    return PublishContent(
        task_date="2026-10-17",
        title="HackerNews Daily - 2026-10-17",
        markdown=markdown,
        entries=[],
    )


def _hit(object_id: str, points: int, **extra: object) -> dict[str, object]:
    return {
        "objectID": object_id,
        "title": f"Story {object_id}",
        "url": f"https://example.com/{object_id}",
        "points": points,
        "author": "dang",
        "num_comments": 12,
        "created_at_i": 1_792_195_200,
        **extra,
    }


class TestHackerNewsStorySource:
    def test_pages_through_results_and_ranks_by_points(self) -> None:
        requests: list[httpx.Request] = []
        pages = {
            "0": [_hit("1", 50), _hit("2", 300), {"objectID": "3", "title": ""}],
            "1": [_hit("4", 120, url=None, story_text="<p>Ask HN &amp; friends")],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            page = request.url.params["page"]
            return httpx.Response(200, json={"hits": pages[page], "nbPages": 2})

        source = HackerNewsStorySource(
            settings=SourceSettings(story_limit=2),
            client=_client(handler, "https://hn.test/api/v1"),
            sleep=lambda _: None,
        )

        candidates = source.fetch_candidates("2026-10-17")
        source.close()

        assert [(c.source_id, c.rank, c.score) for c in candidates] == [
            ("2", 1, 300),
            ("4", 2, 120),
        ]
        assert candidates[1].url is None
        assert candidates[1].metadata["story_text"] == "Ask HN & friends"
        assert candidates[0].metadata["discussion_url"] == (
            "https://news.ycombinator.com/item?id=2"
        )
        assert len(requests) == 2
        params = requests[0].url.params
        assert params["tags"] == "story"
        assert params["numericFilters"] == "created_at_i>=1792195200,created_at_i<1792281600"

    def test_retries_rate_limited_requests(self) -> None:
        delays: list[float] = []
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "1"}),
                httpx.Response(200, json={"hits": [_hit("9", 10)], "nbPages": 1}),
            ],
        )
        source = HackerNewsStorySource(
            settings=SourceSettings(),
            client=_client(lambda _: next(responses), "https://hn.test/api/v1"),
            sleep=delays.append,
        )

        candidates = source.fetch_candidates("2026-10-17")

        assert [c.source_id for c in candidates] == ["9"]
        assert delays == [1.0]

    def test_client_errors_are_not_retried(self) -> None:
        calls: list[int] = []

        def handler(_: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(400, json={"message": "bad filter"})

        source = HackerNewsStorySource(
            settings=SourceSettings(),
            client=_client(handler, "https://hn.test/api/v1"),
            sleep=lambda _: None,
        )

        with pytest.raises(CollaboratorError, match="HTTP 400"):
            source.fetch_candidates("2026-10-17")
        assert calls == [1]


class TestHackerNewsComments:
    def test_fetch_top_returns_cleaned_top_level_comments(self) -> None:
        payload = {
            "id": 42,
            "children": [
                {"id": 1, "type": "comment", "author": "a", "text": "First<p>second &amp; third"},
                {"id": 2, "type": "pollopt", "text": "not a comment"},
                {"id": 3, "type": "comment", "author": "b", "text": None},
                {"id": 4, "type": "comment", "author": "c", "text": "<i>Another</i> view"},
                {"id": 5, "type": "comment", "author": "d", "text": "Overflow"},
            ],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/items/42")
            return httpx.Response(200, json=payload)

        fetcher = HackerNewsCommentFetcher(
            settings=SourceSettings(),
            client=_client(handler, "https://hn.test/api/v1"),
            sleep=lambda _: None,
        )

        comments = fetcher.fetch_top("42", 2)

        assert [(c.comment_id, c.author, c.text) for c in comments] == [
            ("1", "a", "First\n\nsecond & third"),
            ("4", "c", "Another view"),
        ]

    def test_clean_comment_html(self) -> None:
        assert clean_comment_html("<p>Hi &gt; there</p>") == "Hi > there"
        assert clean_comment_html("") == ""


class TestHttpContentFetcher:
    @staticmethod
    def _fetcher(handler: Handler) -> HttpContentFetcher:
        return HttpContentFetcher(fetcher=HttpFetcher(transport=httpx.MockTransport(handler)))

    def test_extracts_article_text_and_description(self) -> None:
        fetcher = self._fetcher(
            lambda _: httpx.Response(
                200,
                text=ARTICLE_HTML,
                headers={"content-type": "text/html; charset=utf-8"},
            ),
        )

        content = fetcher.fetch("https://example.com/scheduling")
        fetcher.close()

        assert content.full_text is not None
        assert "cooperative scheduling" in content.full_text
        assert content.short_description == "How a small team moved to cooperative scheduling."

    @pytest.mark.parametrize(
        ("response", "error_type"),
        [
            (httpx.Response(429, headers={"Retry-After": "7"}), RateLimitedError),
            (httpx.Response(503), TransientCollaboratorError),
            (httpx.Response(404), EmptyResultError),
            (
                httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"}),
                EmptyResultError,
            ),
        ],
    )
    def test_maps_failures_to_collaborator_errors(
        self,
        response: httpx.Response,
        error_type: type[Exception],
    ) -> None:
        fetcher = self._fetcher(lambda _: response)

        with pytest.raises(error_type) as caught:
            fetcher.fetch("https://example.com/x")

        if isinstance(caught.value, RateLimitedError):
            assert caught.value.retry_after == 7.0

    def test_transport_failure_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientCollaboratorError):
            self._fetcher(handler).fetch("https://example.com/x")


class TestOpenAICompatibleClient:
    @staticmethod
    def _llm(handler: Handler) -> OpenAICompatibleClient:
        return OpenAICompatibleClient(
            base_url="https://llm.test/v1",
            api_key="sk-test",
            model="deepseek-chat",
            client=_client(handler, "https://llm.test/v1"),
        )

    def test_complete_sends_chat_request(self) -> None:
        seen: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer sk-test"
            assert request.url.path == "/v1/chat/completions"
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={"choices": [{"message": {"role": "assistant", "content": " 你好 "}}]},
            )

        reply = self._llm(handler).complete(system="Translate.", prompt="Hello")

        assert reply == "你好"
        assert seen[0]["model"] == "deepseek-chat"
        assert seen[0]["messages"] == [
            {"role": "system", "content": "Translate."},
            {"role": "user", "content": "Hello"},
        ]

    @pytest.mark.parametrize(
        ("response", "error_type", "code"),
        [
            (httpx.Response(429, headers={"Retry-After": "3"}), RateLimitedError, "429"),
            (httpx.Response(502), TransientCollaboratorError, "502"),
            (httpx.Response(401, text="bad key"), CollaboratorError, "401"),
            (httpx.Response(200, json={"choices": []}), CollaboratorError, "malformed_response"),
            (
                httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]}),
                EmptyResultError,
                "empty",
            ),
        ],
    )
    def test_complete_maps_failures(
        self,
        response: httpx.Response,
        error_type: type[CollaboratorError],
        code: str,
    ) -> None:
        with pytest.raises(error_type) as caught:
            self._llm(lambda _: response).complete(system="s", prompt="p")

        assert caught.value.code == code


class TestLlmCollaborators:
    def test_summarizer_truncates_to_max_length(self) -> None:
        summarizer = LlmSummarizer(client=EchoLlmClient(), language="Chinese")

        assert summarizer.summarize("word " * 100, 12) == "word word wo"
        assert summarizer.summarize("   ", 12) is None

    def test_translator_returns_stripped_reply(self) -> None:
        translator = LlmTranslator(client=EchoLlmClient(), language="Chinese")

        assert translator.translate("  Show HN: a tiny database ") == "Show HN: a tiny database"

    def test_classifier_parses_fenced_json(self) -> None:
        class _Client:
            def __init__(self) -> None:
                self.prompts: list[str] = []

            def complete(self, *, system: str, prompt: str) -> str:
                self.prompts.append(prompt)
                return '```json\n[{"index": 1, "sensitive": true, "category": "politics"}]\n```'

        client = _Client()
        labels = LlmContentClassifier(client=client).classify(["Rust 2.0", "Election night"])

        assert client.prompts == ["0. Rust 2.0\n1. Election night"]
        assert [label.sensitive for label in labels] == [False, True]
        assert labels[1].category == "politics"
        assert LlmContentClassifier(client=client).classify([]) == []

    def test_parse_labels_rejects_non_json(self) -> None:
        with pytest.raises(CollaboratorError, match="not JSON"):
            parse_labels("sure, here you go", expected=2)
        with pytest.raises(CollaboratorError, match="not a list"):
            parse_labels('{"index": 0}', expected=2)
        assert [label.sensitive for label in parse_labels("[]", expected=2)] == [False, False]

    def test_build_llm_client(self) -> None:
        assert isinstance(build_llm_client(LlmSettings()), EchoLlmClient)
        client = build_llm_client(LlmSettings(provider="openai_compatible", api_key="sk"))
        assert isinstance(client, OpenAICompatibleClient)
        client.close()

        with pytest.raises(ValueError, match="API_KEY"):
            build_llm_client(LlmSettings(provider="openai_compatible"))
        with pytest.raises(ValueError, match="Unsupported"):
            build_llm_client(LlmSettings(provider="mystery"))


class TestGithubPublisher:
    @staticmethod
    def _publisher(handler: Handler) -> GithubPublisher:
        return GithubPublisher(
            token="ghp_test",
            repo="octo/blog",
            client=_client(handler, "https://api.github.test"),
        )

    def test_creates_file_when_missing(self) -> None:
        puts: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/blog/contents/_posts/2026-10-17-daily.md"
            assert request.headers["Authorization"] == "Bearer ghp_test"
            if request.method == "GET":
                assert request.url.params["ref"] == "main"
                return httpx.Response(404, json={"message": "Not Found"})
            puts.append(json.loads(request.content))
            return httpx.Response(201, json={"content": {}})

        self._publisher(handler).publish(_content())

        assert len(puts) == 1
        assert "sha" not in puts[0]
        assert puts[0]["branch"] == "main"
        assert puts[0]["message"] == "Publish daily digest 2026-10-17"
        assert base64.b64decode(str(puts[0]["content"])).decode() == _content().markdown

    def test_updates_existing_file_with_its_sha(self) -> None:
        puts: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                old = base64.b64encode(b"old digest").decode()
                return httpx.Response(200, json={"sha": "abc123", "content": old})
            puts.append(json.loads(request.content))
            return httpx.Response(200, json={"content": {}})

        self._publisher(handler).publish(_content())

        assert puts[0]["sha"] == "abc123"

    def test_skips_identical_content(self) -> None:
        methods: list[str] = []
        encoded = base64.b64encode(_content().markdown.encode()).decode()
        wrapped = "\n".join(encoded[i : i + 20] for i in range(0, len(encoded), 20))

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(200, json={"sha": "abc123", "content": wrapped})

        self._publisher(handler).publish(_content())

        assert methods == ["GET"]

    def test_raises_on_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(404)
            return httpx.Response(409, json={"message": "conflict"})

        with pytest.raises(httpx.HTTPStatusError):
            self._publisher(handler).publish(_content())


class TestTelegramPublisher:
    def test_sends_chunks_without_front_matter(self) -> None:
        sent: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/bot123:abc/sendMessage"
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        markdown = "---\nlayout: post\n---\n\n" + "\n".join(f"line {i}" for i in range(30))
        publisher = TelegramPublisher(
            bot_token="123:abc",
            channel_id="@digest",
            chunk_size=60,
            client=_client(handler, "https://telegram.test"),
        )

        publisher.publish(_content(markdown))

        assert len(sent) > 1
        assert all(message["chat_id"] == "@digest" for message in sent)
        assert all(len(str(message["text"])) <= 60 for message in sent)
        assert str(sent[0]["text"]).startswith("HackerNews Daily - 2026-10-17")
        assert "layout: post" not in "".join(str(message["text"]) for message in sent)

    def test_rejected_message_raises(self) -> None:
        publisher = TelegramPublisher(
            bot_token="123:abc",
            channel_id="@digest",
            client=_client(
                lambda _: httpx.Response(200, json={"ok": False, "description": "chat not found"}),
                "https://telegram.test",
            ),
        )

        with pytest.raises(RuntimeError, match="chat not found"):
            publisher.publish(_content())
