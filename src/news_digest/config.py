"""Runtime configuration for the digest engine, its collaborators and publishers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from news_digest.engine.claimer import batch_size_for_budget

SUPPORTED_LLM_PROVIDERS = ("echo", "openai_compatible")
SUPPORTED_PUBLISHERS = ("terminal", "local_file", "github", "telegram")


@dataclass(slots=True)
class EngineSettings:
    """Tick sizing, recovery and retention."""

    batch_size: int = 6
    call_budget: int = 50
    calls_per_item: int = 5
    budget_safety_margin: float = 1.0
    item_concurrency: int = 4
    max_retry: int = 3
    stuck_item_timeout_seconds: int = 900
    retention_days: int = 30
    purge_on_archive: bool = True
    schedule_interval_seconds: int = 300
    drain_max_ticks: int = 50


@dataclass(slots=True)
class PipelineSettings:
    """Per-item enrichment settings."""

    summary_max_length: int = 300
    comment_limit: int = 10
    min_comments: int = 3
    content_max_chars: int = 12_000
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0


@dataclass(slots=True)
class SourceSettings:
    """Story list source (Hacker News via Algolia)."""

    story_limit: int = 30
    api_base_url: str = "https://hn.algolia.com/api/v1"
    max_pages: int = 10
    hits_per_page: int = 1_000
    request_timeout_seconds: float = 10.0
    max_retries: int = 3
    classifier_enabled: bool = False


@dataclass(slots=True)
class LlmSettings:
    """Model backend used by summarizer, translator and classifier."""

    provider: str = "echo"
    base_url: str = "https://api.deepseek.com/v1"
    api_key: str | None = None
    model: str = "deepseek-chat"
    target_language: str = "Chinese"
    temperature: float = 0.3
    request_timeout_seconds: float = 30.0


@dataclass(slots=True, frozen=True)
class PublisherTarget:
    name: str
    hard_fail: bool = True


@dataclass(slots=True)
class PublisherSettings:
    """Publishing targets and their credentials."""

    targets: tuple[PublisherTarget, ...] = (PublisherTarget("terminal"),)
    output_dir: Path = Path("digests")
    github_token: str | None = None
    github_repo: str | None = None
    github_branch: str = "main"
    github_path_template: str = "_posts/{date}-daily.md"
    github_api_url: str = "https://api.github.com"
    telegram_bot_token: str | None = None
    telegram_channel_id: str | None = None
    telegram_api_url: str = "https://api.telegram.org"
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".news_digest.db")
    sqlite_busy_timeout_ms: int = 5_000
    engine: EngineSettings = field(default_factory=EngineSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    source: SourceSettings = field(default_factory=SourceSettings)
    llm: LlmSettings = field(default_factory=LlmSettings)
    publishers: PublisherSettings = field(default_factory=PublisherSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("NEWS_DIGEST_DB_PATH", ".news_digest.db")),
            sqlite_busy_timeout_ms=int(os.getenv("NEWS_DIGEST_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            engine=EngineSettings(
                batch_size=int(os.getenv("NEWS_DIGEST_BATCH_SIZE", "6")),
                call_budget=int(os.getenv("NEWS_DIGEST_CALL_BUDGET", "50")),
                calls_per_item=int(os.getenv("NEWS_DIGEST_CALLS_PER_ITEM", "5")),
                budget_safety_margin=float(
                    os.getenv("NEWS_DIGEST_BUDGET_SAFETY_MARGIN", "1.0"),
                ),
                item_concurrency=int(os.getenv("NEWS_DIGEST_ITEM_CONCURRENCY", "4")),
                max_retry=int(os.getenv("NEWS_DIGEST_MAX_RETRY", "3")),
                stuck_item_timeout_seconds=int(
                    os.getenv("NEWS_DIGEST_STUCK_ITEM_TIMEOUT_SECONDS", "900"),
                ),
                retention_days=int(os.getenv("NEWS_DIGEST_RETENTION_DAYS", "30")),
                purge_on_archive=_env_bool("NEWS_DIGEST_PURGE_ON_ARCHIVE", default=True),
                schedule_interval_seconds=int(
                    os.getenv("NEWS_DIGEST_SCHEDULE_INTERVAL_SECONDS", "300"),
                ),
                drain_max_ticks=int(os.getenv("NEWS_DIGEST_DRAIN_MAX_TICKS", "50")),
            ),
            pipeline=PipelineSettings(
                summary_max_length=int(os.getenv("NEWS_DIGEST_SUMMARY_MAX_LENGTH", "300")),
                comment_limit=int(os.getenv("NEWS_DIGEST_COMMENT_LIMIT", "10")),
                min_comments=int(os.getenv("NEWS_DIGEST_MIN_COMMENTS", "3")),
                content_max_chars=int(os.getenv("NEWS_DIGEST_CONTENT_MAX_CHARS", "12000")),
                retry_max_attempts=int(os.getenv("NEWS_DIGEST_RETRY_MAX_ATTEMPTS", "3")),
                retry_base_delay_seconds=float(
                    os.getenv("NEWS_DIGEST_RETRY_BASE_DELAY_SECONDS", "1.0"),
                ),
                retry_max_delay_seconds=float(
                    os.getenv("NEWS_DIGEST_RETRY_MAX_DELAY_SECONDS", "30.0"),
                ),
            ),
            source=SourceSettings(
                story_limit=int(os.getenv("NEWS_DIGEST_STORY_LIMIT", "30")),
                api_base_url=os.getenv(
                    "NEWS_DIGEST_SOURCE_API_URL",
                    "https://hn.algolia.com/api/v1",
                ),
                max_pages=int(os.getenv("NEWS_DIGEST_SOURCE_MAX_PAGES", "10")),
                request_timeout_seconds=float(
                    os.getenv("NEWS_DIGEST_SOURCE_TIMEOUT_SECONDS", "10.0"),
                ),
                max_retries=int(os.getenv("NEWS_DIGEST_SOURCE_MAX_RETRIES", "3")),
                classifier_enabled=_env_bool("NEWS_DIGEST_CONTENT_FILTER", default=False),
            ),
            llm=LlmSettings(
                provider=os.getenv("NEWS_DIGEST_LLM_PROVIDER", "echo").strip().lower(),
                base_url=os.getenv("NEWS_DIGEST_LLM_BASE_URL", "https://api.deepseek.com/v1"),
                api_key=_env_optional("NEWS_DIGEST_LLM_API_KEY"),
                model=os.getenv("NEWS_DIGEST_LLM_MODEL", "deepseek-chat"),
                target_language=os.getenv("NEWS_DIGEST_TARGET_LANGUAGE", "Chinese"),
                temperature=float(os.getenv("NEWS_DIGEST_LLM_TEMPERATURE", "0.3")),
                request_timeout_seconds=float(
                    os.getenv("NEWS_DIGEST_LLM_TIMEOUT_SECONDS", "30.0"),
                ),
            ),
            publishers=PublisherSettings(
                targets=parse_publisher_targets(
                    os.getenv("NEWS_DIGEST_PUBLISHERS", "terminal:hard"),
                ),
                output_dir=Path(os.getenv("NEWS_DIGEST_OUTPUT_DIR", "digests")),
                github_token=_env_optional("NEWS_DIGEST_GITHUB_TOKEN"),
                github_repo=_env_optional("NEWS_DIGEST_GITHUB_REPO"),
                github_branch=os.getenv("NEWS_DIGEST_GITHUB_BRANCH", "main"),
                telegram_bot_token=_env_optional("NEWS_DIGEST_TELEGRAM_BOT_TOKEN"),
                telegram_channel_id=_env_optional("NEWS_DIGEST_TELEGRAM_CHANNEL_ID"),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error before any state is touched."""

        engine = self.engine
        if engine.batch_size <= 0:
            raise ValueError("NEWS_DIGEST_BATCH_SIZE must be > 0.")
        if engine.calls_per_item <= 0:
            raise ValueError("NEWS_DIGEST_CALLS_PER_ITEM must be > 0.")
        budget_limit = batch_size_for_budget(
            call_budget=engine.call_budget,
            calls_per_item=engine.calls_per_item,
            safety_margin=engine.budget_safety_margin,
        )
        if engine.batch_size > budget_limit:
            raise ValueError(
                f"NEWS_DIGEST_BATCH_SIZE={engine.batch_size} needs up to "
                f"{engine.batch_size * engine.calls_per_item} outbound calls per tick, "
                f"over the budget of {engine.call_budget}; use at most {budget_limit}.",
            )
        if engine.item_concurrency <= 0:
            raise ValueError("NEWS_DIGEST_ITEM_CONCURRENCY must be > 0.")
        if engine.max_retry < 0:
            raise ValueError("NEWS_DIGEST_MAX_RETRY must be >= 0.")
        if engine.stuck_item_timeout_seconds <= 0:
            raise ValueError("NEWS_DIGEST_STUCK_ITEM_TIMEOUT_SECONDS must be > 0.")
        if engine.retention_days < 0:
            raise ValueError("NEWS_DIGEST_RETENTION_DAYS must be >= 0.")
        if self.pipeline.retry_max_attempts <= 0:
            raise ValueError("NEWS_DIGEST_RETRY_MAX_ATTEMPTS must be > 0.")
        if self.source.story_limit <= 0:
            raise ValueError("NEWS_DIGEST_STORY_LIMIT must be > 0.")

        self._validate_llm()
        self._validate_publishers()

    def _validate_llm(self) -> None:
        if self.llm.provider not in SUPPORTED_LLM_PROVIDERS:
            raise ValueError(
                f"Unsupported NEWS_DIGEST_LLM_PROVIDER={self.llm.provider!r}; "
                f"expected one of: {', '.join(SUPPORTED_LLM_PROVIDERS)}.",
            )
        if self.llm.provider == "openai_compatible" and not self.llm.api_key:
            raise ValueError("NEWS_DIGEST_LLM_API_KEY is required for openai_compatible provider.")

    def _validate_publishers(self) -> None:
        publishers = self.publishers
        if not any(target.hard_fail for target in publishers.targets):
            raise ValueError(
                "At least one hard-fail publisher is required. "
                "Set NEWS_DIGEST_PUBLISHERS, for example 'local_file:hard,telegram:soft'.",
            )
        names = [target.name for target in publishers.targets]
        if len(names) != len(set(names)):
            raise ValueError("NEWS_DIGEST_PUBLISHERS lists the same publisher twice.")
        if "github" in names and not (publishers.github_token and publishers.github_repo):
            raise ValueError(
                "NEWS_DIGEST_GITHUB_TOKEN and NEWS_DIGEST_GITHUB_REPO are required "
                "for the github publisher.",
            )
        if "telegram" in names and not (
            publishers.telegram_bot_token and publishers.telegram_channel_id
        ):
            raise ValueError(
                "NEWS_DIGEST_TELEGRAM_BOT_TOKEN and NEWS_DIGEST_TELEGRAM_CHANNEL_ID are required "
                "for the telegram publisher.",
            )


def parse_publisher_targets(raw: str) -> tuple[PublisherTarget, ...]:
    """Parse ``name[:hard|soft]`` entries separated by commas."""

    targets: list[PublisherTarget] = []
    for chunk in raw.split(","):
        entry = chunk.strip()
        if not entry:
            continue
        name, _, mode = entry.partition(":")
        name = name.strip().lower()
        mode = mode.strip().lower() or "hard"
        if name not in SUPPORTED_PUBLISHERS:
            raise ValueError(
                f"Unknown publisher {name!r} in NEWS_DIGEST_PUBLISHERS; "
                f"expected one of: {', '.join(SUPPORTED_PUBLISHERS)}.",
            )
        if mode not in {"hard", "soft"}:
            raise ValueError(f"Publisher mode must be 'hard' or 'soft', got {mode!r}.")
        targets.append(PublisherTarget(name=name, hard_fail=mode == "hard"))
    return tuple(targets)


def _env_optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_bool(name: str, *, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}
