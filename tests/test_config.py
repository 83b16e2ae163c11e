from __future__ import annotations

from pathlib import Path

import allure
import pytest

from news_digest.config import (
    EngineSettings,
    LlmSettings,
    PublisherSettings,
    PublisherTarget,
    Settings,
    parse_publisher_targets,
)

pytestmark = [
    allure.epic("Daily Task Engine"),
    allure.feature("Configuration"),
]


def test_default_settings_are_valid() -> None:
    settings = Settings()

    settings.validate()
    assert settings.engine.batch_size == 6
    assert settings.engine.batch_size * settings.engine.calls_per_item <= 50
    assert settings.publishers.targets == (PublisherTarget("terminal"),)
    assert settings.llm.provider == "echo"


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("NEWS_DIGEST_BATCH_SIZE", "4")
    monkeypatch.setenv("NEWS_DIGEST_MAX_RETRY", "5")
    monkeypatch.setenv("NEWS_DIGEST_PURGE_ON_ARCHIVE", "no")
    monkeypatch.setenv("NEWS_DIGEST_CONTENT_FILTER", "true")
    monkeypatch.setenv("NEWS_DIGEST_PUBLISHERS", "local_file:hard, telegram:soft")
    monkeypatch.setenv("NEWS_DIGEST_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("NEWS_DIGEST_LLM_PROVIDER", " OpenAI_Compatible ")
    monkeypatch.setenv("NEWS_DIGEST_LLM_API_KEY", "  ")

    settings = Settings.from_env(db_path=tmp_path / "digest.db")

    assert settings.db_path == tmp_path / "digest.db"
    assert settings.engine.batch_size == 4
    assert settings.engine.max_retry == 5
    assert settings.engine.purge_on_archive is False
    assert settings.source.classifier_enabled is True
    assert settings.publishers.output_dir == tmp_path / "out"
    assert settings.publishers.targets == (
        PublisherTarget("local_file", hard_fail=True),
        PublisherTarget("telegram", hard_fail=False),
    )
    assert settings.llm.provider == "openai_compatible"
    assert settings.llm.api_key is None


def test_from_env_uses_db_path_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NEWS_DIGEST_DB_PATH", "/var/lib/digest/state.db")

    assert Settings.from_env().db_path == Path("/var/lib/digest/state.db")


def test_validate_rejects_batch_over_call_budget() -> None:
    settings = Settings(engine=EngineSettings(batch_size=20))

    with pytest.raises(ValueError, match="over the budget of 50; use at most 10"):
        settings.validate()


def test_validate_applies_safety_margin() -> None:
    settings = Settings(engine=EngineSettings(batch_size=8, budget_safety_margin=0.6))

    with pytest.raises(ValueError, match="use at most 6"):
        settings.validate()


@pytest.mark.parametrize(
    ("engine", "message"),
    [
        (EngineSettings(batch_size=0), "BATCH_SIZE must be > 0"),
        (EngineSettings(item_concurrency=0), "ITEM_CONCURRENCY"),
        (EngineSettings(max_retry=-1), "MAX_RETRY"),
        (EngineSettings(stuck_item_timeout_seconds=0), "STUCK_ITEM_TIMEOUT_SECONDS"),
        (EngineSettings(retention_days=-1), "RETENTION_DAYS"),
    ],
)
def test_validate_rejects_bad_engine_settings(engine: EngineSettings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        Settings(engine=engine).validate()


def test_validate_requires_a_hard_publisher() -> None:
    settings = Settings(
        publishers=PublisherSettings(targets=(PublisherTarget("terminal", hard_fail=False),)),
    )

    with pytest.raises(ValueError, match="At least one hard-fail publisher"):
        settings.validate()


def test_validate_rejects_duplicate_publishers() -> None:
    settings = Settings(
        publishers=PublisherSettings(
            targets=(PublisherTarget("terminal"), PublisherTarget("terminal", hard_fail=False)),
        ),
    )

    with pytest.raises(ValueError, match="same publisher twice"):
        settings.validate()


def test_validate_requires_publisher_credentials() -> None:
    github = Settings(publishers=PublisherSettings(targets=(PublisherTarget("github"),)))
    telegram = Settings(
        publishers=PublisherSettings(
            targets=(PublisherTarget("local_file"), PublisherTarget("telegram", hard_fail=False)),
            telegram_bot_token="token",
        ),
    )

    with pytest.raises(ValueError, match="NEWS_DIGEST_GITHUB_TOKEN"):
        github.validate()
    with pytest.raises(ValueError, match="NEWS_DIGEST_TELEGRAM_CHANNEL_ID"):
        telegram.validate()


def test_validate_checks_llm_provider() -> None:
    with pytest.raises(ValueError, match="Unsupported NEWS_DIGEST_LLM_PROVIDER"):
        Settings(llm=LlmSettings(provider="gpt")).validate()
    with pytest.raises(ValueError, match="NEWS_DIGEST_LLM_API_KEY is required"):
        Settings(llm=LlmSettings(provider="openai_compatible")).validate()
    Settings(llm=LlmSettings(provider="openai_compatible", api_key="sk-test")).validate()


def test_parse_publisher_targets() -> None:
    assert parse_publisher_targets("local_file, github:hard ,telegram:SOFT,") == (
        PublisherTarget("local_file", hard_fail=True),
        PublisherTarget("github", hard_fail=True),
        PublisherTarget("telegram", hard_fail=False),
    )
    assert parse_publisher_targets("") == ()

    with pytest.raises(ValueError, match="Unknown publisher 'slack'"):
        parse_publisher_targets("slack:soft")
    with pytest.raises(ValueError, match="must be 'hard' or 'soft'"):
        parse_publisher_targets("terminal:maybe")
