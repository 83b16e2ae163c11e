from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from news_digest import controllers, wiring
from news_digest.engine.collaborators import Comment, FetchedContent, StoryCandidate
from news_digest.main import news_digest

TASK_DATE = "2026-10-17"


class _Stories:
    def __init__(self, **_: object) -> None:
        pass

    def fetch_candidates(self, task_date: str) -> list[StoryCandidate]:
        return [
            StoryCandidate(
                source_id=str(9_000 + index),
                rank=index,
                title=f"Headline {index} for {task_date}",
                url=f"https://example.com/{index}",
                score=500 - index,
            )
            for index in range(1, 6)
        ]

    def close(self) -> None:
        pass


class _Comments:
    def __init__(self, **_: object) -> None:
        pass

    def fetch_top(self, source_id: str, limit: int) -> list[Comment]:
        return [Comment(comment_id=f"{source_id}-{i}", author=None, text="Nice") for i in range(3)]

    def close(self) -> None:
        pass


class _Content:
    def __init__(self, **_: object) -> None:
        pass

    def fetch(self, url: str) -> FetchedContent:
        return FetchedContent(full_text=f"Article body at {url}")

    def close(self) -> None:
        pass


@pytest.fixture()
def offline_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(wiring, "HackerNewsStorySource", _Stories)
    monkeypatch.setattr(wiring, "HackerNewsCommentFetcher", _Comments)
    monkeypatch.setattr(wiring, "HttpContentFetcher", _Content)
    monkeypatch.setattr(wiring, "HttpFetcher", lambda **_: None)
    monkeypatch.setenv("NEWS_DIGEST_PUBLISHERS", "local_file:hard")
    monkeypatch.setenv("NEWS_DIGEST_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("NEWS_DIGEST_LLM_PROVIDER", "echo")
    monkeypatch.delenv("NEWS_DIGEST_BATCH_SIZE", raising=False)
    monkeypatch.delenv("NEWS_DIGEST_CONTENT_FILTER", raising=False)
    monkeypatch.setenv("COLUMNS", "200")
    return tmp_path


def _invoke(*args: str):
    return CliRunner().invoke(news_digest, list(args))


def test_task_tick_drain_publishes_digest_file(offline_env: Path) -> None:
    db_path = offline_env / "cli.db"

    result = _invoke("task", "tick", "--db-path", str(db_path), "--date", TASK_DATE, "--drain")

    assert result.exit_code == 0, result.output
    assert f"Tick {TASK_DATE}: listed init -> listed" in result.output
    assert f"Tick {TASK_DATE}: processed listed -> aggregating" in result.output
    assert "published_items=5" in result.output
    assert "Status: published" in result.output
    digest = (offline_env / "out" / f"{TASK_DATE}-daily.md").read_text(encoding="utf-8")
    assert digest.startswith("---\nlayout: post\n")
    assert f"## 1. Headline 1 for {TASK_DATE}" in digest
    assert "**Summary:** Article body at https://example.com/1" in digest


def test_task_inspection_commands(offline_env: Path) -> None:
    db_path = str(offline_env / "cli.db")
    first = _invoke("task", "tick", "--db-path", db_path, "--date", TASK_DATE)
    assert first.exit_code == 0, first.output
    assert "Status: listed" in first.output

    second = _invoke("task", "tick", "--db-path", db_path, "--date", TASK_DATE)
    assert second.exit_code == 0, second.output

    status = _invoke("task", "status", "--db-path", db_path, "--date", TASK_DATE)
    assert status.exit_code == 0, status.output
    assert "Status: aggregating" in status.output
    assert "Items: total=5 completed=5 failed=0" in status.output
    assert "Batches: 1" in status.output

    batches = _invoke("task", "batches", "--db-path", db_path, "--date", TASK_DATE)
    assert batches.exit_code == 0, batches.output
    assert f"Batches for {TASK_DATE}: 1" in batches.output
    assert "#1 status=success items=5" in batches.output

    events = _invoke(
        "task",
        "events",
        "--db-path",
        db_path,
        "--date",
        TASK_DATE,
        "--type",
        "aggregating",
    )
    assert events.exit_code == 0, events.output
    assert f"Events for {TASK_DATE}: 1" in events.output
    assert "aggregating processing -> aggregating" in events.output

    listed = _invoke("task", "list", "--db-path", db_path, "--status", "aggregating")
    assert listed.exit_code == 0, listed.output
    assert "Tasks: 1" in listed.output
    assert f"{TASK_DATE} status=aggregating total=5" in listed.output

    missing = _invoke("task", "status", "--db-path", db_path, "--date", "2026-10-01")
    assert missing.exit_code == 0
    assert "Task not found: 2026-10-01" in missing.output


def test_recovery_commands(offline_env: Path) -> None:
    db_path = str(offline_env / "cli.db")
    _invoke("task", "tick", "--db-path", db_path, "--date", TASK_DATE)

    retried = _invoke("task", "retry-failed", "--db-path", db_path, "--date", TASK_DATE)
    assert retried.exit_code == 0, retried.output
    assert f"Failed items re-queued for {TASK_DATE}: 0" in retried.output

    forced = _invoke("task", "force-publish", "--db-path", db_path, "--date", TASK_DATE)
    assert forced.exit_code == 1
    assert "No completed items" in forced.output

    _invoke("task", "tick", "--db-path", db_path, "--date", TASK_DATE)
    forced = _invoke("task", "force-publish", "--db-path", db_path, "--date", TASK_DATE)
    assert forced.exit_code == 0, forced.output
    assert f"Task {TASK_DATE} force-published with 5 items" in forced.output

    again = _invoke("task", "force-publish", "--db-path", db_path, "--date", TASK_DATE)
    assert again.exit_code == 1
    assert "already published" in again.output

    archived = _invoke("task", "archive", "--db-path", db_path)
    assert archived.exit_code == 0, archived.output
    assert "Archived tasks: 0" in archived.output


def test_tick_reports_failure_with_non_zero_exit(offline_env: Path, monkeypatch) -> None:
    monkeypatch.setattr(_Stories, "fetch_candidates", lambda self, task_date: [])
    db_path = str(offline_env / "cli.db")

    result = _invoke("task", "tick", "--db-path", db_path, "--date", TASK_DATE)

    assert result.exit_code == 1
    assert "error=Story source returned no candidates" in result.output
    assert "Tick failed." in result.output


def test_invalid_configuration_fails_before_touching_the_store(
    offline_env: Path,
    monkeypatch,
) -> None:
    monkeypatch.setenv("NEWS_DIGEST_BATCH_SIZE", "20")
    db_path = offline_env / "never.db"

    result = _invoke("task", "tick", "--db-path", str(db_path), "--date", TASK_DATE)

    assert result.exit_code == 1
    assert "over the budget" in result.output
    assert not db_path.exists()


def test_invalid_date_is_rejected(offline_env: Path) -> None:
    result = _invoke(
        "task",
        "tick",
        "--db-path",
        str(offline_env / "cli.db"),
        "--date",
        "17.10.2026",
    )

    assert result.exit_code == 1
    assert "YYYY-MM-DD" in result.output


def test_trigger_no_wait_detaches_a_tick_process(offline_env: Path, monkeypatch) -> None:
    launched: list[list[str]] = []

    class _Process:
        pid = 4242

    def _popen(args: list[str], **kwargs: object) -> _Process:
        assert kwargs["start_new_session"] is True
        launched.append(args)
        return _Process()

    monkeypatch.setattr(controllers.subprocess, "Popen", _popen)
    db_path = str(offline_env / "cli.db")

    result = _invoke(
        "task",
        "trigger",
        "--db-path",
        db_path,
        "--date",
        TASK_DATE,
        "--no-wait",
        "--drain",
    )

    assert result.exit_code == 0, result.output
    assert f"Tick for {TASK_DATE} started in background: pid=4242" in result.output
    assert launched[0][1:] == [
        "-m",
        "news_digest.main",
        "task",
        "tick",
        "--date",
        TASK_DATE,
        "--db-path",
        db_path,
        "--drain",
    ]


def test_schedule_runs_requested_number_of_times(offline_env: Path) -> None:
    db_path = str(offline_env / "cli.db")

    result = _invoke(
        "task",
        "schedule",
        "--db-path",
        db_path,
        "--interval",
        "1",
        "--max-runs",
        "1",
    )

    assert result.exit_code == 0, result.output
    assert "Schedule stopped: runs=1 ticks=3 errors=0" in result.output
