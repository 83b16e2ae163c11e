"""Build configured publisher bindings."""

from __future__ import annotations

from news_digest.config import PublisherSettings, PublisherTarget
from news_digest.engine.collaborators import Publisher
from news_digest.engine.publishing import PublisherBinding
from news_digest.publishers.github import GithubPublisher
from news_digest.publishers.local_file import LocalFilePublisher
from news_digest.publishers.telegram import TelegramPublisher
from news_digest.publishers.terminal import TerminalPublisher


def build_publishers(settings: PublisherSettings) -> list[PublisherBinding]:
    return [
        PublisherBinding(publisher=build_publisher(target, settings), hard_fail=target.hard_fail)
        for target in settings.targets
    ]


def build_publisher(target: PublisherTarget, settings: PublisherSettings) -> Publisher:
    if target.name == "terminal":
        return TerminalPublisher()
    if target.name == "local_file":
        return LocalFilePublisher(output_dir=settings.output_dir)
    if target.name == "github":
        if not settings.github_token or not settings.github_repo:
            raise ValueError("github publisher needs NEWS_DIGEST_GITHUB_TOKEN and _REPO.")
        return GithubPublisher(
            token=settings.github_token,
            repo=settings.github_repo,
            branch=settings.github_branch,
            path_template=settings.github_path_template,
            api_url=settings.github_api_url,
            timeout_seconds=settings.request_timeout_seconds,
        )
    if target.name == "telegram":
        if not settings.telegram_bot_token or not settings.telegram_channel_id:
            raise ValueError(
                "telegram publisher needs NEWS_DIGEST_TELEGRAM_BOT_TOKEN and _CHANNEL_ID.",
            )
        return TelegramPublisher(
            bot_token=settings.telegram_bot_token,
            channel_id=settings.telegram_channel_id,
            api_url=settings.telegram_api_url,
            timeout_seconds=settings.request_timeout_seconds,
        )
    raise ValueError(f"Unknown publisher: {target.name}")
