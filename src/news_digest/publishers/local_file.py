"""Publisher that writes the digest to a dated Markdown file."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from news_digest.engine.collaborators import PublishContent

logger = logging.getLogger(__name__)


class LocalFilePublisher:
    """Writes ``<output_dir>/<date>-daily.md``; a republish overwrites the same file."""

    name = "local_file"

    def __init__(self, *, output_dir: Path) -> None:
        self.output_dir = output_dir

    def path_for(self, task_date: str) -> Path:
        return self.output_dir / f"{task_date}-daily.md"

    def publish(self, content: PublishContent) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(content.task_date)
        tmp = target.with_suffix(".md.tmp")
        tmp.write_text(content.markdown, encoding="utf-8")
        os.replace(tmp, target)
        logger.info("Digest for %s written to %s", content.task_date, target)
