"""Publisher that prints the digest to the console."""

from __future__ import annotations

from collections.abc import Callable

import click

from news_digest.engine.collaborators import PublishContent


class TerminalPublisher:
    """Prints the digest to stdout."""

    name = "terminal"

    def __init__(self, *, echo: Callable[[str], None] = click.echo) -> None:
        self._echo = echo

    def publish(self, content: PublishContent) -> None:
        self._echo(content.markdown)
