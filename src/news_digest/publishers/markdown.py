"""Markdown digest with Jekyll front matter."""

from __future__ import annotations

from news_digest.engine.collaborators import DigestEntry, PublishContent

DEFAULT_TITLE_TEMPLATE = "HackerNews Daily - {date}"
DEFAULT_DISCUSSION_URL_TEMPLATE = "https://news.ycombinator.com/item?id={source_id}"


class MarkdownDigestRenderer:
    def __init__(
        self,
        *,
        title_template: str = DEFAULT_TITLE_TEMPLATE,
        discussion_url_template: str | None = DEFAULT_DISCUSSION_URL_TEMPLATE,
    ) -> None:
        self.title_template = title_template
        self.discussion_url_template = discussion_url_template

    def render(self, entries: list[DigestEntry], task_date: str) -> PublishContent:
        title = self.title_template.format(date=task_date)
        ordered = sorted(entries, key=lambda entry: entry.rank)
        lines = [
            "---",
            "layout: post",
            f'title: "{_escape_quotes(title)}"',
            f"date: {task_date}",
            "---",
            "",
        ]
        for position, entry in enumerate(ordered, start=1):
            lines.extend(self._render_entry(position, entry))
        return PublishContent(
            task_date=task_date,
            title=title,
            markdown="\n".join(lines).rstrip() + "\n",
            entries=ordered,
        )

    def _render_entry(self, position: int, entry: DigestEntry) -> list[str]:
        lines = [f"## {position}. {entry.translated_title}", ""]
        original = f"[{entry.title}]({entry.url})" if entry.url else entry.title
        lines.append(f"**Original:** {original}")
        meta: list[str] = []
        if entry.score is not None:
            meta.append(f"Score: {entry.score}")
        if self.discussion_url_template:
            url = self.discussion_url_template.format(source_id=entry.source_id)
            meta.append(f"[Discussion]({url})")
        if meta:
            lines.extend(["", " | ".join(meta)])
        if entry.content_summary:
            lines.extend(["", f"**Summary:** {entry.content_summary}"])
        if entry.comment_summary:
            lines.extend(["", f"**Comments:** {entry.comment_summary}"])
        lines.extend(["", "---", ""])
        return lines


def strip_front_matter(markdown: str) -> str:
    """Drop a leading ``---`` delimited block."""

    if not markdown.startswith("---\n"):
        return markdown
    end = markdown.find("\n---\n", 4)
    if end < 0:
        return markdown
    return markdown[end + len("\n---\n") :].lstrip("\n")


def _escape_quotes(value: str) -> str:
    return value.replace('"', '\\"')
