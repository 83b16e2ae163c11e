"""HTML to clean text extraction using trafilatura."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import trafilatura

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExtractionResult:
    """Main text plus the page's own short description, when present."""

    text: str
    description: str | None
    is_success: bool
    error: str | None = None


def extract_article(html: str, *, url: str | None = None, max_chars: int = 0) -> ExtractionResult:
    """Extract main content text and meta description from HTML.

    Falls back to a recall-oriented extraction if the precise pass finds
    nothing.
    """

    if not html or not html.strip():
        return ExtractionResult(text="", description=None, is_success=False, error="empty HTML")

    description = extract_description(html, url=url)
    try:
        text = trafilatura.extract(
            html,
            url=url,
            include_tables=False,
            include_links=False,
            favor_precision=True,
            deduplicate=True,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("trafilatura.extract failed for %s: %s", url or "<unknown>", exc)
        text = None

    if not text:
        try:
            text = trafilatura.extract(html, url=url, favor_recall=True)
        except Exception as exc:  # noqa: BLE001
            logger.warning("trafilatura fallback failed for %s: %s", url or "<unknown>", exc)
            return ExtractionResult(
                text="",
                description=description,
                is_success=False,
                error=f"extraction failed: {exc}",
            )

    if not text:
        return ExtractionResult(
            text="",
            description=description,
            is_success=False,
            error="no content extracted",
        )

    if max_chars > 0 and len(text) > max_chars:
        text = text[:max_chars].rstrip()
    return ExtractionResult(text=text, description=description, is_success=True)


def extract_description(html: str, *, url: str | None = None) -> str | None:
    try:
        metadata = trafilatura.extract_metadata(html, default_url=url)
    except Exception as exc:  # noqa: BLE001
        logger.warning("trafilatura metadata failed for %s: %s", url or "<unknown>", exc)
        return None
    if metadata is None or not metadata.description:
        return None
    return metadata.description.strip() or None
