"""
RSS/Atom parser.

Each feed entry becomes one chapter: the entry id is the chapter number, the
first link is the chapter URL and the published time is the chapter date.
Unlike the JSON and HTML parsers there is no per-entry isolation: a feed
that cannot be read, or an entry missing its title or link, fails the whole
document.
"""

import io
import logging
from datetime import datetime, timezone
from typing import Any

import feedparser

from chapterbell.config.targets import Target
from chapterbell.parsers.base import ParseError, build_chapter, finalize
from chapterbell.parsers.links import resolve_link
from chapterbell.schemas import Chapter, utc_now

logger = logging.getLogger(__name__)


def _published_at(entry: Any) -> datetime:
    """Entry publish time, or now if the feed does not provide one."""
    parsed = entry.get("published_parsed")
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return utc_now()


def _first_link(entry: Any) -> str:
    links = entry.get("links") or []
    for link in links:
        href = link.get("href")
        if href:
            return href
    raise ParseError(f"Entry {entry.get('id')!r} has no link")


def parse_rss(target: Target, source: str) -> list[Chapter]:
    """
    Parse an RSS or Atom document into chapters (oldest first).

    Raises:
        ParseError: If the document is not a feed or an entry is incomplete
    """
    # Passing a stream keeps feedparser from treating the body as a URL or path.
    feed = feedparser.parse(io.BytesIO(source.encode("utf-8")))

    if feed.get("bozo") and not feed.get("version") and not feed.get("entries"):
        raise ParseError(
            f"Could not parse feed for {target.name}: {feed.get('bozo_exception')}"
        )

    chapters: list[Chapter] = []
    for entry in feed.get("entries", []):
        title = entry.get("title")
        if title is None:
            raise ParseError(f"Entry {entry.get('id')!r} in {target.name} has no title")

        link = _first_link(entry)
        number = entry.get("id") or link

        chapters.append(
            build_chapter(
                target,
                number=number,
                title=title,
                date=_published_at(entry),
                url=resolve_link(target, link),
            )
        )

    logger.debug("Parsed %d feed entries for %s", len(chapters), target.name)
    return finalize(target, chapters)
