"""Shared pieces of the format parsers."""

from datetime import datetime

from chapterbell.config.targets import Target
from chapterbell.schemas import Chapter


class ParseError(Exception):
    """Raised when a document (or one chapter element) cannot be extracted."""


def build_chapter(
    target: Target,
    number: str,
    title: str,
    date: datetime,
    url: str,
) -> Chapter:
    """
    Create a chapter for ``target``, applying its announcement delay.

    Raises:
        ParseError: If the delayed announcement date is out of range
    """
    try:
        return Chapter.build(
            manga=target.name,
            number=number,
            title=title,
            date=date,
            url=url,
            delay_days=target.delay_days,
        )
    except OverflowError as e:
        raise ParseError(
            f"Chapter {number!r}: {date.isoformat()} plus {target.delay_days} days "
            "is out of range"
        ) from e


def finalize(target: Target, chapters: list[Chapter]) -> list[Chapter]:
    """
    Apply post-processing common to every parser.

    Sources normally list newest first; unless the target says it is
    ascending, the list is reversed so callers always get oldest first.
    """
    if not target.ascending_source:
        chapters.reverse()
    return chapters
