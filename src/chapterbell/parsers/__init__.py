"""
Format parsers: turn a raw document into a normalized, oldest-first chapter list.

Parsers are pure functions of (target, document); the fetch worker selects
one by the target's mode through ``parse()``.
"""

from collections.abc import Callable

from chapterbell.config.targets import ParseMode, Target
from chapterbell.parsers.base import ParseError
from chapterbell.parsers.html_parser import parse_html
from chapterbell.parsers.json_in_html_parser import parse_json_in_html
from chapterbell.parsers.json_parser import parse_json
from chapterbell.parsers.links import make_link
from chapterbell.parsers.rss_parser import parse_rss
from chapterbell.schemas import Chapter

PARSERS: dict[ParseMode, Callable[[Target, str], list[Chapter]]] = {
    ParseMode.RSS: parse_rss,
    ParseMode.JSON: parse_json,
    ParseMode.HTML: parse_html,
    ParseMode.JSON_IN_HTML: parse_json_in_html,
}


def parse(target: Target, document: str) -> list[Chapter]:
    """Parse a document with the parser matching the target's mode."""
    return PARSERS[target.mode](target, document)


__all__ = [
    "PARSERS",
    "ParseError",
    "make_link",
    "parse",
    "parse_html",
    "parse_json",
    "parse_json_in_html",
    "parse_rss",
]
