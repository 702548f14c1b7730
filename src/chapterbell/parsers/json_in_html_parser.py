"""Parser for JSON embedded in an HTML page (e.g. a ``__NEXT_DATA__`` script tag)."""

from bs4 import BeautifulSoup

from chapterbell.config.targets import Target
from chapterbell.parsers.base import ParseError
from chapterbell.parsers.html_parser import required_tags, select_first
from chapterbell.parsers.json_parser import parse_json
from chapterbell.schemas import Chapter


def parse_json_in_html(target: Target, source: str) -> list[Chapter]:
    """
    Locate the element matching ``tags.chaptersTag`` and parse its text as JSON.

    The key map then applies exactly as for a plain JSON source.
    """
    tags = required_tags(target)
    soup = BeautifulSoup(source, "html.parser")

    script = select_first(soup, tags.chapters_tag)
    if script is None:
        raise ParseError(f"Could not find script tag {tags.chapters_tag!r} for {target.name}")

    text = script.string if script.string is not None else script.get_text()
    return parse_json(target, text)
