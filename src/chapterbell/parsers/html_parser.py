"""
HTML parser driven by the target's tag map (CSS selectors).

Every element matching ``chaptersTag`` is one chapter. Each field is read
from a sub-element (or the chapter element itself) as either an attribute
value or the element's text. A chapter whose fields cannot all be resolved
is skipped without failing the rest of the page.
"""

import logging
from datetime import datetime

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from chapterbell.config.targets import Target, TargetTags
from chapterbell.parsers.base import ParseError, build_chapter, finalize
from chapterbell.parsers.dates import parse_iso_auto, parse_with_pattern
from chapterbell.parsers.links import resolve_link
from chapterbell.schemas import Chapter, utc_now

logger = logging.getLogger(__name__)


def required_tags(target: Target) -> TargetTags:
    if target.tags is None:
        raise ParseError(f"Target {target.name} has no tag map")
    return target.tags


def select_all(root: Tag, selector: str) -> list[Tag]:
    try:
        return root.select(selector)
    except SelectorSyntaxError as e:
        raise ParseError(f"Failed creating selector: {selector}") from e


def select_first(root: Tag, selector: str) -> Tag | None:
    try:
        return root.select_one(selector)
    except SelectorSyntaxError as e:
        raise ParseError(f"Failed creating selector: {selector}") from e


def get_value(element: Tag, tag: str | None, attribute: str | None) -> str:
    """
    Read one field from a chapter element.

    Args:
        element: The chapter element
        tag: Selector for a sub-element, or None for the element itself
        attribute: Attribute to read, or None for the text content

    Raises:
        ParseError: If the sub-element or attribute does not exist
    """
    if tag is not None:
        found = select_first(element, tag)
        if found is None:
            raise ParseError(f"No element found using tag {tag}")
        element = found

    if attribute is None:
        return element.get_text().strip()

    value = element.get(attribute)
    if value is None:
        raise ParseError(f"No attribute {attribute} found in tag")
    # Multi-valued attributes such as class come back as lists.
    if isinstance(value, list):
        return " ".join(value)
    return value


def _chapter_date(element: Tag, tags: TargetTags) -> datetime:
    if tags.date_tag is None and tags.date_attribute is None:
        return utc_now()

    text = get_value(element, tags.date_tag, tags.date_attribute)
    if tags.date_format is not None:
        return parse_with_pattern(text, tags.date_format)
    return parse_iso_auto(text)


def _build_chapter(target: Target, tags: TargetTags, element: Tag) -> Chapter:
    number = get_value(element, tags.number_tag, tags.number_attribute)
    title = get_value(element, tags.title_tag, tags.title_attribute)
    date = _chapter_date(element, tags)
    url = get_value(element, tags.url_tag, tags.url_attribute)

    return build_chapter(
        target,
        number=number,
        title=title,
        date=date,
        url=resolve_link(target, url),
    )


def parse_html(target: Target, source: str) -> list[Chapter]:
    """
    Parse an HTML page into chapters (oldest first).

    Raises:
        ParseError: If the chapter selector is invalid or matches nothing
    """
    tags = required_tags(target)
    soup = BeautifulSoup(source, "html.parser")

    elements = select_all(soup, tags.chapters_tag)
    if not elements:
        raise ParseError(f"No elements match {tags.chapters_tag!r} for {target.name}")

    chapters: list[Chapter] = []
    for element in elements:
        try:
            chapters.append(_build_chapter(target, tags, element))
        except ParseError as e:
            logger.debug("Skipping chapter element in %s: %s", target.name, e)

    return finalize(target, chapters)
