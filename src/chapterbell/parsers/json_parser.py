"""
JSON parser driven by the target's key map.

The chapter list is found at ``keys.chapters``. Elements matching any skip
condition are dropped; elements whose fields cannot be extracted are skipped
individually. Only a missing or non-array chapter list fails the document.
"""

import json
import logging
from typing import Any

from chapterbell.config.targets import Target, TargetKeys
from chapterbell.parsers.base import ParseError, build_chapter, finalize
from chapterbell.parsers.dates import JsonDateFormat, parse_json_date, resolve_json_date_format
from chapterbell.parsers.dotpath import MISSING, dot_get, json_equal
from chapterbell.parsers.links import resolve_link
from chapterbell.schemas import Chapter

logger = logging.getLogger(__name__)


def _required_keys(target: Target) -> TargetKeys:
    if target.keys is None:
        raise ParseError(f"Target {target.name} has no key map")
    return target.keys


def _should_skip(element: Any, skip: dict[str, Any]) -> bool:
    for path, skip_value in skip.items():
        value = dot_get(element, path)
        if value is MISSING:
            continue
        if json_equal(value, skip_value):
            return True
    return False


def _string_at(element: Any, path: str) -> str:
    """Value at ``path`` rendered as a string; only strings and integers qualify."""
    value = dot_get(element, path)
    if value is MISSING:
        raise ParseError(f"No value at {path!r}")
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise ParseError(f"Value at {path!r} is neither string nor integer: {value!r}")


def _joined(element: Any, paths: list[str]) -> str:
    parts = [_string_at(element, path) for path in paths]
    return " ".join(part for part in parts if part)


def _build_chapter(
    target: Target,
    keys: TargetKeys,
    element: Any,
    date_format: JsonDateFormat | str,
) -> Chapter:
    number = _joined(element, keys.number)
    title = _joined(element, keys.title)

    raw_date = dot_get(element, keys.date)
    if raw_date is MISSING:
        raise ParseError(f"No value at {keys.date!r}")
    date = parse_json_date(raw_date, date_format)

    url = _string_at(element, keys.url)

    return build_chapter(
        target,
        number=number,
        title=title,
        date=date,
        url=resolve_link(target, url),
    )


def parse_json_document(target: Target, document: Any) -> list[Chapter]:
    """
    Extract chapters from an already-decoded JSON document.

    Raises:
        ParseError: If the chapter list cannot be located
    """
    keys = _required_keys(target)

    elements = dot_get(document, keys.chapters)
    if elements is MISSING:
        raise ParseError(f"No chapter list at {keys.chapters!r} for {target.name}")
    if not isinstance(elements, list):
        raise ParseError(f"Value at {keys.chapters!r} for {target.name} is not an array")

    date_format = resolve_json_date_format(keys.date_format)

    chapters: list[Chapter] = []
    skipped = 0
    for element in elements:
        if _should_skip(element, keys.skip):
            continue
        try:
            chapters.append(_build_chapter(target, keys, element, date_format))
        except ParseError as e:
            skipped += 1
            logger.debug("Skipping chapter element in %s: %s", target.name, e)

    if skipped:
        logger.info("Skipped %d unreadable chapter elements in %s", skipped, target.name)

    return finalize(target, chapters)


def parse_json(target: Target, source: str) -> list[Chapter]:
    """Parse a JSON document into chapters (oldest first)."""
    try:
        document = json.loads(source)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON for {target.name}: {e}") from e
    return parse_json_document(target, document)
