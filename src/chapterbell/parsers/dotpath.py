"""Dot-path lookups into decoded JSON documents.

``"comic.episodes"`` addresses ``doc["comic"]["episodes"]``; numeric segments
index into arrays, so ``"props.chapters.0.items"`` walks through the first
element of ``chapters``.
"""

from typing import Any


class _Missing:
    """Marker for a dot-path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def dot_get(document: Any, path: str) -> Any:
    """
    Resolve a dot-path against a document.

    Returns:
        The addressed value, or ``MISSING`` if any segment does not exist.
        A JSON ``null`` at the path is returned as None, not ``MISSING``.
    """
    if path == "":
        return document

    current = document
    for segment in path.split("."):
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, list):
            try:
                index = int(segment)
            except ValueError:
                return MISSING
            if not 0 <= index < len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING

    return current


def json_equal(left: Any, right: Any) -> bool:
    """Compare two JSON values without Python's ``True == 1`` coercion."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(
            json_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(
            json_equal(left[k], right[k]) for k in left
        )
    return left == right
