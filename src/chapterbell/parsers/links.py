"""Link resolution for possibly-relative chapter URLs."""

from urllib.parse import urlsplit

from chapterbell.config.targets import Target


def make_link(base_url: str, link: str) -> str:
    """
    Prepend the base URL to a relative link; absolute links pass through.

    The base URL is joined by plain concatenation, so a base of
    ``https://x.com/viewer/`` and a link of ``123`` give
    ``https://x.com/viewer/123``.

    Args:
        base_url: The target's base URL
        link: Link as found in the document

    Returns:
        Absolute URL
    """
    parts = urlsplit(link)
    if parts.scheme and parts.netloc:
        return link
    return base_url + link


def resolve_link(target: Target, link: str) -> str:
    """Resolve a link against the target's base URL, if it has one."""
    if target.base_url is None:
        return link
    return make_link(target.base_url, link)
