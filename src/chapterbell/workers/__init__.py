"""Fetch and announce workers spawned by the dispatcher."""

from chapterbell.workers.announcer import (
    announce_for_destination,
    dispatch_announce,
    partial_watermark,
)
from chapterbell.workers.fetcher import dispatch_fetch, fetch_target

__all__ = [
    "announce_for_destination",
    "dispatch_announce",
    "dispatch_fetch",
    "fetch_target",
    "partial_watermark",
]
