"""In-process store for one-off runs and tests.

State lives in dictionaries guarded by a single asyncio.Lock, so every
operation is atomic with respect to other tasks on the same event loop.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime

from chapterbell.schemas import Chapter, Destination, utc_now
from chapterbell.storage.base import ChapterStore, DestinationNotFoundError

logger = logging.getLogger(__name__)


class InMemoryStore(ChapterStore):
    """ChapterStore backed by process memory. Nothing survives a restart."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._chapters: dict[tuple[str, str, str], Chapter] = {}
        self._destinations: dict[str, Destination] = {}

    async def initialize(self) -> None:
        logger.info("In-memory store initialized")

    def _destination(self, identifier: str) -> Destination:
        destination = self._destinations.get(identifier)
        if destination is None:
            raise DestinationNotFoundError(identifier)
        return destination

    async def save_chapters(self, chapters: list[Chapter]) -> int:
        async with self._lock:
            inserted = 0
            for chapter in chapters:
                if chapter.dedup_key in self._chapters:
                    continue
                logger.info("Saving new chapter... [%s]: %s", chapter.manga, chapter.title)
                self._chapters[chapter.dedup_key] = chapter.model_copy(
                    update={"logged_at": utc_now()}
                )
                inserted += 1
            return inserted

    async def get_unannounced_chapters(
        self,
        destination_id: str,
        now: datetime | None = None,
    ) -> list[Chapter]:
        now = now or utc_now()
        async with self._lock:
            watermark = self._destination(destination_id).last_announced_at
            due = [
                chapter
                for chapter in self._chapters.values()
                if (watermark is None or chapter.announced_at > watermark)
                and chapter.announced_at <= now
            ]
        # dict preserves insertion order, so equal dates keep logging order
        return sorted(due, key=lambda c: c.date)

    async def get_destinations(self) -> list[Destination]:
        async with self._lock:
            return [
                replace(destination)
                for destination in self._destinations.values()
            ]

    async def get_destination(self, identifier: str) -> Destination:
        async with self._lock:
            return replace(self._destination(identifier))

    async def get_feed_channel(self, identifier: str) -> str:
        async with self._lock:
            channel = self._destination(identifier).feed_channel
            if channel is None:
                raise DestinationNotFoundError(identifier)
            return channel

    async def set_feed_channel(self, identifier: str, channel: str) -> None:
        async with self._lock:
            destination = self._destinations.setdefault(
                identifier, Destination(identifier=identifier)
            )
            destination.feed_channel = channel

    async def get_last_announced_time(self, identifier: str) -> datetime | None:
        async with self._lock:
            return self._destination(identifier).last_announced_at

    async def set_last_announced_time(self, identifier: str, time: datetime) -> None:
        async with self._lock:
            self._destination(identifier).last_announced_at = time

    async def get_announcing_flag(self, identifier: str) -> bool:
        async with self._lock:
            return self._destination(identifier).is_announcing

    async def set_announcing_flag(self, identifier: str, value: bool) -> None:
        async with self._lock:
            self._destination(identifier).is_announcing = value

    async def acquire_announcing_flag(self, identifier: str) -> bool:
        async with self._lock:
            destination = self._destination(identifier)
            if destination.is_announcing:
                return False
            destination.is_announcing = True
            return True
