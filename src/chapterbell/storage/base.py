"""
Store interface consumed by the workers and the dispatcher.

Implementations must serialize concurrent calls so that interleaved
operations from different worker tasks cannot corrupt state. Single
operations are atomic; there are no cross-operation transactions, which is
why flag acquisition has its own compare-and-set operation.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from chapterbell.schemas import Chapter, Destination


class StoreError(Exception):
    """Base exception for store failures."""


class DestinationNotFoundError(StoreError):
    """Raised when a destination does not exist or has no feed channel."""

    def __init__(self, identifier: str, message: str | None = None):
        super().__init__(message or f"Destination {identifier} is not configured")
        self.identifier = identifier


class ChapterStore(ABC):
    """Persistence for chapters and destinations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/structures if they do not exist (idempotent)."""

    async def close(self) -> None:
        """Release resources held by the store."""

    @abstractmethod
    async def save_chapters(self, chapters: list[Chapter]) -> int:
        """
        Persist chapters, skipping any whose (manga, title, number) exists.

        Returns:
            Number of chapters actually inserted
        """

    @abstractmethod
    async def get_unannounced_chapters(
        self,
        destination_id: str,
        now: datetime | None = None,
    ) -> list[Chapter]:
        """
        Chapters due for a destination, ordered by date ascending.

        Due means ``last_announced_at < announced_at <= now``; with no
        watermark yet, every chapter with ``announced_at <= now`` is due.
        """

    @abstractmethod
    async def get_destinations(self) -> list[Destination]:
        """All known destinations."""

    @abstractmethod
    async def get_destination(self, identifier: str) -> Destination:
        """Raises DestinationNotFoundError for an unknown destination."""

    @abstractmethod
    async def get_feed_channel(self, identifier: str) -> str:
        """Raises DestinationNotFoundError if no feed channel is configured."""

    @abstractmethod
    async def set_feed_channel(self, identifier: str, channel: str) -> None:
        """Set the feed channel, creating the destination on first write."""

    @abstractmethod
    async def get_last_announced_time(self, identifier: str) -> datetime | None: ...

    @abstractmethod
    async def set_last_announced_time(self, identifier: str, time: datetime) -> None: ...

    @abstractmethod
    async def get_announcing_flag(self, identifier: str) -> bool: ...

    @abstractmethod
    async def set_announcing_flag(self, identifier: str, value: bool) -> None: ...

    @abstractmethod
    async def acquire_announcing_flag(self, identifier: str) -> bool:
        """
        Atomically set the announcing flag if it is clear.

        Returns:
            True if this call set the flag, False if it was already set
        """
