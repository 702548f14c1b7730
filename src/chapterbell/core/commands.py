"""
Command surface exposed to an external command layer (chat commands, CLI).

Trigger commands only post events; whether they start anything is decided
by the dispatcher loop.
"""

import structlog

from chapterbell.core.dispatcher import Dispatcher
from chapterbell.core.events import StartAnnounceAll, StartAnnounceOne, StartFetch
from chapterbell.storage.base import ChapterStore

logger = structlog.get_logger(__name__)


class CommandSurface:
    """Named triggers: fetch-now, announce-now, announce-now-for, set-as-feed-channel."""

    def __init__(self, dispatcher: Dispatcher, store: ChapterStore):
        self._dispatcher = dispatcher
        self._store = store

    def fetch_now(self) -> None:
        """Fetch every target without chaining an announce."""
        logger.info("Command received", command="fetch-now")
        self._dispatcher.post(StartFetch(trigger_announce=False))

    def announce_now(self) -> None:
        logger.info("Command received", command="announce-now")
        self._dispatcher.post(StartAnnounceAll())

    def announce_now_for(self, destination_id: str) -> None:
        logger.info("Command received", command="announce-now-for", destination=destination_id)
        self._dispatcher.post(StartAnnounceOne(destination_id))

    async def set_as_feed_channel(self, destination_id: str, channel_id: str) -> None:
        """Make ``channel_id`` the destination's feed channel, creating the destination if new."""
        await self._store.set_feed_channel(destination_id, channel_id)
        logger.info(
            "Feed channel set",
            command="set-as-feed-channel",
            destination=destination_id,
            channel=channel_id,
        )
