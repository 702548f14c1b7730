"""Periodic fetch trigger."""

import asyncio

import structlog

from chapterbell.core.dispatcher import Dispatcher
from chapterbell.core.events import StartFetch

logger = structlog.get_logger(__name__)


class Scheduler:
    """
    Posts ``StartFetch(trigger_announce=True)`` every ``interval_seconds``.

    The first tick comes one interval after start; the dispatcher already
    fetches once on startup.
    """

    def __init__(self, dispatcher: Dispatcher, interval_seconds: float):
        self._dispatcher = dispatcher
        self._interval = interval_seconds
        self._ticks = 0

    async def run(self) -> None:
        logger.info("Scheduler started", interval_seconds=self._interval)
        while True:
            await asyncio.sleep(self._interval)
            self._ticks += 1
            logger.info("Scheduled fetch", tick=self._ticks)
            self._dispatcher.post(StartFetch(trigger_announce=True))
