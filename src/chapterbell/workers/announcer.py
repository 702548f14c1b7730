"""
Announce worker: deliver a destination's due chapters in date order.

The per-destination ``is_announcing`` flag is taken with a single
compare-and-set store call, so two overlapping runs for one destination
cannot both proceed. The flag is always released when the run ends.

Watermark rules after a run:
- nothing sent: unchanged
- everything sent: advanced to ``now``
- a send failed part way: advanced to the latest ``announced_at`` among
  sent chapters that is still earlier than every unsent chapter, so the
  next run resumes at the failure point
"""

import asyncio
from collections.abc import Callable
from datetime import datetime

import structlog

from chapterbell.delivery.channels import DeliveryChannel, DeliveryError, DeliveryHandle
from chapterbell.observability.metrics import get_metrics
from chapterbell.schemas import Chapter, utc_now
from chapterbell.storage.base import ChapterStore

logger = structlog.get_logger(__name__)


def partial_watermark(sent: list[Chapter], unsent: list[Chapter]) -> datetime | None:
    """
    Watermark that covers ``sent`` without skipping anything in ``unsent``.

    Returns:
        The new watermark, or None if it cannot advance
    """
    if not unsent:
        return max((c.announced_at for c in sent), default=None)
    earliest_unsent = min(c.announced_at for c in unsent)
    return max(
        (c.announced_at for c in sent if c.announced_at < earliest_unsent),
        default=None,
    )


async def announce_for_destination(
    store: ChapterStore,
    channel: DeliveryChannel,
    handle: DeliveryHandle,
    destination_id: str,
    clock: Callable[[], datetime] = utc_now,
) -> int:
    """
    Announce every due chapter to one destination.

    Delivery failures end the run early and are logged, not raised. Any
    other error propagates once the watermark covers what was delivered.

    Returns:
        Number of chapters delivered
    """
    log = logger.bind(destination=destination_id)
    metrics = get_metrics()

    if not await store.acquire_announcing_flag(destination_id):
        log.info("Destination already announcing, skipping")
        return 0

    try:
        destination = await store.get_destination(destination_id)
        if not destination.is_configured:
            log.info("Destination has no feed channel, skipping")
            return 0

        now = clock()
        chapters = await store.get_unannounced_chapters(destination_id, now=now)
        if not chapters:
            log.debug("Nothing to announce")
            return 0

        sent: list[Chapter] = []
        complete = False
        try:
            for chapter in chapters:
                try:
                    await channel.send(handle, destination, chapter)
                except DeliveryError as e:
                    metrics.record_announce_error(type(e).__name__)
                    log.error(
                        "Failed to send chapter",
                        manga=chapter.manga,
                        number=chapter.number,
                        error=str(e),
                    )
                    break
                sent.append(chapter)
            else:
                complete = True
        finally:
            # Also reached on unexpected errors and on cancellation
            if sent:
                metrics.record_announced(len(sent))
                watermark = now if complete else partial_watermark(sent, chapters[len(sent):])
                if watermark is not None:
                    await store.set_last_announced_time(destination_id, watermark)

        log.info(
            "Announce run finished",
            sent=len(sent),
            due=len(chapters),
            complete=complete,
        )
        return len(sent)
    finally:
        await store.set_announcing_flag(destination_id, False)


async def dispatch_announce(
    store: ChapterStore,
    channel: DeliveryChannel,
    handle: DeliveryHandle,
    clock: Callable[[], datetime] = utc_now,
) -> dict[str, int]:
    """
    Announce to every known destination concurrently.

    A failing destination does not affect the others; all of them are
    awaited before returning.

    Returns:
        Destination id -> chapters delivered (failed runs are omitted)
    """
    destinations = await store.get_destinations()
    logger.info("Announcing to destinations", destinations=len(destinations))

    results = await asyncio.gather(
        *(
            announce_for_destination(store, channel, handle, d.identifier, clock)
            for d in destinations
        ),
        return_exceptions=True,
    )

    delivered: dict[str, int] = {}
    for destination, result in zip(destinations, results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            get_metrics().record_announce_error(type(result).__name__)
            logger.error(
                "Announce worker failed",
                destination=destination.identifier,
                error=str(result),
            )
            continue
        delivered[destination.identifier] = result

    return delivered
