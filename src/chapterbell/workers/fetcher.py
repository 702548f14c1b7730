"""
Fetch worker: download one source, parse it, persist the result.

A fetch run never raises to its caller. Transport and parse failures are
retried together up to the attempt budget; save failures get their own
budget. Exhausting either budget is logged and the source is skipped until
the next run.
"""

import asyncio
import time

import structlog

from chapterbell.config.targets import Target
from chapterbell.ingestion.http_client import HTTPClient, HTTPClientError
from chapterbell.observability.metrics import get_metrics
from chapterbell.parsers import ParseError, parse
from chapterbell.schemas import Chapter
from chapterbell.storage.base import ChapterStore

logger = structlog.get_logger(__name__)

DEFAULT_ATTEMPTS = 5


async def fetch_chapters(
    client: HTTPClient,
    target: Target,
    attempts: int = DEFAULT_ATTEMPTS,
) -> list[Chapter] | None:
    """
    Fetch and parse a target, retrying the pair on failure.

    Returns:
        Parsed chapters, or None if every attempt failed
    """
    log = logger.bind(target=target.name)
    metrics = get_metrics()

    for attempt in range(1, attempts + 1):
        start_time = time.monotonic()
        try:
            document = await client.fetch_body(target.source, headers=target.request_headers)
            chapters = parse(target, document)
        except (HTTPClientError, ParseError) as e:
            metrics.record_fetch_error(target.name, type(e).__name__)
            log.warning(
                "Fetch attempt failed",
                attempt=attempt,
                attempts=attempts,
                error=str(e),
            )
            continue

        elapsed = time.monotonic() - start_time
        metrics.record_fetch(target.name, chapters=len(chapters), latency=elapsed)
        log.debug(
            "Fetched source",
            attempt=attempt,
            chapters=len(chapters),
            elapsed_seconds=round(elapsed, 2),
        )
        return chapters

    log.error("Giving up on source", attempts=attempts)
    return None


async def save_chapters(
    store: ChapterStore,
    target: Target,
    chapters: list[Chapter],
    attempts: int = DEFAULT_ATTEMPTS,
) -> bool:
    """Persist chapters, retrying on store failures. Returns True on success."""
    log = logger.bind(target=target.name)

    for attempt in range(1, attempts + 1):
        try:
            inserted = await store.save_chapters(chapters)
        except Exception as e:
            get_metrics().record_fetch_error(target.name, type(e).__name__)
            log.warning(
                "Save attempt failed",
                attempt=attempt,
                attempts=attempts,
                error=str(e),
            )
            continue

        log.info("Source saved", chapters=len(chapters), new=inserted)
        return True

    log.error("Could not save chapters", attempts=attempts, chapters=len(chapters))
    return False


async def fetch_target(
    store: ChapterStore,
    target: Target,
    client: HTTPClient,
    attempts: int = DEFAULT_ATTEMPTS,
) -> None:
    """Run the fetch worker for one target. Never raises (except on cancellation)."""
    try:
        chapters = await fetch_chapters(client, target, attempts)
        if chapters:
            await save_chapters(store, target, chapters, attempts)
    except Exception as e:
        logger.error("Fetch worker failed", target=target.name, error=str(e))


async def dispatch_fetch(
    store: ChapterStore,
    targets: list[Target],
    attempts: int = DEFAULT_ATTEMPTS,
    timeout: float = 30.0,
    user_agent: str | None = None,
) -> None:
    """
    Fetch every target concurrently and return once all of them finished.

    Targets share one HTTP client; the order in which they complete is
    unspecified.
    """
    logger.info("Fetching sources", targets=len(targets))
    start_time = time.monotonic()

    async with HTTPClient(timeout=timeout, user_agent=user_agent) as client:
        await asyncio.gather(
            *(fetch_target(store, target, client, attempts) for target in targets)
        )

    logger.info(
        "Fetch batch completed",
        targets=len(targets),
        elapsed_seconds=round(time.monotonic() - start_time, 2),
    )
