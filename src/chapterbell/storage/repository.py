"""
PostgreSQL implementation of the chapter store.

Tables:
    - chapters: one row per discovered chapter, unique on (manga, title, number)
    - destinations: one row per delivery target, created when a feed channel
      is first set

Every operation is a single SQL statement (or a read followed by one), so
concurrent workers sharing the pool cannot interleave partial updates.
"""

import logging
from datetime import datetime
from typing import Any

from chapterbell.schemas import Chapter, Destination, utc_now
from chapterbell.storage.base import ChapterStore, DestinationNotFoundError
from chapterbell.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS chapters (
    id           BIGSERIAL PRIMARY KEY,
    manga        TEXT NOT NULL,
    title        TEXT NOT NULL,
    number       TEXT NOT NULL,
    url          TEXT NOT NULL,
    date         TIMESTAMPTZ NOT NULL,
    announced_at TIMESTAMPTZ NOT NULL,
    logged_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (manga, title, number)
);

CREATE INDEX IF NOT EXISTS idx_chapters_announced_at
    ON chapters(announced_at);
CREATE INDEX IF NOT EXISTS idx_chapters_date
    ON chapters(date);

CREATE TABLE IF NOT EXISTS destinations (
    identifier        TEXT PRIMARY KEY,
    feed_channel      TEXT,
    last_announced_at TIMESTAMPTZ,
    is_announcing     BOOLEAN NOT NULL DEFAULT FALSE,
    created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_INSERT_CHAPTERS_SQL = """
WITH inserted AS (
    INSERT INTO chapters (manga, title, number, url, date, announced_at)
    SELECT * FROM unnest(
        $1::text[], $2::text[], $3::text[], $4::text[],
        $5::timestamptz[], $6::timestamptz[]
    )
    ON CONFLICT (manga, title, number) DO NOTHING
    RETURNING 1
)
SELECT COUNT(*) FROM inserted
"""

_UNANNOUNCED_SQL = """
SELECT c.manga, c.number, c.title, c.date, c.url, c.announced_at, c.logged_at
FROM chapters c
JOIN destinations d ON d.identifier = $1
WHERE (d.last_announced_at IS NULL OR c.announced_at > d.last_announced_at)
  AND c.announced_at <= $2
ORDER BY c.date ASC, c.id ASC
"""

_DESTINATION_COLUMNS = "identifier, feed_channel, last_announced_at, is_announcing"

_UPSERT_FEED_CHANNEL_SQL = """
INSERT INTO destinations (identifier, feed_channel)
VALUES ($1, $2)
ON CONFLICT (identifier) DO UPDATE SET
    feed_channel = EXCLUDED.feed_channel,
    updated_at = NOW()
"""

_ACQUIRE_FLAG_SQL = """
UPDATE destinations
SET is_announcing = TRUE, updated_at = NOW()
WHERE identifier = $1 AND is_announcing = FALSE
RETURNING identifier
"""


def _record_to_chapter(record: Any) -> Chapter:
    """Convert an asyncpg Record to a Chapter."""
    return Chapter(
        manga=record["manga"],
        number=record["number"],
        title=record["title"],
        date=record["date"],
        url=record["url"],
        announced_at=record["announced_at"],
        logged_at=record["logged_at"],
    )


def _record_to_destination(record: Any) -> Destination:
    """Convert an asyncpg Record to a Destination."""
    return Destination(
        identifier=record["identifier"],
        feed_channel=record["feed_channel"],
        last_announced_at=record["last_announced_at"],
        is_announcing=record["is_announcing"],
    )


class PostgresStore(ChapterStore):
    """ChapterStore backed by PostgreSQL through asyncpg."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def initialize(self) -> None:
        """Create the chapters and destinations tables (idempotent)."""
        await self._db.execute(_CREATE_TABLES_SQL)
        logger.info("Chapter store tables ensured")

    async def close(self) -> None:
        await self._db.close()

    async def save_chapters(self, chapters: list[Chapter]) -> int:
        if not chapters:
            return 0

        inserted = await self._db.fetchval(
            _INSERT_CHAPTERS_SQL,
            [c.manga for c in chapters],
            [c.title for c in chapters],
            [c.number for c in chapters],
            [c.url for c in chapters],
            [c.date for c in chapters],
            [c.announced_at for c in chapters],
        )
        inserted = int(inserted or 0)
        if inserted:
            logger.info("Saved %d new chapters for %s", inserted, chapters[0].manga)
        return inserted

    async def get_unannounced_chapters(
        self,
        destination_id: str,
        now: datetime | None = None,
    ) -> list[Chapter]:
        # Raises for unknown destinations instead of returning an empty list.
        await self.get_destination(destination_id)
        records = await self._db.fetch(_UNANNOUNCED_SQL, destination_id, now or utc_now())
        return [_record_to_chapter(r) for r in records]

    async def get_destinations(self) -> list[Destination]:
        records = await self._db.fetch(
            f"SELECT {_DESTINATION_COLUMNS} FROM destinations ORDER BY identifier"
        )
        return [_record_to_destination(r) for r in records]

    async def get_destination(self, identifier: str) -> Destination:
        record = await self._db.fetchrow(
            f"SELECT {_DESTINATION_COLUMNS} FROM destinations WHERE identifier = $1",
            identifier,
        )
        if record is None:
            raise DestinationNotFoundError(identifier)
        return _record_to_destination(record)

    async def get_feed_channel(self, identifier: str) -> str:
        channel = await self._db.fetchval(
            "SELECT feed_channel FROM destinations WHERE identifier = $1",
            identifier,
        )
        if channel is None:
            raise DestinationNotFoundError(identifier)
        return channel

    async def set_feed_channel(self, identifier: str, channel: str) -> None:
        await self._db.execute(_UPSERT_FEED_CHANNEL_SQL, identifier, channel)

    async def get_last_announced_time(self, identifier: str) -> datetime | None:
        return (await self.get_destination(identifier)).last_announced_at

    async def _update_destination(self, identifier: str, column: str, value: Any) -> None:
        updated = await self._db.fetchval(
            f"UPDATE destinations SET {column} = $2, updated_at = NOW() "
            "WHERE identifier = $1 RETURNING identifier",
            identifier,
            value,
        )
        if updated is None:
            raise DestinationNotFoundError(identifier)

    async def set_last_announced_time(self, identifier: str, time: datetime) -> None:
        await self._update_destination(identifier, "last_announced_at", time)

    async def get_announcing_flag(self, identifier: str) -> bool:
        return (await self.get_destination(identifier)).is_announcing

    async def set_announcing_flag(self, identifier: str, value: bool) -> None:
        await self._update_destination(identifier, "is_announcing", value)

    async def acquire_announcing_flag(self, identifier: str) -> bool:
        acquired = await self._db.fetchval(_ACQUIRE_FLAG_SQL, identifier)
        if acquired is not None:
            return True
        # Distinguish "already set" from "no such destination".
        await self.get_destination(identifier)
        return False
