"""
Core data models shared by parsers, workers and stores.

A Chapter is produced by a parser from one source document, persisted once
and never updated afterwards. Whether a chapter has been announced to a
destination is not stored on the chapter: it is derived by comparing
``announced_at`` with the destination's ``last_announced_at`` watermark.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Chapter(BaseModel):
    """
    One discovered unit of content.

    Persistence uniqueness is the triple (manga, title, number); ``number``
    is a dedup/ordering key and not necessarily a real chapter number.
    """

    model_config = ConfigDict(frozen=True)

    manga: str = Field(..., description="Display name of the source target")
    number: str = Field(..., description="Dedup/ordering key from the source")
    title: str
    date: datetime = Field(..., description="Nominal publish time of the content")
    url: str = Field(..., description="Absolute URL of the chapter")
    announced_at: datetime = Field(
        ...,
        description="Earliest time the chapter may be announced (date + delay)",
    )
    logged_at: datetime | None = Field(
        default=None,
        description="Set by the store when the chapter is first persisted",
    )

    @field_validator("date", "announced_at", "logged_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Treat naive datetimes as UTC and normalize aware ones to UTC."""
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.manga, self.title, self.number)

    @classmethod
    def build(
        cls,
        manga: str,
        number: str,
        title: str,
        date: datetime,
        url: str,
        delay_days: int = 0,
    ) -> "Chapter":
        """Create a chapter whose ``announced_at`` is ``date`` plus the delay."""
        return cls(
            manga=manga,
            number=number,
            title=title,
            date=date,
            url=url,
            announced_at=date + timedelta(days=delay_days),
        )


@dataclass
class Destination:
    """A delivery target (e.g. one chat server) with its own watermark and lock flag.

    ``feed_channel`` stays None until a feed channel is configured;
    ``last_announced_at`` stays None until the first successful announcement.
    """

    identifier: str
    feed_channel: str | None = None
    last_announced_at: datetime | None = None
    is_announcing: bool = False

    @property
    def is_configured(self) -> bool:
        return self.feed_channel is not None
