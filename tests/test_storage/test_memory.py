"""Tests for the in-process chapter store."""

from datetime import datetime, timedelta, timezone

import pytest

from chapterbell.storage.base import DestinationNotFoundError
from tests.conftest import make_chapter


class TestSaveChapters:
    """Tests for save_chapters()."""

    @pytest.mark.asyncio
    async def test_duplicate_triple_stored_once(self, store):
        chapter = make_chapter("00023", 16)

        first = await store.save_chapters([chapter])
        second = await store.save_chapters([chapter])

        assert (first, second) == (1, 0)

    @pytest.mark.asyncio
    async def test_same_number_different_title_is_new(self, store):
        chapter = make_chapter("00023", 16)
        retitled = chapter.model_copy(update={"title": "Part 23 (revised)"})

        assert await store.save_chapters([chapter, retitled]) == 2


class TestUnannouncedChapters:
    """Tests for get_unannounced_chapters()."""

    @pytest.mark.asyncio
    async def test_window_between_watermark_and_now(self, store, now):
        await store.set_feed_channel("guild", "feed")
        await store.save_chapters(
            [
                make_chapter("old", 1),
                make_chapter("b", 20),
                make_chapter("a", 10),
                make_chapter("delayed", 28, delay_days=7),
            ]
        )
        await store.set_last_announced_time("guild", datetime(2022, 9, 5, tzinfo=timezone.utc))

        due = await store.get_unannounced_chapters("guild", now=now)

        assert [c.number for c in due] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_no_watermark_returns_everything_due(self, store, now):
        await store.set_feed_channel("guild", "feed")
        await store.save_chapters([make_chapter("a", 10), make_chapter("b", 11)])

        due = await store.get_unannounced_chapters("guild", now=now)

        assert [c.number for c in due] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_chapter_at_watermark_excluded(self, store, now):
        chapter = make_chapter("a", 10)
        await store.set_feed_channel("guild", "feed")
        await store.save_chapters([chapter])
        await store.set_last_announced_time("guild", chapter.announced_at)

        assert await store.get_unannounced_chapters("guild", now=now) == []

    @pytest.mark.asyncio
    async def test_unknown_destination_raises(self, store):
        with pytest.raises(DestinationNotFoundError):
            await store.get_unannounced_chapters("missing")


class TestDestinations:
    """Tests for destination state."""

    @pytest.mark.asyncio
    async def test_set_feed_channel_creates_destination(self, store):
        await store.set_feed_channel("guild", "feed")
        await store.set_feed_channel("guild", "feed-2")

        destination = await store.get_destination("guild")

        assert destination.feed_channel == "feed-2"
        assert destination.last_announced_at is None
        assert destination.is_announcing is False
        assert await store.get_feed_channel("guild") == "feed-2"

    @pytest.mark.asyncio
    async def test_returned_destination_is_a_copy(self, store):
        await store.set_feed_channel("guild", "feed")

        destination = await store.get_destination("guild")
        destination.is_announcing = True

        assert await store.get_announcing_flag("guild") is False

    @pytest.mark.asyncio
    async def test_unknown_destination_raises(self, store):
        with pytest.raises(DestinationNotFoundError):
            await store.get_feed_channel("missing")
        with pytest.raises(DestinationNotFoundError):
            await store.set_last_announced_time("missing", datetime.now(timezone.utc))

    @pytest.mark.asyncio
    async def test_watermark_round_trip(self, store, now):
        await store.set_feed_channel("guild", "feed")

        await store.set_last_announced_time("guild", now - timedelta(days=1))

        assert await store.get_last_announced_time("guild") == now - timedelta(days=1)

    @pytest.mark.asyncio
    async def test_acquire_flag_is_exclusive(self, store):
        await store.set_feed_channel("guild", "feed")

        assert await store.acquire_announcing_flag("guild") is True
        assert await store.acquire_announcing_flag("guild") is False

        await store.set_announcing_flag("guild", False)
        assert await store.acquire_announcing_flag("guild") is True
