"""Tests for one-shot mode and the end-to-end fetch/announce flow."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from chapterbell.core.dispatcher import Dispatcher, DispatchError
from chapterbell.workers.announcer import dispatch_announce
from chapterbell.workers.fetcher import dispatch_fetch
from tests.conftest import RSS_FEED

FEED_URL = "https://comic-rss.com/test.rss"


class TestEndToEnd:
    """Fetch then announce through the worker entry points."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_feed_chapters_announced_in_order(self, store, channel, handle, rss_target, now):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_FEED))
        await store.set_feed_channel("guild", "feed")

        await dispatch_fetch(store, [rss_target])
        delivered = await dispatch_announce(store, channel, handle, clock=lambda: now)

        assert delivered == {"guild": 2}
        assert channel.sent == [("guild", "00023"), ("guild", "00024")]
        assert await store.get_last_announced_time("guild") == now


class TestRunOnce:
    """Tests for Dispatcher.run_once()."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_fetch_announce_disconnect(self, store, channel, rss_target, test_settings):
        respx.get(FEED_URL).mock(return_value=httpx.Response(200, text=RSS_FEED))
        await store.set_feed_channel("guild", "feed")
        now = datetime(2022, 10, 1, tzinfo=timezone.utc)
        dispatcher = Dispatcher(store, [rss_target], channel, "token", test_settings, clock=lambda: now)

        delivered = await dispatcher.run_once()

        assert delivered == {"guild": 2}
        assert channel.sent == [("guild", "00023"), ("guild", "00024")]
        assert channel.connects == 1
        assert channel.disconnects == 1
        assert dispatcher.handle is None

    @pytest.mark.asyncio
    async def test_requires_credentials(self, store, channel, test_settings):
        dispatcher = Dispatcher(store, [], channel, None, test_settings)

        with pytest.raises(DispatchError, match="credentials"):
            await dispatcher.run_once()

    @pytest.mark.asyncio
    async def test_connect_failure_aborts(self, store, channel, test_settings):
        dispatcher = Dispatcher(store, [], channel, "bad-token", test_settings)

        with pytest.raises(DispatchError, match="connect"):
            await dispatcher.run_once()

        assert channel.disconnects == 0

    @pytest.mark.asyncio
    async def test_connection_exit_during_fetch_aborts(self, store, channel, test_settings, monkeypatch):
        async def slow_fetch(*args, **kwargs):
            await asyncio.sleep(60)

        monkeypatch.setattr("chapterbell.core.dispatcher.dispatch_fetch", slow_fetch)
        channel.connection_lost.set()
        dispatcher = Dispatcher(store, [], channel, "token", test_settings)

        with pytest.raises(DispatchError, match="exited during fetch"):
            await dispatcher.run_once()

        assert channel.closes == 1
        assert channel.disconnects == 0

    @pytest.mark.asyncio
    async def test_worker_failure_aborts_and_disconnects(self, store, channel, test_settings, monkeypatch):
        monkeypatch.setattr(
            "chapterbell.core.dispatcher.dispatch_announce",
            AsyncMock(side_effect=RuntimeError("store down")),
        )
        dispatcher = Dispatcher(store, [], channel, "token", test_settings)

        with pytest.raises(DispatchError, match="announce failed"):
            await dispatcher.run_once()

        assert channel.disconnects == 1
