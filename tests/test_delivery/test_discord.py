"""Tests for the Discord delivery channel."""

import asyncio
import json

import httpx
import pytest
import respx

from chapterbell.delivery.channels import DeliveryError, DeliveryHandle, DiscordChannel
from chapterbell.schemas import Destination
from tests.conftest import make_chapter

API = "https://discord.test/api"


@pytest.fixture
def discord():
    return DiscordChannel(api_base=API, heartbeat_seconds=0.0)


def _mock_login(app_status: int = 200):
    respx.get(f"{API}/users/@me").mock(
        return_value=httpx.Response(200, json={"id": "1", "username": "chapterbell"})
    )
    respx.get(f"{API}/oauth2/applications/@me").mock(
        return_value=httpx.Response(app_status, json={"id": 42})
    )


class TestConnect:
    """Tests for DiscordChannel.connect()."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_resolves_application(self, discord):
        _mock_login()

        handle = await discord.connect("secret")

        assert handle.application_id == "42"
        assert handle.account_name == "chapterbell"
        assert respx.calls.last.request.headers["Authorization"] == "Bot secret"
        await discord.close(handle)

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_token(self, discord):
        respx.get(f"{API}/users/@me").mock(return_value=httpx.Response(401))

        with pytest.raises(DeliveryError) as exc_info:
            await discord.connect("wrong")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @respx.mock
    async def test_unreachable(self, discord):
        respx.get(f"{API}/users/@me").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(DeliveryError):
            await discord.connect("secret")

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_application_is_not_fatal(self, discord):
        _mock_login(app_status=403)

        handle = await discord.connect("secret")

        assert handle.application_id is None
        await discord.close(handle)


class TestSend:
    """Tests for DiscordChannel.send()."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_posts_link_embed(self, discord):
        route = respx.post(f"{API}/channels/feed-1/messages").mock(
            return_value=httpx.Response(200, json={"id": "m1"})
        )
        chapter = make_chapter("00023", 16)

        async with httpx.AsyncClient(base_url=API) as client:
            await discord.send(
                DeliveryHandle(client=client),
                Destination(identifier="guild", feed_channel="feed-1"),
                chapter,
            )

        (embed,) = json.loads(route.calls.last.request.content)["embeds"]
        assert embed["title"] == "[Test Manga] Chapter 00023"
        assert embed["url"] == "https://comic-rss.com/episode/00023"
        assert embed["timestamp"] == "2022-09-16T03:00:00+00:00"

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected_message_raises(self, discord):
        respx.post(f"{API}/channels/feed-1/messages").mock(return_value=httpx.Response(403))

        async with httpx.AsyncClient(base_url=API) as client:
            with pytest.raises(DeliveryError) as exc_info:
                await discord.send(
                    DeliveryHandle(client=client),
                    Destination(identifier="guild", feed_channel="feed-1"),
                    make_chapter("00023", 16),
                )

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_destination_without_feed_channel(self, discord, handle):
        with pytest.raises(DeliveryError):
            await discord.send(handle, Destination(identifier="guild"), make_chapter("1", 1))


    @pytest.mark.asyncio
    async def test_closed_connection_raises_delivery_error(self, discord):
        client = httpx.AsyncClient(base_url=API)
        await client.aclose()

        with pytest.raises(DeliveryError):
            await discord.send(
                DeliveryHandle(client=client),
                Destination(identifier="guild", feed_channel="feed-1"),
                make_chapter("00023", 16),
            )


class TestConnectionLifecycle:
    """Tests for run(), serve() and disconnect()."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_run_returns_when_heartbeat_fails(self, discord):
        respx.get(f"{API}/users/@me").mock(
            side_effect=[
                httpx.Response(200, json={"username": "chapterbell"}),
                httpx.Response(200, json={"username": "chapterbell"}),
                httpx.Response(502),
            ]
        )
        respx.get(f"{API}/oauth2/applications/@me").mock(
            return_value=httpx.Response(200, json={"id": 42})
        )
        ready: list[DeliveryHandle] = []

        await discord.run("secret", on_ready=ready.append)

        assert len(ready) == 1
        assert ready[0].client.is_closed

    @pytest.mark.asyncio
    @respx.mock
    async def test_disconnect_removes_commands(self, discord):
        _mock_login()
        respx.get(f"{API}/applications/42/commands").mock(
            return_value=httpx.Response(
                200,
                json=[{"id": "c1", "name": "fetch-now"}, {"id": "c2", "name": "announce-now"}],
            )
        )
        delete_c1 = respx.delete(f"{API}/applications/42/commands/c1").mock(
            return_value=httpx.Response(204)
        )
        delete_c2 = respx.delete(f"{API}/applications/42/commands/c2").mock(
            return_value=httpx.Response(500)
        )

        handle = await discord.connect("secret")
        await discord.disconnect(handle)

        assert delete_c1.called
        assert delete_c2.called
        assert handle.client.is_closed

    @pytest.mark.asyncio
    @respx.mock
    async def test_run_closes_client_when_serve_crashes(self, discord, monkeypatch):
        _mock_login()
        ready: list[DeliveryHandle] = []

        async def crash(handle):
            raise ValueError("bad heartbeat payload")

        monkeypatch.setattr(discord, "serve", crash)

        with pytest.raises(ValueError):
            await discord.run("secret", on_ready=ready.append)

        assert ready[0].client.is_closed

    @pytest.mark.asyncio
    @respx.mock
    async def test_cancelled_run_leaves_client_open(self, discord, monkeypatch):
        _mock_login()
        ready: list[DeliveryHandle] = []

        async def forever(handle):
            await asyncio.Event().wait()

        monkeypatch.setattr(discord, "serve", forever)
        task = asyncio.create_task(discord.run("secret", on_ready=ready.append))
        while not ready:
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not ready[0].client.is_closed
        await ready[0].client.aclose()
