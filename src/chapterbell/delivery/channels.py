"""Delivery channel implementations for chapter announcements.

Provides an ABC for delivery channels plus a Discord implementation that
talks to the Discord REST API with httpx. A channel is used in three ways:

- ``run()`` is the body of the bot-connection worker: it connects, reports
  the live handle through a callback, then stays alive until the
  connection drops.
- ``send()`` posts one chapter to a destination's feed channel.
- ``disconnect()`` deregisters the command surface and closes the handle.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from chapterbell.schemas import Chapter, Destination

logger = logging.getLogger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"

# Discord rejects embed titles longer than this.
_MAX_EMBED_TITLE = 256


class DeliveryError(Exception):
    """Raised when connecting to or sending through a channel fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class DeliveryHandle:
    """A live connection to the delivery platform.

    Immutable once created; the dispatcher hands the same handle to every
    announce worker it spawns while the connection is up.
    """

    client: httpx.AsyncClient
    application_id: str | None = None
    account_name: str | None = None


class DeliveryChannel(ABC):
    """Abstract base for announcement delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this channel (e.g. 'discord')."""

    @abstractmethod
    async def connect(self, credentials: str) -> DeliveryHandle:
        """Open a connection.

        Raises:
            DeliveryError: If the credentials are rejected or the platform
                is unreachable.
        """

    @abstractmethod
    async def serve(self, handle: DeliveryHandle) -> None:
        """Block while the connection is healthy; return once it drops."""

    @abstractmethod
    async def send(
        self,
        handle: DeliveryHandle,
        destination: Destination,
        chapter: Chapter,
    ) -> None:
        """Deliver one chapter to a destination.

        Raises:
            DeliveryError: If the platform did not accept the message.
        """

    async def close(self, handle: DeliveryHandle) -> None:
        """Release the handle without touching the command surface."""
        await handle.client.aclose()

    async def disconnect(self, handle: DeliveryHandle) -> None:
        """Graceful shutdown: deregister commands, then release the handle."""
        await self.close(handle)

    async def run(
        self,
        credentials: str,
        on_ready: Callable[[DeliveryHandle], None],
    ) -> None:
        """Connect, report readiness, and stay alive until the connection drops."""
        handle = await self.connect(credentials)
        on_ready(handle)
        dropped = True
        try:
            await self.serve(handle)
        except asyncio.CancelledError:
            # Left open for disconnect(), which needs it to deregister commands
            dropped = False
            raise
        finally:
            if dropped:
                logger.warning("%s connection dropped", self.name)
                await self.close(handle)


class DiscordChannel(DeliveryChannel):
    """Delivers chapters as link embeds through the Discord REST API.

    One message per chapter: the embed title is ``[manga] title``, it links
    to the chapter URL and carries the chapter date as its timestamp.
    """

    def __init__(
        self,
        api_base: str = DISCORD_API_BASE,
        timeout: float = 10.0,
        heartbeat_seconds: float = 60.0,
    ) -> None:
        self._api_base = api_base
        self._timeout = timeout
        self._heartbeat_seconds = heartbeat_seconds

    @property
    def name(self) -> str:
        return "discord"

    async def connect(self, credentials: str) -> DeliveryHandle:
        logger.info("Connecting to Discord...")
        client = httpx.AsyncClient(
            base_url=self._api_base,
            headers={"Authorization": f"Bot {credentials}"},
            timeout=self._timeout,
        )
        try:
            me = await client.get("/users/@me")
            if not me.is_success:
                raise DeliveryError(
                    f"Discord rejected the bot token ({me.status_code})",
                    status_code=me.status_code,
                )

            application_id = None
            app = await client.get("/oauth2/applications/@me")
            if app.is_success:
                application_id = str(app.json()["id"])
            else:
                logger.warning(
                    "Could not resolve Discord application (%d); commands will not be deregistered",
                    app.status_code,
                )
        except httpx.HTTPError as e:
            await client.aclose()
            raise DeliveryError(f"Could not reach Discord: {e}") from e
        except DeliveryError:
            await client.aclose()
            raise

        logger.info("Connected to Discord as %s", me.json().get("username"))
        return DeliveryHandle(
            client=client,
            application_id=application_id,
            account_name=me.json().get("username"),
        )

    async def serve(self, handle: DeliveryHandle) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            try:
                resp = await handle.client.get("/users/@me")
            except httpx.HTTPError as e:
                logger.warning("Discord heartbeat failed: %s", e)
                return
            if not resp.is_success:
                logger.warning("Discord heartbeat returned %d", resp.status_code)
                return

    def _format_message(self, chapter: Chapter) -> dict:
        """Build the message payload for one chapter."""
        title = f"[{chapter.manga}] {chapter.title}"
        return {
            "embeds": [
                {
                    "title": title[:_MAX_EMBED_TITLE],
                    "url": chapter.url,
                    "timestamp": chapter.date.isoformat(),
                }
            ]
        }

    async def send(
        self,
        handle: DeliveryHandle,
        destination: Destination,
        chapter: Chapter,
    ) -> None:
        if destination.feed_channel is None:
            raise DeliveryError(f"Destination {destination.identifier} has no feed channel")
        if handle.client.is_closed:
            raise DeliveryError("Discord connection is closed")

        try:
            resp = await handle.client.post(
                f"/channels/{destination.feed_channel}/messages",
                json=self._format_message(chapter),
            )
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"Sending {chapter.manga} {chapter.number} failed: {e}"
            ) from e

        if not resp.is_success:
            raise DeliveryError(
                f"Discord returned {resp.status_code} for {chapter.manga} {chapter.number}",
                status_code=resp.status_code,
            )

    async def disconnect(self, handle: DeliveryHandle) -> None:
        logger.info("Disconnecting Discord...")
        if handle.application_id is not None:
            await self._deregister_commands(handle)
        await self.close(handle)

    async def _deregister_commands(self, handle: DeliveryHandle) -> None:
        path = f"/applications/{handle.application_id}/commands"
        try:
            resp = await handle.client.get(path)
        except httpx.HTTPError as e:
            logger.warning("Could not retrieve global commands (%s).", e)
            return
        if not resp.is_success:
            logger.warning("Could not retrieve global commands (%d).", resp.status_code)
            return

        for command in resp.json():
            try:
                deleted = await handle.client.delete(f"{path}/{command['id']}")
            except httpx.HTTPError as e:
                logger.warning("Could not remove command `%s` (%s).", command.get("name"), e)
                continue
            if not deleted.is_success:
                logger.warning(
                    "Could not remove command `%s` (%d).",
                    command.get("name"), deleted.status_code,
                )
