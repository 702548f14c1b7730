"""
Core dispatcher: owns the worker tracker and turns events into workers.

The loop is the only code that reads or writes the tracker and the stored
delivery handle. Workers never touch either; they receive a snapshot of the
handle when spawned, and their completion comes back to the loop as a
``WorkerFinished`` event posted by a task done-callback.

Two modes:
- ``run()``: continuous. Starts a fetch (chained into an announce) and the
  bot connection, then serves events until ``Quit``.
- ``run_once()``: connect, fetch, announce, disconnect, strictly in order.
  Any failure, or the bot connection exiting early, raises ``DispatchError``.
"""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime
from typing import Any

import structlog

from chapterbell.config.settings import Settings, get_settings
from chapterbell.config.targets import Target
from chapterbell.core.events import (
    AnnounceAll,
    AnnounceOne,
    BotConnection,
    DeliveryConnectionReady,
    Event,
    FetchAll,
    Quit,
    StartAnnounceAll,
    StartAnnounceOne,
    StartBotConnection,
    StartFetch,
    WorkerFinished,
    WorkerKind,
)
from chapterbell.delivery.channels import DeliveryChannel, DeliveryHandle
from chapterbell.observability.metrics import get_metrics
from chapterbell.schemas import utc_now
from chapterbell.storage.base import ChapterStore
from chapterbell.workers.announcer import announce_for_destination, dispatch_announce
from chapterbell.workers.fetcher import dispatch_fetch

logger = structlog.get_logger(__name__)


class DispatchError(RuntimeError):
    """Raised when a one-shot run cannot complete."""


class Dispatcher:
    """
    Event loop coordinating fetch, announce and bot-connection workers.

    At most one worker of each kind is tracked at a time; solo announces are
    tracked per destination. Triggers that find their slot taken, or that
    need a delivery connection while none is up, are logged and dropped.

    Usage:
        dispatcher = Dispatcher(store, targets, DiscordChannel(), token)
        loop.add_signal_handler(signal.SIGTERM, dispatcher.stop)
        await dispatcher.run()
    """

    def __init__(
        self,
        store: ChapterStore,
        targets: list[Target],
        channel: DeliveryChannel,
        credentials: str | None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        settings = settings or get_settings()

        self._store = store
        self._targets = targets
        self._channel = channel
        self._credentials = credentials
        self._clock = clock

        self._fetch_attempts = settings.fetch_attempts
        self._http_timeout = settings.http_timeout_seconds
        self._user_agent = settings.user_agent
        self._chain_delay = settings.announce_chain_delay_seconds
        self._reconnect_delay = settings.reconnect_delay_seconds

        self._events: asyncio.Queue[Event] = asyncio.Queue()
        self._workers: dict[WorkerKind, asyncio.Task] = {}
        self._timers: set[asyncio.Task] = set()
        self._handle: DeliveryHandle | None = None
        self._chain_announce = False
        self._closed = False
        self._metrics = get_metrics()

    @property
    def handle(self) -> DeliveryHandle | None:
        """Current delivery connection, if the bot connection reported ready."""
        return self._handle

    @property
    def tracked(self) -> frozenset[WorkerKind]:
        """Worker kinds currently occupying a tracker slot."""
        return frozenset(self._workers)

    def is_tracked(self, kind: WorkerKind) -> bool:
        return kind in self._workers

    def post(self, event: Event) -> None:
        """Queue an event for the loop. Dropped once Quit has been posted."""
        if self._closed:
            logger.warning("Dispatcher stopped, dropping event", event_type=type(event).__name__)
            return
        if isinstance(event, Quit):
            self._closed = True
        self._events.put_nowait(event)

    def stop(self) -> None:
        """Request shutdown; safe to call from a signal handler."""
        self.post(Quit())

    async def run(self) -> None:
        """Serve events until Quit, then cancel workers and disconnect."""
        logger.info("Dispatcher started", targets=len(self._targets))
        self.post(StartFetch(trigger_announce=True))
        self.post(StartBotConnection())

        try:
            while True:
                event = await self.next_event()
                if isinstance(event, Quit):
                    logger.info("Quit received")
                    break
                self.handle_event(event)
        finally:
            await self.shutdown()

    async def next_event(self) -> Event:
        return await self._events.get()

    def handle_event(self, event: Event) -> None:
        """Apply one event to the tracker. Never blocks."""
        if isinstance(event, StartFetch):
            self._start_fetch(event)
        elif isinstance(event, StartAnnounceAll):
            self._start_announce_all()
        elif isinstance(event, StartAnnounceOne):
            self._start_announce_one(event.destination_id)
        elif isinstance(event, StartBotConnection):
            self._start_bot_connection()
        elif isinstance(event, DeliveryConnectionReady):
            self._handle = event.handle
            logger.info("Delivery connection ready", channel=self._channel.name)
        elif isinstance(event, WorkerFinished):
            self._worker_finished(event.kind)
        else:
            logger.warning("Unknown event", event_type=type(event).__name__)

    # Triggers

    def _start_fetch(self, event: StartFetch) -> None:
        kind = FetchAll()
        if kind in self._workers:
            logger.warning("Fetch already running, trigger rejected")
            return
        self._chain_announce = event.trigger_announce
        self._spawn(
            kind,
            dispatch_fetch(
                self._store,
                self._targets,
                attempts=self._fetch_attempts,
                timeout=self._http_timeout,
                user_agent=self._user_agent,
            ),
        )

    def _start_announce_all(self) -> None:
        kind = AnnounceAll()
        if self._handle is None:
            logger.warning("Delivery not connected, announce rejected")
            return
        if kind in self._workers:
            logger.warning("Announce already running, trigger rejected")
            return
        self._spawn(
            kind,
            dispatch_announce(self._store, self._channel, self._handle, clock=self._clock),
        )

    def _start_announce_one(self, destination_id: str) -> None:
        kind = AnnounceOne(destination_id)
        if self._handle is None:
            logger.warning(
                "Delivery not connected, announce rejected",
                destination=destination_id,
            )
            return
        if kind in self._workers:
            logger.warning(
                "Announce already running for destination, trigger rejected",
                destination=destination_id,
            )
            return
        self._spawn(
            kind,
            announce_for_destination(
                self._store,
                self._channel,
                self._handle,
                destination_id,
                clock=self._clock,
            ),
        )

    def _start_bot_connection(self) -> None:
        kind = BotConnection()
        if kind in self._workers:
            logger.warning("Bot connection already running, trigger rejected")
            return
        if not self._credentials:
            logger.warning("No delivery credentials configured, bot connection not started")
            return
        self._spawn(
            kind,
            self._channel.run(
                self._credentials,
                on_ready=lambda handle: self.post(DeliveryConnectionReady(handle)),
            ),
        )

    # Worker lifecycle

    def _spawn(self, kind: WorkerKind, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro, name=kind.label)
        self._workers[kind] = task
        self._metrics.worker_started(kind.label)
        # Bypasses post() so completions still arrive while shutting down
        task.add_done_callback(lambda _: self._events.put_nowait(WorkerFinished(kind)))
        logger.info("Worker started", worker=kind.label, key=repr(kind))

    def _worker_finished(self, kind: WorkerKind) -> None:
        task = self._workers.pop(kind, None)
        if task is None:
            return
        self._metrics.worker_finished(kind.label)

        if task.cancelled():
            logger.info("Worker cancelled", worker=kind.label)
        elif task.exception() is not None:
            logger.error(
                "Worker failed",
                worker=kind.label,
                key=repr(kind),
                error=str(task.exception()),
            )
        else:
            logger.info("Worker finished", worker=kind.label, key=repr(kind))

        if isinstance(kind, FetchAll) and self._chain_announce:
            self._chain_announce = False
            self._after(self._chain_delay, self._chained_announce)
        elif isinstance(kind, BotConnection):
            self._handle = None
            logger.warning(
                "Delivery connection lost, reconnecting",
                delay_seconds=self._reconnect_delay,
            )
            self._after(self._reconnect_delay, lambda: self.post(StartBotConnection()))

    def _chained_announce(self) -> None:
        if self._handle is None:
            logger.warning("Delivery not connected, skipping announce after fetch")
            return
        self.post(StartAnnounceAll())

    def _after(self, delay: float, action: Callable[[], None]) -> None:
        async def timer() -> None:
            await asyncio.sleep(delay)
            action()

        task = asyncio.create_task(timer())
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)

    async def shutdown(self) -> None:
        """Cancel every tracked worker and timer, then disconnect gracefully."""
        self._closed = True
        tasks = list(self._workers.values()) + list(self._timers)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for kind in self._workers:
            self._metrics.worker_finished(kind.label)
        self._workers.clear()
        self._timers.clear()

        if self._handle is not None:
            await self._disconnect(self._handle)
            self._handle = None
        logger.info("Dispatcher stopped")

    async def _disconnect(self, handle: DeliveryHandle) -> None:
        try:
            await self._channel.disconnect(handle)
        except Exception as e:
            logger.error("Graceful disconnect failed", error=str(e))

    # One-shot mode

    async def run_once(self) -> dict[str, int]:
        """
        Connect, fetch every target, announce to every destination, disconnect.

        Returns:
            Destination id -> chapters delivered

        Raises:
            DispatchError: If a step fails or the connection exits early
        """
        if not self._credentials:
            raise DispatchError("No delivery credentials configured")

        ready: asyncio.Future[DeliveryHandle] = asyncio.get_running_loop().create_future()

        def on_ready(handle: DeliveryHandle) -> None:
            if not ready.done():
                ready.set_result(handle)

        bot = asyncio.create_task(
            self._channel.run(self._credentials, on_ready=on_ready),
            name=BotConnection.label,
        )
        try:
            self._handle = await self._await_step("connect", ready, bot)
            await self._await_step(
                "fetch",
                dispatch_fetch(
                    self._store,
                    self._targets,
                    attempts=self._fetch_attempts,
                    timeout=self._http_timeout,
                    user_agent=self._user_agent,
                ),
                bot,
            )
            delivered = await self._await_step(
                "announce",
                dispatch_announce(self._store, self._channel, self._handle, clock=self._clock),
                bot,
            )
        finally:
            dropped = bot.done()
            bot.cancel()
            await asyncio.gather(bot, return_exceptions=True)
            # A dropped connection has already released its handle
            if self._handle is not None and not dropped:
                await self._disconnect(self._handle)
            self._handle = None

        logger.info("One-shot run complete", destinations=len(delivered))
        return delivered

    async def _await_step(
        self,
        step: str,
        awaitable: Awaitable[Any],
        bot: asyncio.Task,
    ) -> Any:
        """Wait for one step while watching the bot connection for an early exit."""
        step_task = asyncio.ensure_future(awaitable)
        done, _ = await asyncio.wait({step_task, bot}, return_when=asyncio.FIRST_COMPLETED)

        if step_task in done:
            error = step_task.exception()
            if error is not None:
                raise DispatchError(f"{step} failed: {error}") from error
            return step_task.result()

        step_task.cancel()
        await asyncio.gather(step_task, return_exceptions=True)
        error = None if bot.cancelled() else bot.exception()
        if error is not None:
            raise DispatchError(f"Delivery connection failed during {step}: {error}") from error
        raise DispatchError(f"Delivery connection exited during {step}")
