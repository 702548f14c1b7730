"""
Command-line interface for chapterbell.

Usage:
    chapterbell run                  # Poll sources and announce continuously
    chapterbell run --once           # Connect, fetch, announce, disconnect, exit
    chapterbell init-db              # Create the chapter store tables
    chapterbell targets              # Validate the targets file and list it
    chapterbell set-feed-channel ID CHANNEL
    chapterbell health               # Check store and configuration
"""

import asyncio
import signal
import sys

import click
import structlog

from chapterbell.config.settings import get_settings
from chapterbell.config.targets import TargetConfigError, load_targets
from chapterbell.observability.logging import bind_context, setup_logging
from chapterbell.observability.metrics import get_metrics
from chapterbell.storage.base import ChapterStore

logger = structlog.get_logger(__name__)


async def open_store(memory: bool = False) -> ChapterStore:
    """Create and initialize the configured chapter store."""
    if memory:
        from chapterbell.storage.memory import InMemoryStore

        store: ChapterStore = InMemoryStore()
    else:
        from chapterbell.storage.database import Database
        from chapterbell.storage.repository import PostgresStore

        db = Database()
        await db.connect()
        store = PostgresStore(db)

    await store.initialize()
    return store


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Chapterbell - poll manga sources and announce new chapters."""
    setup_logging(level="DEBUG" if debug else None)


@main.command()
@click.option("--once", is_flag=True, help="Run one connect/fetch/announce cycle and exit")
@click.option("--memory-store", is_flag=True, help="Keep chapters in memory instead of PostgreSQL")
@click.option("--targets-file", default=None, help="Targets file (default from settings)")
def run(once: bool, memory_store: bool, targets_file: str | None) -> None:
    """Run the dispatcher."""
    from chapterbell.core.dispatcher import Dispatcher, DispatchError
    from chapterbell.core.scheduler import Scheduler
    from chapterbell.delivery.channels import DiscordChannel

    settings = get_settings()
    bind_context(run_mode="once" if once else "continuous")

    try:
        targets = load_targets(targets_file or settings.targets_file)
    except TargetConfigError as e:
        click.echo(click.style(f"Invalid target configuration: {e}", fg="red"), err=True)
        sys.exit(1)

    if settings.metrics_enabled:
        get_metrics().start_server()

    channel = DiscordChannel(
        api_base=settings.discord_api_base,
        timeout=settings.http_timeout_seconds,
        heartbeat_seconds=settings.connection_heartbeat_seconds,
    )

    async def run_dispatcher() -> int:
        store = await open_store(memory=memory_store)
        dispatcher = Dispatcher(store, targets, channel, settings.discord_token, settings)

        try:
            if once:
                try:
                    delivered = await dispatcher.run_once()
                except DispatchError as e:
                    logger.error("One-shot run failed", error=str(e))
                    click.echo(click.style(f"Run failed: {e}", fg="red"), err=True)
                    return 1

                click.echo("\nAnnounce Results:")
                for destination, count in delivered.items():
                    click.echo(f"  {destination}: {count} chapters")
                return 0

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, dispatcher.stop)

            scheduler = asyncio.create_task(
                Scheduler(dispatcher, settings.fetch_interval_seconds).run()
            )
            try:
                await dispatcher.run()
            finally:
                scheduler.cancel()
                await asyncio.gather(scheduler, return_exceptions=True)
            return 0
        finally:
            await store.close()

    sys.exit(asyncio.run(run_dispatcher()))


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""

    async def run():
        store = await open_store()
        await store.close()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
@click.option("--targets-file", default=None, help="Targets file (default from settings)")
def targets(targets_file: str | None) -> None:
    """Validate the targets file and print a summary."""
    path = targets_file or get_settings().targets_file
    try:
        loaded = load_targets(path)
    except TargetConfigError as e:
        click.echo(click.style(f"Invalid target configuration: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(f"\n{len(loaded)} targets in {path}:")
    click.echo("-" * 40)
    for target in loaded:
        delay = f", delay {target.delay_days}d" if target.delay_days else ""
        click.echo(f"  {target.name} [{target.mode.value}{delay}]")
        click.echo(f"    {target.source}")


@main.command("set-feed-channel")
@click.argument("destination_id")
@click.argument("channel_id")
def set_feed_channel(destination_id: str, channel_id: str) -> None:
    """Set the channel new chapters are announced to for a destination."""

    async def run():
        store = await open_store()
        try:
            await store.set_feed_channel(destination_id, channel_id)
        finally:
            await store.close()
        click.echo(f"Feed channel for {destination_id} set to {channel_id}")

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of the store and configuration."""

    async def check():
        results: dict[str, bool] = {}
        settings = get_settings()

        try:
            from chapterbell.storage.database import Database

            async with Database() as db:
                results["postgres"] = await db.health_check()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        try:
            results["targets"] = bool(load_targets(settings.targets_file))
        except TargetConfigError as e:
            results["targets"] = False
            logger.error("Target configuration invalid", error=str(e))

        results["discord_configured"] = settings.discord_configured

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All checks passed!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some checks failed!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
