"""Entry point for the Pulsecheck health monitor."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from src.config import settings
from src.health.report import format_interval
from src.health.scheduler import HealthScheduler
from src.notifications.base import ReportSink, SinkStartupError
from src.notifications.discord import DiscordBotSink, DiscordWebhookSink
from src.targets.registry import TargetRegistry

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_sink() -> ReportSink:
    """Pick the delivery mode from settings (bot mode wins over webhook)."""
    if settings.discord_bot_token and settings.discord_channel_id:
        return DiscordBotSink(settings.discord_bot_token, settings.discord_channel_id)
    if settings.discord_webhook_url:
        return DiscordWebhookSink(settings.discord_webhook_url)
    raise SinkStartupError(
        "No delivery configured: set DISCORD_BOT_TOKEN and DISCORD_CHANNEL_ID, "
        "or DISCORD_WEBHOOK_URL"
    )


def install_shutdown_handlers(sink: ReportSink) -> set[asyncio.Task[None]]:
    """Close the sink on SIGINT/SIGTERM. Returns the set of pending close tasks."""
    loop = asyncio.get_running_loop()
    pending: set[asyncio.Task[None]] = set()

    def on_closed(task: asyncio.Task[None]) -> None:
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Error closing %s: %s", sink.name, task.exception())

    def request_shutdown() -> None:
        logger.info("Shutdown requested")
        task = loop.create_task(sink.close())
        pending.add(task)
        task.add_done_callback(on_closed)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass  # not supported on Windows event loops
    return pending


async def run_monitor() -> None:
    """Wire registry, sink and scheduler, then run until the sink closes."""
    targets = TargetRegistry(Path(settings.targets_file)).load()
    if not targets:
        logger.warning("No targets configured, reports will be empty")

    sink = build_sink()
    scheduler = HealthScheduler(
        targets,
        sink,
        interval=settings.check_interval_seconds,
        timeout=settings.probe_timeout_seconds,
        max_concurrency=settings.max_concurrency,
    )
    sink.subscribe(on_available=scheduler.on_available, on_unavailable=scheduler.on_unavailable)

    install_shutdown_handlers(sink)

    try:
        await sink.serve()
    finally:
        await scheduler.stop()
        await scheduler.drain()
        await sink.close()


def main() -> None:
    console.print(Panel(
        f"Starting Pulsecheck — every {format_interval(settings.check_interval_seconds)}, "
        f"timeout {settings.probe_timeout_seconds:g}s",
        style="bold green",
    ))
    try:
        asyncio.run(run_monitor())
    except SinkStartupError as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
