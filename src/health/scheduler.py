"""Health check scheduler — one report cycle now, then one per interval.

A cycle probes every target, renders the report and hands it to the sink.
The scheduler owns its timer task; the sink's lifecycle events pause and
resume it. Cycles are serialised, and ticks missed while a cycle overran are
skipped rather than replayed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from src.notifications.base import ReportSink
from src.targets.registry import Target

from .engine import DEFAULT_TIMEOUT, check_all
from .report import CycleReport, build_report, format_interval, render_report

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 3600  # 1 hour


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthScheduler:
    """Runs aggregate → render → deliver cycles on a fixed period.

    Lifecycle:
        scheduler = HealthScheduler(targets, sink)
        sink.subscribe(scheduler.on_available, scheduler.on_unavailable)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        targets: Sequence[Target],
        sink: ReportSink,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        max_concurrency: int = 0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.targets = tuple(targets)
        self.sink = sink
        self.interval = interval
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._client = client
        self._clock = clock
        self._sleep = sleep
        self.state = SchedulerState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Future[CycleReport]] = set()
        self._cycle_lock = asyncio.Lock()
        self.cycles_run = 0
        self.last_cycle_at: datetime | None = None
        self.last_delivery_ok: bool | None = None

    # -- public API ------------------------------------------------------------

    async def start(self) -> None:
        """Run one cycle immediately and arm the repeating timer."""
        if self.state is SchedulerState.STOPPED:
            logger.warning("Health scheduler already stopped, ignoring start")
            return
        if self.state is SchedulerState.RUNNING:
            return
        self.state = SchedulerState.RUNNING
        self._task = asyncio.create_task(self._timer_loop(), name="health-scheduler")
        logger.info(
            "Health scheduler started: %d targets, every %s",
            len(self.targets), format_interval(self.interval),
        )

    async def stop(self) -> None:
        """Cancel future cycles. A cycle already in flight still completes."""
        if self.state is SchedulerState.STOPPED:
            return
        self.state = SchedulerState.STOPPED
        await self._cancel_timer()
        logger.info("Health scheduler stopped")

    async def on_unavailable(self) -> None:
        """Sink lost its connection: pause until it comes back."""
        if self.state is not SchedulerState.RUNNING:
            return
        self.state = SchedulerState.PAUSED
        await self._cancel_timer()
        logger.info("Health scheduler paused (delivery channel unavailable)")

    async def on_available(self) -> None:
        """Sink is usable (first connect or reconnect): start from a fresh cycle."""
        if self.state in (SchedulerState.IDLE, SchedulerState.PAUSED):
            await self.start()

    async def drain(self) -> None:
        """Wait for every cycle still in flight."""
        if self._inflight:
            await asyncio.wait(set(self._inflight))

    async def run_cycle(self) -> CycleReport:
        """Probe all targets, render the report and deliver it once."""
        async with self._cycle_lock:
            logger.info("Performing health check")
            checked_at = self._clock()
            results = await check_all(
                self.targets,
                timeout=self.timeout,
                client=self._client,
                max_concurrency=self.max_concurrency,
            )
            report = build_report(checked_at, results)
            text = render_report(report, self.interval)
            self.cycles_run += 1
            self.last_cycle_at = checked_at

            try:
                delivered = await self.sink.deliver(text)
            except Exception:
                logger.exception("Error delivering health check report")
                delivered = False

            self.last_delivery_ok = delivered
            if not delivered:
                logger.error(
                    "Health check report not delivered (%s)", getattr(self.sink, "name", "sink"),
                )
            return report

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "targets": len(self.targets),
            "interval_seconds": self.interval,
            "timeout_seconds": self.timeout,
            "cycles_run": self.cycles_run,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            "last_delivery_ok": self.last_delivery_ok,
        }

    # -- timer -----------------------------------------------------------------

    async def _timer_loop(self) -> None:
        """Fixed-rate loop: cycle, sleep until the next tick, repeat."""
        loop = asyncio.get_running_loop()
        next_run = loop.time()
        while True:
            delay = next_run - loop.time()
            if delay > 0:
                await self._sleep(delay)

            try:
                await self._run_shielded()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Health check cycle error")

            next_run += self.interval
            behind = loop.time() - next_run
            if behind >= 0:
                skipped = int(behind // self.interval) + 1
                next_run += skipped * self.interval
                logger.warning("Health check cycle overran, skipping %d tick(s)", skipped)

    async def _run_shielded(self) -> None:
        # Cancelling the timer must not abort the cycle in flight
        cycle = asyncio.ensure_future(self.run_cycle())
        self._inflight.add(cycle)
        cycle.add_done_callback(self._inflight.discard)
        await asyncio.shield(cycle)

    async def _cancel_timer(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
