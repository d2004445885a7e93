"""Health check engine — probes targets and classifies the outcome.

A probe is one bounded-time GET. Every failure mode becomes a ProbeOutcome;
nothing raises past ``probe_target``. ``check_all`` fans the probes out
concurrently and always returns one result per target, in registry order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import httpx

from src.targets.registry import Target

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds per probe

# Cause used when the aggregation step itself fails
CHECK_FAILED = "check failed"


# ── Models ───────────────────────────────────────────────────────────────────


class OutcomeKind(str, Enum):
    HEALTHY = "healthy"
    UNEXPECTED = "unexpected"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"


class Bucket(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"


_BUCKETS = {
    OutcomeKind.HEALTHY: Bucket.HEALTHY,
    OutcomeKind.UNEXPECTED: Bucket.WARNING,
    OutcomeKind.TIMEOUT: Bucket.ERROR,
    OutcomeKind.UNREACHABLE: Bucket.ERROR,
}


@dataclass(frozen=True)
class ProbeOutcome:
    """Classified outcome of a single probe."""

    kind: OutcomeKind
    status_code: int | None = None
    detail: str = ""

    @classmethod
    def healthy(cls, status_code: int = 200) -> ProbeOutcome:
        return cls(OutcomeKind.HEALTHY, status_code=status_code)

    @classmethod
    def unexpected(cls, status_code: int) -> ProbeOutcome:
        return cls(OutcomeKind.UNEXPECTED, status_code=status_code)

    @classmethod
    def timeout(cls) -> ProbeOutcome:
        return cls(OutcomeKind.TIMEOUT)

    @classmethod
    def unreachable(cls, detail: str) -> ProbeOutcome:
        return cls(OutcomeKind.UNREACHABLE, detail=detail)

    @property
    def bucket(self) -> Bucket:
        return _BUCKETS[self.kind]


@dataclass(frozen=True)
class ProbeResult:
    """A target paired with the outcome of probing it."""

    target: Target
    outcome: ProbeOutcome
    latency_ms: float = field(default=0.0, compare=False)


# ── Prober ───────────────────────────────────────────────────────────────────


async def probe_target(
    target: Target,
    client: httpx.AsyncClient,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProbeResult:
    """GET ``target.url`` once and classify the response. Never raises."""
    logger.debug("Checking health for %s at %s", target.name, target.url)
    t0 = time.perf_counter()
    try:
        resp = await asyncio.wait_for(client.get(target.url, timeout=timeout), timeout)
        if resp.status_code == 200:
            outcome = ProbeOutcome.healthy(resp.status_code)
            logger.info("%s is healthy", target.name)
        else:
            outcome = ProbeOutcome.unexpected(resp.status_code)
            logger.warning("%s returned status %d", target.name, resp.status_code)
    except (httpx.TimeoutException, asyncio.TimeoutError):
        outcome = ProbeOutcome.timeout()
        logger.warning("Timeout - %s after %.1fs", target.name, timeout)
    except Exception as e:
        outcome = ProbeOutcome.unreachable(f"{type(e).__name__}: {e}")
        logger.warning("Unreachable - %s: %s", target.name, outcome.detail)

    latency = (time.perf_counter() - t0) * 1000
    return ProbeResult(target=target, outcome=outcome, latency_ms=round(latency, 1))


# ── Aggregator ───────────────────────────────────────────────────────────────


async def check_all(
    targets: Sequence[Target],
    timeout: float = DEFAULT_TIMEOUT,
    client: httpx.AsyncClient | None = None,
    max_concurrency: int = 0,
) -> list[ProbeResult]:
    """Probe every target concurrently; results follow ``targets`` order.

    Falls back to marking every target unreachable if the fan-out itself
    fails, so callers always get ``len(targets)`` results.
    """
    targets = list(targets)
    logger.info("Starting health checks for %d targets", len(targets))
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                results = await _fan_out(targets, own_client, timeout, max_concurrency)
        else:
            results = await _fan_out(targets, client, timeout, max_concurrency)
    except Exception:
        logger.exception("Health check aggregation failed, marking all targets unreachable")
        return failed_results(targets)

    counts = Counter(r.outcome.bucket for r in results)
    logger.info(
        "All health checks completed: %d healthy, %d warning, %d error",
        counts[Bucket.HEALTHY], counts[Bucket.WARNING], counts[Bucket.ERROR],
    )
    return results


async def _fan_out(
    targets: list[Target],
    client: httpx.AsyncClient,
    timeout: float,
    max_concurrency: int,
) -> list[ProbeResult]:
    slots: list[ProbeResult | None] = [None] * len(targets)
    limit = asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None

    async def run(index: int, target: Target) -> None:
        if limit is None:
            slots[index] = await probe_target(target, client, timeout)
            return
        async with limit:
            slots[index] = await probe_target(target, client, timeout)

    await asyncio.gather(*(run(i, t) for i, t in enumerate(targets)))

    missing = [targets[i].name for i, r in enumerate(slots) if r is None]
    if missing:
        raise RuntimeError(f"No result recorded for: {', '.join(missing)}")
    return [r for r in slots if r is not None]


def failed_results(targets: Sequence[Target]) -> list[ProbeResult]:
    """One ``Unreachable("check failed")`` result per target."""
    return [ProbeResult(target=t, outcome=ProbeOutcome.unreachable(CHECK_FAILED)) for t in targets]
