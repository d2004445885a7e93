"""Report rendering — turns one cycle's results into a chat-ready text block.

The layout is fixed-width and wrapped in a ```diff fence so Discord colours
the row markers: ``+`` healthy, ``-`` warning, ``!`` error. Rendering is a
pure function of (timestamp, results, interval).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from .engine import CHECK_FAILED, Bucket, OutcomeKind, ProbeOutcome, ProbeResult

BAR_WIDTH = 50
NAME_MAX = 18
NAME_COLUMN = 20
STATUS_COLUMN = 20
TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"

_MARKERS = {
    Bucket.HEALTHY: "+",
    Bucket.WARNING: "-",
    Bucket.ERROR: "!",
}


@dataclass(frozen=True)
class CycleReport:
    """Results of one cycle plus the per-bucket counts."""

    timestamp: datetime
    results: tuple[ProbeResult, ...]
    healthy_count: int
    warning_count: int
    error_count: int

    @property
    def total(self) -> int:
        return len(self.results)


def build_report(timestamp: datetime, results: Sequence[ProbeResult]) -> CycleReport:
    buckets = [r.outcome.bucket for r in results]
    return CycleReport(
        timestamp=timestamp,
        results=tuple(results),
        healthy_count=buckets.count(Bucket.HEALTHY),
        warning_count=buckets.count(Bucket.WARNING),
        error_count=buckets.count(Bucket.ERROR),
    )


def status_label(outcome: ProbeOutcome) -> str:
    if outcome.kind is OutcomeKind.HEALTHY:
        return "✅ Healthy"
    if outcome.kind is OutcomeKind.UNEXPECTED:
        return f"⚠️ HTTP {outcome.status_code}"
    if outcome.kind is OutcomeKind.TIMEOUT:
        return "❌ Timeout"
    if outcome.detail == CHECK_FAILED:
        return "❌ Check Failed"
    return "❌ Unreachable"


def format_interval(seconds: float) -> str:
    """Humanise an interval: 3600 -> "1 hour", 5400 -> "1 hour 30 minutes"."""
    hours, rem = divmod(int(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    for value, unit in ((hours, "hour"), (minutes, "minute"), (secs, "second")):
        if value:
            parts.append(f"{value} {unit}{'' if value == 1 else 's'}")
    return " ".join(parts) or "0 seconds"


def render_report(report: CycleReport, interval_seconds: float = 3600) -> str:
    """Render a CycleReport as the fenced, fixed-width report text."""
    bar = "═" * BAR_WIDTH
    rule = "─" * BAR_WIDTH

    lines = [
        "```diff",
        "+" + bar,
        "+          🏥 HEALTH CHECK REPORT 🏥",
        "+" + bar,
        "",
        f"⏰ Time: {report.timestamp.strftime(TIME_FORMAT)}",
        f"📊 Services Monitored: {report.total}",
        "",
        "📈 Summary:",
        f"   ✅ Healthy: {report.healthy_count}",
        f"   ⚠️ Warnings: {report.warning_count}",
        f"   ❌ Errors: {report.error_count}",
        "",
        rule,
        "   SERVICE              │      STATUS",
        bar,
    ]

    for result in report.results:
        marker = _MARKERS[result.outcome.bucket]
        name = result.target.name[:NAME_MAX].ljust(NAME_COLUMN)
        status = status_label(result.outcome).ljust(STATUS_COLUMN)
        lines.append(f"{marker}  {name} │ {status}")

    lines += [
        rule,
        "",
        f"🔄 Next check: In {format_interval(interval_seconds)}",
        bar,
        "```",
    ]
    return "\n".join(line.rstrip() for line in lines)


def render(
    timestamp: datetime,
    results: Sequence[ProbeResult],
    interval_seconds: float = 3600,
) -> str:
    """Shortcut for ``render_report(build_report(...))``."""
    return render_report(build_report(timestamp, results), interval_seconds)
