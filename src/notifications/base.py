"""Report sink contract shared by the Discord delivery modes.

A sink delivers rendered report text and tells subscribers when it becomes
usable or unusable. The scheduler subscribes to those events to pause and
resume itself; it never manages the connection.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

LifecycleCallback = Callable[[], Awaitable[None]]

MESSAGE_LIMIT = 1990  # Discord rejects messages over 2000 chars
FENCE = "```"


def chunk_message(text: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split a message into chunks that fit Discord's 2000 char limit.

    Splits on line boundaries. When the whole text is one fenced block
    (```diff ... ```), every chunk is closed and reopened with the same fence
    so each message still renders as a block.
    """
    if len(text) <= limit:
        return [text]

    lines = text.split("\n")
    prefix = suffix = ""
    if len(lines) > 2 and lines[0].startswith(FENCE) and lines[-1] == FENCE:
        prefix, suffix = lines[0] + "\n", "\n" + FENCE
        lines = lines[1:-1]
    budget = limit - len(prefix) - len(suffix)

    chunks: list[str] = []
    current: list[str] = []
    size = 0
    for line in lines:
        # hard cut for a line that cannot fit on its own
        pieces = [line[i:i + budget] for i in range(0, len(line), budget)] or [""]
        for piece in pieces:
            cost = len(piece) + (1 if current else 0)
            if current and size + cost > budget:
                chunks.append(prefix + "\n".join(current) + suffix)
                current, size, cost = [], 0, len(piece)
            current.append(piece)
            size += cost
    if current:
        chunks.append(prefix + "\n".join(current) + suffix)
    return chunks


class SinkError(Exception):
    """Raised when a sink cannot do its job."""


class SinkStartupError(SinkError):
    """Raised when a sink cannot be established at all (fatal)."""


class ReportSink:
    """Base class for report destinations.

    Lifecycle:
        sink.subscribe(on_available=..., on_unavailable=...)
        await sink.serve()   # runs until close(); emits lifecycle events
        await sink.close()
    """

    name = "sink"

    def __init__(self) -> None:
        self._on_available: list[LifecycleCallback] = []
        self._on_unavailable: list[LifecycleCallback] = []

    def subscribe(
        self,
        on_available: LifecycleCallback | None = None,
        on_unavailable: LifecycleCallback | None = None,
    ) -> None:
        if on_available:
            self._on_available.append(on_available)
        if on_unavailable:
            self._on_unavailable.append(on_unavailable)

    async def deliver(self, text: str) -> bool:
        """Deliver ``text``; return True on success, False on failure."""
        raise NotImplementedError

    async def serve(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    # -- lifecycle fan-out -----------------------------------------------------

    async def _emit_available(self) -> None:
        logger.info("%s: channel available", self.name)
        await self._emit(self._on_available)

    async def _emit_unavailable(self) -> None:
        logger.warning("%s: channel unavailable", self.name)
        await self._emit(self._on_unavailable)

    async def _emit(self, callbacks: list[LifecycleCallback]) -> None:
        for callback in callbacks:
            try:
                await callback()
            except Exception:
                logger.exception("%s: lifecycle callback error", self.name)
