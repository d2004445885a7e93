"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from src.notifications.base import ReportSink
from src.targets.registry import Target

HANG = "hang"


def _mock_client(routes: dict[str, Any]) -> httpx.AsyncClient:
    """AsyncClient whose responses are scripted per host.

    A route value is a status code, an httpx exception class (raised with the
    request attached), or ``HANG`` to never answer within a test timeout.
    """

    async def handler(request: httpx.Request) -> httpx.Response:
        action = routes[request.url.host]
        if action == HANG:
            await asyncio.sleep(5)
            return httpx.Response(200)
        if isinstance(action, type) and issubclass(action, Exception):
            raise action(f"scripted failure for {request.url.host}", request=request)
        return httpx.Response(action)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


@pytest.fixture
def mock_client() -> Callable[[dict[str, Any]], httpx.AsyncClient]:
    return _mock_client


@pytest.fixture
def two_targets() -> list[Target]:
    return [Target(url="https://a.test", name="A"), Target(url="https://b.test", name="B")]


class RecordingSink(ReportSink):
    """Sink that records delivered text; outcomes can be scripted."""

    name = "recording"

    def __init__(self, outcomes: list[bool | Exception] | None = None) -> None:
        super().__init__()
        self.delivered: list[str] = []
        self.attempts = 0
        self._outcomes = list(outcomes or [])

    async def deliver(self, text: str) -> bool:
        self.attempts += 1
        outcome = self._outcomes.pop(0) if self._outcomes else True
        if isinstance(outcome, Exception):
            raise outcome
        if outcome:
            self.delivered.append(text)
        return outcome

    async def serve(self) -> None:
        await self._emit_available()

    async def close(self) -> None:
        pass


class ManualSleep:
    """Stand-in for ``asyncio.sleep`` that only returns when ticked."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self._pending: asyncio.Future[None] | None = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self._pending = asyncio.get_running_loop().create_future()
        try:
            await self._pending
        finally:
            self._pending = None

    @property
    def sleeping(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def tick(self) -> None:
        assert self._pending is not None, "nothing is sleeping"
        self._pending.set_result(None)

    async def wait_sleeping(self, timeout: float = 2.0) -> None:
        async def poll() -> None:
            while not self.sleeping:
                await asyncio.sleep(0)

        await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()
