"""Tests for the health check engine — prober classification + aggregator."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import httpx
import pytest

from src.health.engine import (
    CHECK_FAILED,
    Bucket,
    OutcomeKind,
    ProbeOutcome,
    ProbeResult,
    check_all,
    failed_results,
    probe_target,
)
from src.targets.registry import Target

from conftest import HANG

TARGET = Target(url="https://svc.test/health", name="Service")


def _probe(client: httpx.AsyncClient, timeout: float = 1.0) -> ProbeResult:
    return asyncio.run(probe_target(TARGET, client, timeout=timeout))


# ── ProbeOutcome ─────────────────────────────────────────────────────────────


class TestProbeOutcome:
    def test_buckets(self) -> None:
        assert ProbeOutcome.healthy(200).bucket is Bucket.HEALTHY
        assert ProbeOutcome.unexpected(404).bucket is Bucket.WARNING
        assert ProbeOutcome.timeout().bucket is Bucket.ERROR
        assert ProbeOutcome.unreachable("dns").bucket is Bucket.ERROR

    def test_latency_ignored_in_equality(self) -> None:
        a = ProbeResult(target=TARGET, outcome=ProbeOutcome.timeout(), latency_ms=10.0)
        b = ProbeResult(target=TARGET, outcome=ProbeOutcome.timeout(), latency_ms=99.0)
        assert a == b


# ── Prober ───────────────────────────────────────────────────────────────────


class TestProbeTarget:
    def test_200_is_healthy(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": 200}))
        assert result.outcome == ProbeOutcome.healthy(200)
        assert result.target is TARGET
        assert result.latency_ms >= 0

    def test_404_is_unexpected(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": 404}))
        assert result.outcome == ProbeOutcome.unexpected(404)
        assert result.outcome.bucket is Bucket.WARNING

    def test_other_2xx_is_unexpected(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": 204}))
        assert result.outcome.kind is OutcomeKind.UNEXPECTED
        assert result.outcome.status_code == 204

    def test_server_error_is_unexpected(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": 503}))
        assert result.outcome == ProbeOutcome.unexpected(503)

    def test_slow_response_times_out(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": HANG}), timeout=0.05)
        assert result.outcome == ProbeOutcome.timeout()
        assert result.outcome.bucket is Bucket.ERROR

    def test_httpx_timeout_is_timeout(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": httpx.ReadTimeout}))
        assert result.outcome.kind is OutcomeKind.TIMEOUT

    def test_connect_timeout_is_timeout(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": httpx.ConnectTimeout}))
        assert result.outcome.kind is OutcomeKind.TIMEOUT

    def test_connection_failure_is_unreachable(self, mock_client) -> None:
        result = _probe(mock_client({"svc.test": httpx.ConnectError}))
        assert result.outcome.kind is OutcomeKind.UNREACHABLE
        assert result.outcome.bucket is Bucket.ERROR
        assert result.outcome.detail.startswith("ConnectError:")

    def test_unexpected_exception_is_captured(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            raise ValueError("boom")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        result = _probe(client)
        assert result.outcome == ProbeOutcome.unreachable("ValueError: boom")


# ── Aggregator ───────────────────────────────────────────────────────────────


class TestCheckAll:
    def test_example_registry(self, mock_client, two_targets) -> None:
        client = mock_client({"a.test": 200, "b.test": HANG})
        results = asyncio.run(check_all(two_targets, timeout=0.05, client=client))
        assert results == [
            ProbeResult(target=two_targets[0], outcome=ProbeOutcome.healthy(200)),
            ProbeResult(target=two_targets[1], outcome=ProbeOutcome.timeout()),
        ]

    def test_order_follows_registry_not_completion(self) -> None:
        targets = [Target(url=f"https://t{i}.test", name=f"T{i}") for i in range(6)]

        async def handler(request: httpx.Request) -> httpx.Response:
            index = int(request.url.host[1])
            # earlier targets answer last
            await asyncio.sleep(0.01 * (6 - index))
            return httpx.Response(200 if index % 2 == 0 else 500)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        results = asyncio.run(check_all(targets, timeout=1.0, client=client))
        assert [r.target for r in results] == targets
        assert [r.outcome.bucket for r in results] == [
            Bucket.HEALTHY, Bucket.WARNING, Bucket.HEALTHY,
            Bucket.WARNING, Bucket.HEALTHY, Bucket.WARNING,
        ]

    def test_all_failing_keeps_every_target(self, mock_client) -> None:
        targets = [Target(url=f"https://f{i}.test", name=f"F{i}") for i in range(4)]
        client = mock_client({f"f{i}.test": httpx.ConnectError for i in range(4)})
        results = asyncio.run(check_all(targets, timeout=1.0, client=client))
        assert len(results) == 4
        assert [r.target for r in results] == targets
        assert all(r.outcome.kind is OutcomeKind.UNREACHABLE for r in results)

    def test_empty_registry(self, mock_client) -> None:
        assert asyncio.run(check_all([], client=mock_client({}))) == []

    def test_concurrency_cap_keeps_results(self) -> None:
        targets = [Target(url=f"https://c{i}.test", name=f"C{i}") for i in range(5)]
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        results = asyncio.run(check_all(targets, timeout=1.0, client=client, max_concurrency=2))
        assert peak <= 2
        assert [r.target for r in results] == targets
        assert all(r.outcome.kind is OutcomeKind.HEALTHY for r in results)

    def test_internal_failure_falls_back_to_check_failed(self, mock_client, two_targets) -> None:
        with patch("src.health.engine.probe_target", side_effect=RuntimeError("bug")):
            results = asyncio.run(check_all(two_targets, client=mock_client({})))
        assert results == failed_results(two_targets)
        assert all(r.outcome == ProbeOutcome.unreachable(CHECK_FAILED) for r in results)

    def test_owns_client_when_none_given(self, two_targets) -> None:
        with patch("src.health.engine._fan_out", side_effect=RuntimeError("no network")) as fan_out:
            results = asyncio.run(check_all(two_targets, timeout=1.0))
        assert fan_out.call_count == 1
        assert isinstance(fan_out.call_args.args[1], httpx.AsyncClient)
        assert len(results) == 2


@pytest.mark.parametrize("size", [1, 3, 10])
def test_result_length_matches_registry(mock_client, size: int) -> None:
    targets = [Target(url=f"https://n{i}.test", name=f"N{i}") for i in range(size)]
    routes = {f"n{i}.test": (200, 404, httpx.ConnectError)[i % 3] for i in range(size)}
    results = asyncio.run(check_all(targets, timeout=1.0, client=mock_client(routes)))
    assert len(results) == size
    assert [r.target for r in results] == targets
