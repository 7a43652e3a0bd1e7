"""Tests for dependent-service probes."""

from __future__ import annotations

import asyncio
import time

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from opswatch.health.models import Status
from opswatch.health.probes.services import ApiProbe, CacheProbe, DatastoreProbe, RealtimeProbe


# ── Fakes ────────────────────────────────────────────────────────────────────


class FakeConnection:
    def __init__(self, fail_query: bool = False) -> None:
        self.fail_query = fail_query
        self.closed = False
        self.queries: list[str] = []

    async def fetchval(self, query: str) -> int:
        self.queries.append(query)
        if self.fail_query:
            raise RuntimeError("relation does not exist")
        return 7 if "pg_stat_activity" in query else 1

    async def close(self) -> None:
        self.closed = True


class FakeCache:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.closed = False

    async def ping(self) -> bool:
        if self.fail:
            raise RedisConnectionError("Error 111 connecting to localhost:6379")
        return True

    async def info(self) -> dict:
        return {"connected_clients": 3, "used_memory": "1048576"}

    async def aclose(self) -> None:
        self.closed = True


class FakeSocket:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _http_factory(handler):
    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── Datastore ────────────────────────────────────────────────────────────────


class TestDatastoreProbe:
    @pytest.mark.asyncio
    async def test_ping_and_close(self, context) -> None:
        conn = FakeConnection()

        async def connect():
            return conn

        result = await DatastoreProbe(connect).run(context)
        assert result.status == Status.HEALTHY
        assert result.metrics["connections"].value == 7
        assert conn.queries[0] == "SELECT 1"
        assert conn.closed

    @pytest.mark.asyncio
    async def test_connection_refused_is_unhealthy(self, context) -> None:
        async def connect():
            raise ConnectionRefusedError(111, "Connection refused")

        result = await DatastoreProbe(connect).run(context)
        assert result.status == Status.UNHEALTHY
        assert "Connection refused" in result.error

    @pytest.mark.asyncio
    async def test_connection_released_on_query_error(self, context) -> None:
        conn = FakeConnection(fail_query=True)

        async def connect():
            return conn

        result = await DatastoreProbe(connect).run(context)
        assert result.status == Status.UNHEALTHY
        assert conn.closed

    @pytest.mark.asyncio
    async def test_connect_timeout_is_unhealthy(self, context) -> None:
        async def connect():
            raise asyncio.TimeoutError()

        result = await DatastoreProbe(connect).run(context)
        assert result.status == Status.UNHEALTHY
        assert result.error == "timeout"


# ── Cache ────────────────────────────────────────────────────────────────────


class TestCacheProbe:
    @pytest.mark.asyncio
    async def test_ping_info(self, context) -> None:
        cache = FakeCache()
        result = await CacheProbe(lambda: cache).run(context)
        assert result.status == Status.HEALTHY
        assert result.metrics["connected_clients"].value == 3
        assert result.metrics["used_memory"].value == 1048576
        assert cache.closed

    @pytest.mark.asyncio
    async def test_refused(self, context) -> None:
        cache = FakeCache(fail=True)
        result = await CacheProbe(lambda: cache).run(context)
        assert result.status == Status.UNHEALTHY
        assert cache.closed


# ── API ──────────────────────────────────────────────────────────────────────


class TestApiProbe:
    @pytest.mark.asyncio
    async def test_2xx_healthy(self, context) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "ok", "version": "1.4.2"})

        result = await ApiProbe(_http_factory(handler), "http://api/health").run(context)
        assert result.status == Status.HEALTHY
        assert result.metrics["status_code"].value == 200
        assert result.metrics["version"].value == "1.4.2"
        assert result.metrics["latency"].value >= 0

    @pytest.mark.asyncio
    async def test_non_2xx_unhealthy_with_evidence(self, context) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        result = await ApiProbe(_http_factory(handler), "http://api/health").run(context)
        assert result.status == Status.UNHEALTHY
        assert result.error == "HTTP 503"
        assert result.metrics["status_code"].value == 503

    @pytest.mark.asyncio
    async def test_connect_error(self, context) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        result = await ApiProbe(_http_factory(handler), "http://api/health").run(context)
        assert result.status == Status.UNHEALTHY
        assert "Connection refused" in result.error

    @pytest.mark.asyncio
    async def test_read_timeout(self, context) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await ApiProbe(_http_factory(handler), "http://api/health").run(context)
        assert result.error == "timeout"


# ── Realtime channel ─────────────────────────────────────────────────────────


class TestRealtimeProbe:
    def test_default_timeout_is_five_seconds(self) -> None:
        probe = RealtimeProbe(lambda url: FakeSocket(), "ws://localhost/ws")
        assert probe.timeout_ms == 5_000

    @pytest.mark.asyncio
    async def test_open_wins(self, context) -> None:
        sock = FakeSocket()

        async def connect(url: str) -> FakeSocket:
            return sock

        result = await RealtimeProbe(connect, "ws://localhost/ws").run(context)
        assert result.status == Status.HEALTHY
        assert sock.closed

    @pytest.mark.asyncio
    async def test_error_wins(self, context) -> None:
        async def connect(url: str) -> FakeSocket:
            raise ConnectionRefusedError(111, "Connection refused")

        result = await RealtimeProbe(connect, "ws://localhost/ws").run(context)
        assert result.status == Status.UNHEALTHY
        assert "Connection refused" in result.error

    @pytest.mark.asyncio
    async def test_dial_never_completes_is_unhealthy_timeout(self, context) -> None:
        async def connect(url: str) -> FakeSocket:
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

        t0 = time.perf_counter()
        result = await RealtimeProbe(connect, "ws://localhost/ws", timeout_ms=100).run(context)
        assert result.status == Status.UNHEALTHY
        assert result.error == "timeout"
        assert time.perf_counter() - t0 < 1.0
