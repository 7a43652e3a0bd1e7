"""Dependent-service probes — datastore, cache, HTTP API, realtime channel.

Each probe opens one short-lived connection from an injected factory, runs a
single lightweight operation and releases the connection in a ``finally``
block, so it is closed on error, timeout and cancellation alike.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..errors import ProbeUnhealthy
from ..models import Metric, ProbeResult, Unit
from ..probe import TIMEOUT, Probe, ProbeContext

logger = logging.getLogger(__name__)


def _latency(t0: float) -> Metric:
    return Metric("latency", round((time.perf_counter() - t0) * 1000, 1), Unit.MILLISECONDS)


class DatastoreProbe(Probe):
    """Connect, ``SELECT 1``, count server connections, disconnect."""

    name = "datastore"

    def __init__(self, connect: Callable[[], Awaitable[Any]]) -> None:
        self.connect = connect

    async def measure(self, context: ProbeContext) -> ProbeResult:
        t0 = time.perf_counter()
        try:
            conn = await self.connect()
        except asyncio.TimeoutError as e:
            raise ProbeUnhealthy(TIMEOUT) from e
        except OSError as e:
            raise ProbeUnhealthy(f"Connection error: {e}") from e
        try:
            await conn.fetchval("SELECT 1")
            connections = await conn.fetchval("SELECT count(*) FROM pg_stat_activity")
        finally:
            await conn.close()
        return ProbeResult.healthy(
            _latency(t0),
            Metric("connections", int(connections), Unit.COUNT),
        )


def _info_int(info: dict[str, Any], key: str) -> int:
    try:
        return int(info.get(key, 0))
    except (TypeError, ValueError):
        return 0


class CacheProbe(Probe):
    """``PING`` and ``INFO`` against the cache."""

    name = "cache"

    def __init__(self, connect: Callable[[], Any]) -> None:
        self.connect = connect

    async def measure(self, context: ProbeContext) -> ProbeResult:
        t0 = time.perf_counter()
        client = self.connect()
        try:
            await client.ping()
            info = await client.info()
        except RedisTimeoutError as e:
            raise ProbeUnhealthy(TIMEOUT) from e
        except (RedisError, OSError) as e:
            raise ProbeUnhealthy(f"Connection error: {e}") from e
        finally:
            await client.aclose()
        return ProbeResult.healthy(
            _latency(t0),
            Metric("connected_clients", _info_int(info, "connected_clients"), Unit.COUNT),
            Metric("used_memory", _info_int(info, "used_memory"), Unit.BYTES),
        )


class ApiProbe(Probe):
    """GET the API health endpoint; anything but 2xx is unhealthy."""

    name = "api"

    def __init__(self, client_factory: Callable[[], httpx.AsyncClient], url: str) -> None:
        self.client_factory = client_factory
        self.url = url

    async def measure(self, context: ProbeContext) -> ProbeResult:
        t0 = time.perf_counter()
        try:
            async with self.client_factory() as client:
                resp = await client.get(self.url)
        except httpx.TimeoutException as e:
            raise ProbeUnhealthy(TIMEOUT) from e
        except httpx.HTTPError as e:
            raise ProbeUnhealthy(f"Connection error: {e}") from e

        metrics = [_latency(t0), Metric("status_code", resp.status_code, Unit.INFO)]

        # Surface the version from a JSON health body when there is one
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "version" in body:
            metrics.append(Metric("version", str(body["version"]), Unit.INFO))

        if not resp.is_success:
            return ProbeResult.unhealthy(f"HTTP {resp.status_code}", *metrics)
        return ProbeResult.healthy(*metrics)


class RealtimeProbe(Probe):
    """Race the websocket opening handshake against a fixed timeout.

    Whichever happens first wins: open → healthy, error → unhealthy,
    timer → ``unhealthy("timeout")``. The socket is closed once open.
    """

    name = "realtime"

    def __init__(
        self,
        connect: Callable[[str], Awaitable[Any]],
        url: str,
        timeout_ms: int = 5_000,
    ) -> None:
        self.connect = connect
        self.url = url
        self.timeout_ms = timeout_ms

    async def measure(self, context: ProbeContext) -> ProbeResult:
        t0 = time.perf_counter()
        try:
            ws = await asyncio.wait_for(self.connect(self.url), timeout=self.timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise ProbeUnhealthy(TIMEOUT) from e
        except Exception as e:
            raise ProbeUnhealthy(f"{type(e).__name__}: {e}") from e
        latency = _latency(t0)
        try:
            await ws.close()
        except Exception:
            logger.debug("Realtime channel close failed", exc_info=True)
        return ProbeResult.healthy(latency)
