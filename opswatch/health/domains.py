"""Builds the four domain ProbeGroups from explicit settings and collaborators."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import asyncpg
import httpx
import redis.asyncio as redis
import websockets

from ..config import Settings
from .commands import CommandRunner
from .group import ProbeGroup
from .probes import (
    ActiveUsersProbe,
    ApiProbe,
    CacheProbe,
    CertificateProbe,
    ContainerProbe,
    CpuProbe,
    DatastoreProbe,
    DiskProbe,
    ErrorRateProbe,
    FirewallProbe,
    MemoryProbe,
    RealtimeProbe,
    RequestRateProbe,
    ResponseTimeProbe,
    SecurityUpdatesProbe,
)


@dataclass
class ProbeDependencies:
    """Connection factories and command execution consumed by the probes.

    Anything left as None is filled with a default built from settings.
    """

    datastore_connect: Callable[[], Awaitable[Any]] | None = None
    cache_connect: Callable[[], Any] | None = None
    http_client: Callable[[], httpx.AsyncClient] | None = None
    realtime_connect: Callable[[str], Awaitable[Any]] | None = None
    commands: CommandRunner | None = field(default=None)

    def resolved(self, settings: Settings) -> ProbeDependencies:
        connect_timeout = settings.probe_deadline_ms / 1000
        return ProbeDependencies(
            datastore_connect=self.datastore_connect or (
                lambda: asyncpg.connect(settings.datastore_dsn, timeout=connect_timeout)
            ),
            cache_connect=self.cache_connect or (
                lambda: redis.from_url(
                    settings.cache_url,
                    socket_connect_timeout=connect_timeout,
                    socket_timeout=connect_timeout,
                )
            ),
            http_client=self.http_client or (
                lambda: httpx.AsyncClient(timeout=connect_timeout, follow_redirects=True)
            ),
            # The probe owns the handshake timeout
            realtime_connect=self.realtime_connect or (
                lambda url: websockets.connect(url, open_timeout=None)
            ),
            commands=self.commands or CommandRunner(settings.command_timeout_ms),
        )


def build_probe_groups(
    settings: Settings,
    deps: ProbeDependencies | None = None,
) -> dict[str, ProbeGroup]:
    """Return the system/application/services/security groups, in that order."""
    deps = (deps or ProbeDependencies()).resolved(settings)
    runner = deps.commands
    tail = settings.log_tail_bytes
    deadline = settings.probe_deadline_ms

    groups = {
        "system": ProbeGroup("system", [
            CpuProbe(),
            MemoryProbe(),
            DiskProbe(runner, settings.disk_path),
        ], deadline),
        "application": ProbeGroup("application", [
            ResponseTimeProbe(settings.access_log_path, tail),
            ErrorRateProbe(settings.error_log_path, tail),
            RequestRateProbe(settings.access_log_path, tail, settings.request_window_seconds),
            ActiveUsersProbe(deps.cache_connect, settings.active_users_key),
            ContainerProbe(runner),
        ], deadline),
        "services": ProbeGroup("services", [
            DatastoreProbe(deps.datastore_connect),
            CacheProbe(deps.cache_connect),
            ApiProbe(deps.http_client, settings.api_health_url),
            RealtimeProbe(deps.realtime_connect, settings.realtime_url, settings.realtime_timeout_ms),
        ], deadline),
        "security": ProbeGroup("security", [
            CertificateProbe(settings.certificate_path),
            FirewallProbe(runner),
            SecurityUpdatesProbe(runner),
        ], deadline),
    }
    return groups
