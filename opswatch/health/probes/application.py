"""Application behaviour probes — derived from log tails, cache and docker.

Log-derived probes read the tail of a rotating log file. A missing or
unreadable log is ``unknown``: it says nothing about the error rate, so it
must not look like "no errors".
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from redis.exceptions import RedisError

from ..commands import CommandRunner
from ..errors import ProbeUnknown
from ..models import Metric, ProbeResult, Unit
from ..probe import Probe, ProbeContext

RESPONSE_TIME_RE = re.compile(r"response-time:\s*(\d+(?:\.\d+)?)\s*ms")
BRACKET_TS_RE = re.compile(r"\[([^\]]+)\]")
CLF_FORMAT = "%d/%b/%Y:%H:%M:%S %z"  # 10/Oct/2024:13:55:36 +0000


# ── Log helpers ──────────────────────────────────────────────────────────────


def _tail_bytes(path: Path, max_bytes: int) -> bytes:
    with path.open("rb") as fh:
        fh.seek(0, 2)
        size = fh.tell()
        start = max(0, size - max_bytes)
        fh.seek(start)
        data = fh.read()
    if start > 0:
        # Drop the partial first line
        newline = data.find(b"\n")
        data = data[newline + 1:] if newline >= 0 else b""
    return data


def read_log_tail(path: Path, max_bytes: int) -> str:
    """Return up to ``max_bytes`` from the end of a rotating log.

    When the live file holds less than the budget, the remainder is taken
    from the tail of the rotated sibling ``<name>.1``.
    """
    if not path.is_file():
        raise ProbeUnknown(f"Log file not found: {path}")
    try:
        data = _tail_bytes(path, max_bytes)
        rotated = path.with_name(path.name + ".1")
        remaining = max_bytes - len(data)
        if remaining > 0 and rotated.is_file():
            older = _tail_bytes(rotated, remaining)
            if older and not older.endswith(b"\n"):
                older += b"\n"
            data = older + data
    except OSError as e:
        raise ProbeUnknown(f"Cannot read {path}: {e}") from e
    return data.decode("utf-8", errors="replace")


def parse_log_timestamp(raw: str) -> datetime | None:
    """Parse an ISO-8601 or common-log-format timestamp; naive means UTC."""
    raw = raw.strip()
    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        try:
            ts = datetime.strptime(raw, CLF_FORMAT)
        except ValueError:
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class LogProbe(Probe):
    """Base for probes computed from a log tail."""

    def __init__(self, path: str | Path, tail_bytes: int = 1_000_000) -> None:
        self.path = Path(path)
        self.tail_bytes = tail_bytes

    async def read_lines(self) -> list[str]:
        text = await asyncio.to_thread(read_log_tail, self.path, self.tail_bytes)
        return [line for line in text.splitlines() if line.strip()]


class ResponseTimeProbe(LogProbe):
    """Arithmetic mean of ``response-time: <n>ms`` entries in the access log."""

    name = "response_time"

    async def measure(self, context: ProbeContext) -> ProbeResult:
        times = [
            float(m.group(1))
            for line in await self.read_lines()
            if (m := RESPONSE_TIME_RE.search(line))
        ]
        if not times:
            raise ProbeUnknown(f"No response times in {self.path}")
        return ProbeResult.healthy(
            Metric("average", round(sum(times) / len(times), 2), Unit.MILLISECONDS),
            Metric("samples", len(times), Unit.COUNT),
        )


class ErrorRateProbe(LogProbe):
    """Share of lines in the error log that contain ``ERROR``."""

    name = "error_rate"

    def __init__(self, path: str | Path, tail_bytes: int = 1_000_000, marker: str = "ERROR") -> None:
        super().__init__(path, tail_bytes)
        self.marker = marker

    async def measure(self, context: ProbeContext) -> ProbeResult:
        lines = await self.read_lines()
        if not lines:
            raise ProbeUnknown(f"Log file is empty: {self.path}")
        errors = sum(1 for line in lines if self.marker in line)
        return ProbeResult.healthy(
            Metric("rate", errors / len(lines), Unit.RATIO),
            Metric("errors", errors, Unit.COUNT),
            Metric("lines", len(lines), Unit.COUNT),
        )


class RequestRateProbe(LogProbe):
    """Access-log lines stamped within the last window (default 60s)."""

    name = "request_rate"

    def __init__(
        self, path: str | Path, tail_bytes: int = 1_000_000, window_seconds: int = 60,
    ) -> None:
        super().__init__(path, tail_bytes)
        self.window = timedelta(seconds=window_seconds)

    async def measure(self, context: ProbeContext) -> ProbeResult:
        cutoff = context.now - self.window
        recent = 0
        for line in await self.read_lines():
            m = BRACKET_TS_RE.search(line)
            if not m:
                continue
            ts = parse_log_timestamp(m.group(1))
            if ts is not None and ts > cutoff:
                recent += 1
        return ProbeResult.healthy(Metric("per_minute", recent, Unit.COUNT))


# ── Cache / docker derived ───────────────────────────────────────────────────


class ActiveUsersProbe(Probe):
    """Size of the active-users set kept in the cache."""

    name = "active_users"

    def __init__(self, connect: Callable[[], Any], key: str = "active_users") -> None:
        self.connect = connect
        self.key = key

    async def measure(self, context: ProbeContext) -> ProbeResult:
        client = self.connect()
        try:
            count = await client.scard(self.key)
        except (RedisError, OSError) as e:
            raise ProbeUnknown(f"Cache unavailable: {e}") from e
        finally:
            await client.aclose()
        return ProbeResult.healthy(Metric("count", int(count), Unit.COUNT))


def parse_docker_stats(text: str) -> list[tuple[str, float, float]]:
    """Parse ``name<TAB>cpu%<TAB>mem%`` rows from ``docker stats``."""
    rows = []
    for line in text.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) != 3:
            raise ProbeUnknown(f"Unrecognised docker stats row: {line!r}")
        name, cpu, mem = parts
        try:
            rows.append((name.strip(), float(cpu.strip().rstrip("%")), float(mem.strip().rstrip("%"))))
        except ValueError as e:
            raise ProbeUnknown(f"Unparseable docker stats row: {line!r}") from e
    return rows


class ContainerProbe(Probe):
    name = "containers"

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    async def measure(self, context: ProbeContext) -> ProbeResult:
        result = await self.runner.run([
            "docker", "stats", "--no-stream",
            "--format", "{{.Name}}\t{{.CPUPerc}}\t{{.MemPerc}}",
        ])
        if not result.ok:
            raise ProbeUnknown(result.describe_failure())
        rows = parse_docker_stats(result.stdout)
        metrics = [Metric("count", len(rows), Unit.COUNT)]
        for name, cpu, mem in rows:
            metrics.append(Metric(f"{name}.cpu", cpu, Unit.PERCENT))
            metrics.append(Metric(f"{name}.memory", mem, Unit.PERCENT))
        return ProbeResult.healthy(*metrics)
