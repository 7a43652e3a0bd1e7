"""Probes for host resources: processor, memory and disk usage."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import psutil

from ..commands import CommandRunner
from ..errors import ProbeUnknown
from ..models import Metric, ProbeResult, Unit
from ..probe import Probe, ProbeContext


class CpuProbe(Probe):
    name = "cpu"

    def __init__(self, sample_interval: float = 0.5) -> None:
        self.sample_interval = sample_interval

    def _sample(self) -> list[Metric]:
        usage = psutil.cpu_percent(interval=self.sample_interval)
        load_1, load_5, load_15 = psutil.getloadavg()
        return [
            Metric("usage", round(usage, 2), Unit.PERCENT),
            Metric("cores", psutil.cpu_count() or 0, Unit.COUNT),
            Metric("load_1m", round(load_1, 2), Unit.INFO),
            Metric("load_5m", round(load_5, 2), Unit.INFO),
            Metric("load_15m", round(load_15, 2), Unit.INFO),
            Metric("uptime", int(time.time() - psutil.boot_time()), Unit.SECONDS),
        ]

    async def measure(self, context: ProbeContext) -> ProbeResult:
        return ProbeResult.healthy(*await asyncio.to_thread(self._sample))


class MemoryProbe(Probe):
    name = "memory"

    async def measure(self, context: ProbeContext) -> ProbeResult:
        mem = await asyncio.to_thread(psutil.virtual_memory)
        return ProbeResult.healthy(
            Metric("usage", round(mem.percent, 2), Unit.PERCENT),
            Metric("total", mem.total, Unit.BYTES),
            Metric("available", mem.available, Unit.BYTES),
        )


def parse_df_output(text: str) -> dict[str, Any]:
    """Parse POSIX ``df -P`` output for a single filesystem.

    Sizes are reported in 1024-byte blocks and converted to bytes.
    Raises ProbeUnknown when the table does not have the expected shape.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise ProbeUnknown("df output has no data row")
    fields = lines[1].split()
    if len(fields) < 6 or not fields[4].endswith("%"):
        raise ProbeUnknown(f"Unrecognised df row: {lines[1]!r}")
    try:
        total, used, free = (int(f) * 1024 for f in fields[1:4])
        usage = float(fields[4].rstrip("%"))
    except ValueError as e:
        raise ProbeUnknown(f"Unparseable df row: {e}") from e
    return {"total": total, "used": used, "free": free, "usage": usage, "mount": fields[5]}


class DiskProbe(Probe):
    name = "disk"

    def __init__(self, runner: CommandRunner, path: str = "/") -> None:
        self.runner = runner
        self.path = path

    async def measure(self, context: ProbeContext) -> ProbeResult:
        result = await self.runner.run(["df", "-P", self.path])
        if not result.ok:
            raise ProbeUnknown(result.describe_failure())
        usage = parse_df_output(result.stdout)
        return ProbeResult.healthy(
            Metric("usage", usage["usage"], Unit.PERCENT),
            Metric("total", usage["total"], Unit.BYTES),
            Metric("used", usage["used"], Unit.BYTES),
            Metric("free", usage["free"], Unit.BYTES),
        )
