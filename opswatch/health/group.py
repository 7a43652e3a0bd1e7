"""Runs one domain's probes concurrently under a shared deadline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from .models import DomainReport, ProbeResult
from .probe import TIMEOUT, Probe, ProbeContext

logger = logging.getLogger(__name__)

# Extra time granted to probes before the group stops waiting on them
GRACE_SECONDS = 0.25


class ProbeGroup:
    """A named set of probes belonging to one domain.

    ``run`` never raises: probes that miss the deadline are cancelled and
    recorded as ``unknown("timeout")``; siblings are unaffected.
    """

    def __init__(self, name: str, probes: Sequence[Probe], deadline_ms: int = 10_000) -> None:
        names = [p.name for p in probes]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate probe names in group {name}: {sorted(duplicates)}")
        self.name = name
        self.probes = list(probes)
        self.deadline_ms = deadline_ms

    @property
    def probe_names(self) -> list[str]:
        return [p.name for p in self.probes]

    def timed_out(self) -> DomainReport:
        """Report used when the whole group was cut off by the cycle deadline."""
        return DomainReport.all_unknown(self.name, self.probe_names, TIMEOUT)

    async def run(self, context: ProbeContext) -> DomainReport:
        deadline = min(context.deadline, self.deadline_ms / 1000)
        probe_context = context.with_deadline(deadline)

        tasks = {
            probe: asyncio.create_task(probe.run(probe_context), name=f"probe-{self.name}-{probe.name}")
            for probe in self.probes
        }
        if not tasks:
            return DomainReport(self.name, {})

        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=deadline + GRACE_SECONDS)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        if pending:
            logger.warning(
                "Group %s: %d probe(s) still running after %.1fs, cancelling",
                self.name, len(pending), deadline,
            )
            for task in pending:
                task.cancel()
            await asyncio.wait(pending, timeout=GRACE_SECONDS)

        results: dict[str, ProbeResult] = {}
        for probe, task in tasks.items():
            if task in pending or task.cancelled():
                results[probe.name] = ProbeResult.unknown(TIMEOUT)
            elif task.exception() is not None:
                exc = task.exception()
                logger.error("Probe %s escaped its boundary: %r", probe.name, exc)
                results[probe.name] = ProbeResult.unhealthy(f"{type(exc).__name__}: {exc}")
            else:
                results[probe.name] = task.result()

        report = DomainReport(self.name, results)
        logger.debug("Group %s finished: %d/%d failing", self.name, report.failures, len(results))
        return report
