"""Base class for probes and the boundary where their failures become results.

A probe measures one aspect of one subsystem. Subclasses implement
``measure``; ``run`` enforces the caller's deadline and turns every failure
into a ``ProbeResult`` so nothing propagates past the probe.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime

from .errors import ProbeUnhealthy, ProbeUnknown
from .models import ProbeResult, utcnow

logger = logging.getLogger(__name__)

TIMEOUT = "timeout"


@dataclass(frozen=True)
class ProbeContext:
    """Per-run inputs: the time budget and the cycle's reference clock."""

    deadline: float  # seconds
    now: datetime = field(default_factory=utcnow)

    def with_deadline(self, deadline: float) -> ProbeContext:
        return replace(self, deadline=max(deadline, 0.0))


class Probe:
    """Base class for all probes."""

    name: str = "probe"

    async def measure(self, context: ProbeContext) -> ProbeResult:
        raise NotImplementedError

    async def run(self, context: ProbeContext) -> ProbeResult:
        """Run ``measure`` within ``context.deadline``; never raises."""
        t0 = time.perf_counter()
        try:
            result = await asyncio.wait_for(self.measure(context), timeout=context.deadline)
        except asyncio.TimeoutError:
            logger.warning("Probe %s exceeded its %.1fs deadline", self.name, context.deadline)
            return ProbeResult.unknown(TIMEOUT)
        except ProbeUnknown as e:
            logger.info("Probe %s could not measure: %s", self.name, e)
            return ProbeResult.unknown(str(e))
        except ProbeUnhealthy as e:
            logger.info("Probe %s unhealthy: %s", self.name, e)
            return ProbeResult.unhealthy(str(e))
        except Exception as e:
            logger.warning("Probe %s failed: %s: %s", self.name, type(e).__name__, e)
            return ProbeResult.unhealthy(f"{type(e).__name__}: {e}")

        logger.debug(
            "Probe %s: %s (%dms)",
            self.name, result.status.value, (time.perf_counter() - t0) * 1000,
        )
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
