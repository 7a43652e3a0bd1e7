"""HealthReporter: one health-check cycle, end to end.

Fan out to the four ProbeGroups, wait for all of them (or the cycle
deadline), merge by domain name, evaluate thresholds, append the audit
record and notify on critical alerts. A cycle always returns a report.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..config import Settings
from ..notifications import Delivery, Notifier
from .audit import AuditLog
from .domains import ProbeDependencies, build_probe_groups
from .errors import NotificationFailure
from .evaluator import ThresholdEvaluator
from .group import GRACE_SECONDS, ProbeGroup
from .models import DOMAINS, Alert, DomainReport, HealthReport
from .probe import ProbeContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    """Everything one cycle produced, for the caller to display."""

    report: HealthReport
    alerts: tuple[Alert, ...] = field(default_factory=tuple)
    notification: Delivery | None = None  # None when nothing was critical

    @property
    def critical_alerts(self) -> list[Alert]:
        return [a for a in self.alerts if a.is_critical]

    @property
    def has_critical(self) -> bool:
        return any(a.is_critical for a in self.alerts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "health": self.report.to_dict(),
            "alerts": [a.to_dict() for a in self.alerts],
            "notification": self.notification.to_dict() if self.notification else None,
        }


class HealthReporter:
    """Orchestrates the four probe groups and what follows them."""

    def __init__(
        self,
        groups: Mapping[str, ProbeGroup],
        evaluator: ThresholdEvaluator,
        audit: AuditLog | None = None,
        notifier: Notifier | None = None,
        cycle_deadline_ms: int = 30_000,
    ) -> None:
        missing = set(DOMAINS) - set(groups)
        extra = set(groups) - set(DOMAINS)
        if missing or extra:
            raise ValueError(f"Reporter needs exactly the groups {DOMAINS}; missing={missing} extra={extra}")
        self.groups = dict(groups)
        self.evaluator = evaluator
        self.audit = audit
        self.notifier = notifier
        self.cycle_deadline_ms = cycle_deadline_ms

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        evaluator: ThresholdEvaluator | None = None,
        deps: ProbeDependencies | None = None,
    ) -> HealthReporter:
        """Wire a reporter from settings; thresholds are loaded here (may raise)."""
        if evaluator is None:
            evaluator = ThresholdEvaluator.from_source(settings.thresholds_file or None)
        return cls(
            groups=build_probe_groups(settings, deps),
            evaluator=evaluator,
            audit=AuditLog(settings.audit_log_path),
            notifier=Notifier(settings.alert_webhook_url, settings.webhook_timeout_ms),
            cycle_deadline_ms=settings.cycle_deadline_ms,
        )

    async def run_cycle(self, context: ProbeContext | None = None) -> CycleResult:
        """Run one cycle. Never raises for probe, audit or notifier failures."""
        context = context or ProbeContext(deadline=self.cycle_deadline_ms / 1000)
        t0 = time.perf_counter()

        sections = await self._run_groups(context)
        report = HealthReport(timestamp=context.now, **sections)
        alerts = self.evaluator.evaluate(report)

        # Shared external resources are touched only after every probe is done
        await self._persist(report, alerts)
        critical = [a for a in alerts if a.is_critical]
        notification = await self._notify(critical) if critical else None

        logger.info(
            "Health cycle finished in %dms: %d failing probe(s), %d alert(s), %d critical",
            (time.perf_counter() - t0) * 1000,
            sum(d.failures for d in report.domains()),
            len(alerts),
            len(critical),
        )
        return CycleResult(report, tuple(alerts), notification)

    async def _run_groups(self, context: ProbeContext) -> dict[str, DomainReport]:
        tasks = {
            name: asyncio.create_task(group.run(context), name=f"group-{name}")
            for name, group in self.groups.items()
        }
        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=context.deadline + 2 * GRACE_SECONDS)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        if pending:
            logger.warning("Cycle deadline elapsed, cancelling %d group(s)", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.wait(pending, timeout=GRACE_SECONDS)

        # Merge by declared domain name, not by completion order
        sections: dict[str, DomainReport] = {}
        for name in DOMAINS:
            task, group = tasks[name], self.groups[name]
            if task in pending or task.cancelled():
                sections[name] = group.timed_out()
            elif task.exception() is not None:
                exc = task.exception()
                logger.error("Probe group %s failed: %r", name, exc)
                sections[name] = DomainReport.all_unknown(
                    name, group.probe_names, f"{type(exc).__name__}: {exc}",
                )
            else:
                sections[name] = task.result()
        return sections

    async def _persist(self, report: HealthReport, alerts: list[Alert]) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.append(report, alerts)
        except Exception:
            logger.exception("Failed to append audit record to %s", self.audit.path)

    async def _notify(self, critical: list[Alert]) -> Delivery | None:
        if self.notifier is None:
            return None
        try:
            delivery = await self.notifier.send(critical)
        except Exception as exc:
            logger.exception("Notifier raised while sending %d critical alert(s)", len(critical))
            return Delivery(False, NotificationFailure(f"{type(exc).__name__}: {exc}"))
        if delivery.error is not None:
            logger.warning("Critical alerts not delivered: %s", delivery.error)
        return delivery
