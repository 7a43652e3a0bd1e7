"""Domain models for one health-check cycle.

Everything here is a frozen snapshot: probes produce ``Metric`` and
``ProbeResult``, groups assemble ``DomainReport``, the reporter merges the four
domains into a ``HealthReport`` and the evaluator derives ``Alert`` objects.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any

# Fixed section order of a HealthReport
DOMAINS: tuple[str, ...] = ("system", "application", "services", "security")


class Status(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class Unit(str, Enum):
    PERCENT = "percent"
    MILLISECONDS = "milliseconds"
    SECONDS = "seconds"
    DAYS = "days"
    BYTES = "bytes"
    COUNT = "count"
    RATIO = "ratio"
    BOOLEAN = "boolean"
    INFO = "info"


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


# ── Probe output ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Metric:
    """A named measured value with its unit of meaning."""

    name: str
    value: Any
    unit: Unit = Unit.COUNT

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.value, (int, float)) and not isinstance(self.value, bool)

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "unit": self.unit.value}


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one probe run. ``unknown`` results never carry metrics."""

    status: Status
    metrics: Mapping[str, Metric] = field(default_factory=dict)
    error: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    @classmethod
    def healthy(cls, *metrics: Metric) -> ProbeResult:
        return cls(Status.HEALTHY, {m.name: m for m in metrics})

    @classmethod
    def unhealthy(cls, error: str, *metrics: Metric) -> ProbeResult:
        return cls(Status.UNHEALTHY, {m.name: m for m in metrics}, error)

    @classmethod
    def unknown(cls, error: str) -> ProbeResult:
        return cls(Status.UNKNOWN, {}, error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "metrics": {name: m.to_dict() for name, m in self.metrics.items()},
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class DomainReport:
    """Results of one ProbeGroup, keyed by probe name."""

    name: str
    results: Mapping[str, ProbeResult] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "results", MappingProxyType(dict(self.results)))

    @property
    def failures(self) -> int:
        """Number of member probes that did not come back healthy."""
        return sum(1 for r in self.results.values() if r.status != Status.HEALTHY)

    @classmethod
    def all_unknown(cls, name: str, probe_names: list[str], error: str) -> DomainReport:
        return cls(name, {p: ProbeResult.unknown(error) for p in probe_names})

    def to_dict(self) -> dict[str, Any]:
        return {
            "failures": self.failures,
            "probes": {name: r.to_dict() for name, r in self.results.items()},
        }


@dataclass(frozen=True)
class HealthReport:
    """Merged snapshot across the four domains for one cycle."""

    timestamp: datetime
    system: DomainReport
    application: DomainReport
    services: DomainReport
    security: DomainReport

    def domains(self) -> Iterator[DomainReport]:
        for name in DOMAINS:
            yield getattr(self, name)

    def metric(self, path: str) -> Metric | None:
        """Locate ``<domain>.<probe>.<metric>``; None when absent or unknown."""
        parts = path.split(".", 2)
        if len(parts) != 3 or parts[0] not in DOMAINS:
            return None
        domain, probe, name = parts
        result = getattr(self, domain).results.get(probe)
        if result is None or result.status == Status.UNKNOWN:
            return None
        return result.metrics.get(name)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"timestamp": self.timestamp.isoformat()}
        for report in self.domains():
            data[report.name] = report.to_dict()
        return data


# ── Thresholds and alerts ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Threshold:
    """A configured limit on one metric path."""

    metric_path: str
    operator: str
    limit: Any
    severity: Severity

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric_path": self.metric_path,
            "operator": self.operator,
            "limit": self.limit,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class Alert:
    """A threshold violation together with the evidence that produced it."""

    severity: Severity
    message: str
    source_metric_path: str
    observed_value: Any
    limit: Any
    timestamp: datetime

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "source_metric_path": self.source_metric_path,
            "observed_value": self.observed_value,
            "limit": self.limit,
            "timestamp": self.timestamp.isoformat(),
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
