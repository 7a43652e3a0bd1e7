"""Threshold evaluation — turns a HealthReport into alerts.

``evaluate`` is a pure function of (report, thresholds): alerts come out in
threshold declaration order and carry the report's own timestamp, so the same
inputs always produce the same alerts. Metrics from ``unknown`` probes are
never evaluated; missing data is not itself an alert.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, StrictBool, ValidationError

from .errors import EvaluationError
from .models import DOMAINS, Alert, HealthReport, Metric, Severity, Threshold, Unit

logger = logging.getLogger(__name__)

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}
ORDERING = {">", "<", ">=", "<="}

# Used when no thresholds file is configured
DEFAULT_THRESHOLDS: dict[str, Any] = {
    "system.cpu.usage": {"operator": ">", "limit": 80, "severity": "critical"},
    "system.memory.usage": {"operator": ">", "limit": 85, "severity": "critical"},
    "system.disk.usage": {"operator": ">", "limit": 90, "severity": "warning"},
    "application.response_time.average": {"operator": ">", "limit": 1000, "severity": "warning"},
    "application.error_rate.rate": {"operator": ">", "limit": 0.01, "severity": "critical"},
    "security.certificate.days_until_expiry": {"operator": "<", "limit": 14, "severity": "warning"},
}


# ── Loading ──────────────────────────────────────────────────────────────────


class ThresholdSpec(BaseModel):
    """One ``{operator, limit, severity}`` entry of the threshold config."""

    model_config = {"extra": "forbid"}

    operator: Literal[">", "<", ">=", "<=", "==", "!="]
    limit: StrictBool | int | float
    severity: Severity


def _validate_path(path: Any) -> str:
    if not isinstance(path, str):
        raise EvaluationError(f"Metric path must be a string, got {path!r}")
    parts = path.split(".", 2)
    if len(parts) != 3 or not all(parts):
        raise EvaluationError(f"Metric path must be <domain>.<probe>.<metric>: {path!r}")
    if parts[0] not in DOMAINS:
        raise EvaluationError(f"Unknown domain {parts[0]!r} in {path!r} (expected one of {DOMAINS})")
    return path


def _parse_spec(path: str, raw: Any) -> Threshold:
    try:
        spec = ThresholdSpec.model_validate(raw)
    except ValidationError as e:
        raise EvaluationError(f"Invalid threshold for {path}: {e}") from e
    if spec.operator in ORDERING and isinstance(spec.limit, bool):
        raise EvaluationError(f"Operator {spec.operator!r} needs a numeric limit for {path}")
    return Threshold(path, spec.operator, spec.limit, spec.severity)


def load_thresholds(source: Mapping[str, Any] | str | Path | None = None) -> list[Threshold]:
    """Parse threshold configuration, failing fast on anything malformed.

    ``source`` is a mapping of metric path to one spec or a list of specs, a
    YAML file holding such a mapping (optionally under a ``thresholds`` key),
    or None for the built-in defaults. Declaration order is preserved.
    """
    if source is None:
        raw: Any = DEFAULT_THRESHOLDS
    elif isinstance(source, (str, Path)):
        path = Path(source)
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise EvaluationError(f"Cannot load thresholds from {path}: {e}") from e
        if isinstance(raw, dict) and "thresholds" in raw:
            raw = raw["thresholds"]
    else:
        raw = source

    if not isinstance(raw, Mapping):
        raise EvaluationError(f"Threshold config must be a mapping, got {type(raw).__name__}")

    thresholds: list[Threshold] = []
    for metric_path, specs in raw.items():
        metric_path = _validate_path(metric_path)
        for spec in specs if isinstance(specs, list) else [specs]:
            thresholds.append(_parse_spec(metric_path, spec))

    logger.info("Loaded %d thresholds", len(thresholds))
    return thresholds


# ── Evaluation ───────────────────────────────────────────────────────────────


def format_value(metric: Metric) -> str:
    value = metric.value
    if not metric.is_numeric:
        return str(value)
    if metric.unit == Unit.PERCENT:
        return f"{value:.2f}%"
    if metric.unit == Unit.RATIO:
        return f"{value * 100:.2f}%"
    if metric.unit == Unit.MILLISECONDS:
        return f"{value:g}ms"
    if metric.unit == Unit.DAYS:
        return f"{value} days"
    return f"{value:g}"


def _comparable(metric: Metric, threshold: Threshold) -> bool:
    if threshold.operator in ORDERING:
        return metric.is_numeric
    return True


def evaluate(report: HealthReport, thresholds: Iterable[Threshold]) -> list[Alert]:
    """Return the alerts ``report`` triggers, in threshold declaration order."""
    alerts: list[Alert] = []
    for threshold in thresholds:
        metric = report.metric(threshold.metric_path)
        if metric is None:
            continue
        if not _comparable(metric, threshold):
            logger.debug("Skipping %s: %r is not numeric", threshold.metric_path, metric.value)
            continue
        if not OPERATORS[threshold.operator](metric.value, threshold.limit):
            continue
        alerts.append(Alert(
            severity=threshold.severity,
            message=f"{threshold.metric_path} is {format_value(metric)} ({threshold.operator} {threshold.limit})",
            source_metric_path=threshold.metric_path,
            observed_value=metric.value,
            limit=threshold.limit,
            timestamp=report.timestamp,
        ))
    return alerts


class ThresholdEvaluator:
    """Holds a read-only threshold set loaded once at startup."""

    def __init__(self, thresholds: Iterable[Threshold]) -> None:
        self.thresholds: tuple[Threshold, ...] = tuple(thresholds)

    @classmethod
    def from_source(cls, source: Mapping[str, Any] | str | Path | None = None) -> ThresholdEvaluator:
        return cls(load_thresholds(source))

    def evaluate(self, report: HealthReport) -> list[Alert]:
        return evaluate(report, self.thresholds)
