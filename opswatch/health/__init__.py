"""Probes, probe groups, threshold evaluation and the audit trail."""

from .audit import AuditLog
from .domains import ProbeDependencies, build_probe_groups
from .errors import EvaluationError, NotificationFailure, ProbeUnhealthy, ProbeUnknown
from .evaluator import ThresholdEvaluator, evaluate, load_thresholds
from .group import ProbeGroup
from .models import (
    Alert,
    DomainReport,
    HealthReport,
    Metric,
    ProbeResult,
    Severity,
    Status,
    Threshold,
    Unit,
)
from .probe import Probe, ProbeContext
