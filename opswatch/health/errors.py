"""Error taxonomy for the health aggregator.

``ProbeUnknown`` and ``ProbeUnhealthy`` are raised inside probes and turned
into results at the probe boundary. ``EvaluationError`` is the only fatal
condition (malformed thresholds at load time). ``NotificationFailure`` is
recorded and logged, never raised out of a cycle.
"""

from __future__ import annotations


class ProbeUnknown(Exception):
    """The probe could not measure (missing file, tool absent, parse failure)."""


class ProbeUnhealthy(Exception):
    """The probe measured and found the subsystem failing."""


class EvaluationError(Exception):
    """Threshold configuration is malformed."""


class NotificationFailure(Exception):
    """Alert delivery to the external channel failed."""

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)
