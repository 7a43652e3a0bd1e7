"""Alert notifications — batched delivery to a Slack-compatible webhook.

Delivery is best-effort: one POST per batch, no retry. Failures come back as
a ``Delivery`` carrying a ``NotificationFailure`` and are logged; they never
raise into the health-check cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from ..health.errors import NotificationFailure
from ..health.models import Alert, Severity

logger = logging.getLogger(__name__)


# Emoji/colour mapping
_EMOJI = {
    Severity.WARNING: "⚠️",
    Severity.CRITICAL: "🔴",
}
_COLOR = {
    Severity.WARNING: "warning",
    Severity.CRITICAL: "danger",
}


@dataclass(frozen=True)
class Delivery:
    """Outcome of one ``Notifier.send`` call."""

    delivered: bool
    error: NotificationFailure | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "delivered": self.delivered,
            "skipped": self.skipped,
            "error": str(self.error) if self.error else None,
        }


def build_payload(alerts: Sequence[Alert]) -> dict[str, Any]:
    """One outbound message for the whole batch."""
    critical = any(a.is_critical for a in alerts)
    title = "🚨 Critical System Alerts" if critical else "⚠️ System Alerts"
    return {
        "text": title,
        "attachments": [
            {"color": _COLOR[a.severity], "text": f"{_EMOJI[a.severity]} {a.message}"}
            for a in alerts
        ],
        "alerts": [{"severity": a.severity.value, "message": a.message} for a in alerts],
    }


class Notifier:
    """Posts alert batches to the configured webhook."""

    def __init__(
        self,
        webhook_url: str = "",
        timeout_ms: int = 10_000,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=timeout_ms / 1000))

    @property
    def is_enabled(self) -> bool:
        return bool(self.webhook_url)

    def status(self) -> dict[str, Any]:
        return {"enabled": self.is_enabled}

    async def send(self, alerts: Sequence[Alert]) -> Delivery:
        if not alerts:
            return Delivery(False, skipped=True)
        if not self.is_enabled:
            logger.info("Notifier disabled (no webhook), %d alert(s) not sent", len(alerts))
            return Delivery(False, skipped=True)

        try:
            async with self._client_factory() as client:
                resp = await client.post(self.webhook_url, json=build_payload(alerts))
        except httpx.HTTPError as exc:
            logger.warning("Alert notification failed: %s", exc)
            return Delivery(False, NotificationFailure(f"{type(exc).__name__}: {exc}"))

        if not resp.is_success:
            logger.warning("Webhook returned %d: %s", resp.status_code, resp.text[:200])
            return Delivery(
                False,
                NotificationFailure(f"Webhook returned {resp.status_code}", resp.status_code),
            )

        logger.info("Sent %d alert(s) to webhook", len(alerts))
        return Delivery(True)
