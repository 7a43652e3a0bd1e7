"""Certificate expiry, firewall rules and pending package updates."""

from __future__ import annotations

import asyncio
import math
from datetime import datetime
from pathlib import Path

from cryptography import x509

from ..commands import CommandRunner
from ..errors import ProbeUnknown
from ..models import Metric, ProbeResult, Unit
from ..probe import Probe, ProbeContext


def days_until(expiry: datetime, now: datetime) -> int:
    """Whole days from ``now`` until ``expiry`` (negative once expired)."""
    return math.floor((expiry - now).total_seconds() / 86_400)


class CertificateProbe(Probe):
    name = "certificate"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> x509.Certificate:
        try:
            data = self.path.read_bytes()
        except FileNotFoundError as e:
            raise ProbeUnknown(f"Certificate not found: {self.path}") from e
        except OSError as e:
            raise ProbeUnknown(f"Cannot read {self.path}: {e}") from e
        try:
            return x509.load_pem_x509_certificate(data)
        except ValueError as e:
            raise ProbeUnknown(f"Invalid PEM certificate: {e}") from e

    async def measure(self, context: ProbeContext) -> ProbeResult:
        cert = await asyncio.to_thread(self._load)
        not_after = cert.not_valid_after_utc
        days_left = days_until(not_after, context.now)
        valid = cert.not_valid_before_utc <= context.now <= not_after
        metrics = (
            Metric("days_until_expiry", days_left, Unit.DAYS),
            Metric("valid", valid, Unit.BOOLEAN),
            Metric("expires", not_after.isoformat(), Unit.INFO),
        )
        if days_left < 0:
            return ProbeResult.unhealthy(f"Certificate expired {-days_left} days ago", *metrics)
        return ProbeResult.healthy(*metrics)


def count_iptables_rules(text: str) -> int:
    """Count rule rows in ``iptables -L -n`` output, skipping chain headers."""
    if "Chain " not in text:
        raise ProbeUnknown("iptables output has no chains")
    rules = 0
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(("Chain ", "target ")):
            continue
        rules += 1
    return rules


class FirewallProbe(Probe):
    name = "firewall"

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    async def measure(self, context: ProbeContext) -> ProbeResult:
        result = await self.runner.run(["iptables", "-L", "-n"])
        if not result.ok:
            raise ProbeUnknown(result.describe_failure())
        return ProbeResult.healthy(Metric("rules", count_iptables_rules(result.stdout), Unit.COUNT))


def parse_apt_upgradable(text: str) -> tuple[int, int]:
    """Return (pending, security) package counts from ``apt list --upgradable``.

    Rows look like ``openssl/jammy-security,jammy-updates 3.0.2 amd64 [...]``.
    """
    pending = security = 0
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(("Listing", "WARNING", "N:", "W:", "E:")):
            continue
        package = line.split()[0]
        if "/" not in package:
            raise ProbeUnknown(f"Unrecognised apt row: {line!r}")
        pending += 1
        suites = package.split("/", 1)[1].split(",")
        if any(s.endswith("-security") for s in suites):
            security += 1
    return pending, security


class SecurityUpdatesProbe(Probe):
    name = "security_updates"

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    async def measure(self, context: ProbeContext) -> ProbeResult:
        result = await self.runner.run(["apt", "list", "--upgradable"])
        if not result.ok:
            raise ProbeUnknown(result.describe_failure())
        pending, security = parse_apt_upgradable(result.stdout)
        return ProbeResult.healthy(
            Metric("pending", pending, Unit.COUNT),
            Metric("security", security, Unit.COUNT),
        )
