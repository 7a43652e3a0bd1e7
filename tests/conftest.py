"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from opswatch.health.commands import CommandResult, CommandRunner
from opswatch.health.models import DOMAINS, DomainReport, HealthReport, Metric, ProbeResult, Unit
from opswatch.health.probe import Probe, ProbeContext

FIXED_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class StaticProbe(Probe):
    """Probe returning a canned result after an optional delay."""

    def __init__(
        self,
        name: str,
        result: ProbeResult | None = None,
        delay: float = 0.0,
        exc: BaseException | None = None,
    ) -> None:
        self.name = name
        self.result = result or ProbeResult.healthy(Metric("value", 1, Unit.COUNT))
        self.delay = delay
        self.exc = exc
        self.started = False
        self.cancelled = False

    async def measure(self, context: ProbeContext) -> ProbeResult:
        self.started = True
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.exc is not None:
            raise self.exc
        return self.result


class FakeRunner(CommandRunner):
    """CommandRunner answering from a table keyed by executable name."""

    def __init__(self, outputs: dict[str, CommandResult] | None = None) -> None:
        super().__init__()
        self.outputs = outputs or {}
        self.calls: list[list[str]] = []

    async def run(self, argv: list[str], timeout_ms: int | None = None) -> CommandResult:
        self.calls.append(list(argv))
        if argv[0] in self.outputs:
            return self.outputs[argv[0]]
        return CommandResult(tuple(argv), -1, "", f"Command not found: {argv[0]}", 0)


def command_ok(argv0: str, stdout: str) -> CommandResult:
    return CommandResult((argv0,), 0, stdout, "", 5)


@pytest.fixture
def context() -> ProbeContext:
    return ProbeContext(deadline=5.0, now=FIXED_NOW)


@pytest.fixture
def make_probe() -> Callable[..., StaticProbe]:
    return StaticProbe


@pytest.fixture
def fake_runner() -> Callable[..., FakeRunner]:
    def _make(**stdout_by_command: str) -> FakeRunner:
        return FakeRunner({cmd: command_ok(cmd, out) for cmd, out in stdout_by_command.items()})
    return _make


@pytest.fixture
def make_report() -> Callable[..., HealthReport]:
    """Build a HealthReport from ``{domain: {probe: ProbeResult}}`` keyword args."""

    def _make(timestamp: datetime = FIXED_NOW, **domains: dict[str, Any]) -> HealthReport:
        sections = {name: DomainReport(name, domains.get(name, {})) for name in DOMAINS}
        return HealthReport(timestamp=timestamp, **sections)

    return _make
