"""Tests for the FastAPI routes."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from opswatch.api.server import create_app
from opswatch.health.audit import AuditLog
from opswatch.health.evaluator import ThresholdEvaluator
from opswatch.health.group import ProbeGroup
from opswatch.health.models import DOMAINS, Metric, ProbeResult, Unit
from opswatch.health.reporter import HealthReporter
from opswatch.notifications import Notifier


@pytest.fixture
def reporter(make_probe, tmp_path: Path) -> HealthReporter:
    groups = {name: ProbeGroup(name, [make_probe(f"{name}_probe")]) for name in DOMAINS}
    groups["system"] = ProbeGroup("system", [
        make_probe("cpu", ProbeResult.healthy(Metric("usage", 97.0, Unit.PERCENT))),
    ])
    return HealthReporter(
        groups,
        ThresholdEvaluator.from_source(),
        audit=AuditLog(tmp_path / "health.log"),
        notifier=Notifier(""),
    )


@pytest.fixture
def client(reporter: HealthReporter) -> TestClient:
    return TestClient(create_app(reporter=reporter, run_scheduler=False))


class TestHealthRoutes:
    def test_run_cycle(self, client: TestClient) -> None:
        resp = client.post("/api/health/cycle")
        assert resp.status_code == 200
        data = resp.json()
        assert list(data["health"])[1:] == list(DOMAINS)
        assert data["health"]["system"]["probes"]["cpu"]["metrics"]["usage"]["value"] == 97.0
        assert data["alerts"][0]["severity"] == "critical"
        assert data["notification"]["skipped"] is True

    def test_audit_history(self, client: TestClient) -> None:
        client.post("/api/health/cycle")
        client.post("/api/health/cycle")
        resp = client.get("/api/health/audit", params={"limit": 1})
        assert resp.status_code == 200
        assert len(resp.json()["records"]) == 1

    def test_audit_limit_validated(self, client: TestClient) -> None:
        assert client.get("/api/health/audit", params={"limit": 0}).status_code == 422

    def test_thresholds(self, client: TestClient) -> None:
        resp = client.get("/api/health/thresholds")
        assert resp.status_code == 200
        paths = [t["metric_path"] for t in resp.json()["thresholds"]]
        assert paths[0] == "system.cpu.usage"

    def test_status_without_scheduler(self, client: TestClient) -> None:
        resp = client.get("/api/health/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["scheduler"]["running"] is False
        assert data["notifier"] == {"enabled": False}
