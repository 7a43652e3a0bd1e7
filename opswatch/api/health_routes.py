"""API routes for the health aggregator.

Endpoints:
  POST /api/health/cycle       — run one health-check cycle now
  GET  /api/health/audit       — most recent audit records
  GET  /api/health/thresholds  — configured thresholds, in evaluation order
  GET  /api/health/status      — scheduler + notifier state
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query, Request

logger = logging.getLogger(__name__)

health_router = APIRouter()


@health_router.post("/health/cycle")
async def run_cycle(request: Request) -> dict[str, Any]:
    """Run one cycle and return the full report and every alert."""
    reporter = request.app.state.reporter
    result = await reporter.run_cycle()
    return result.to_dict()


@health_router.get("/health/audit")
def audit_history(
    request: Request, limit: int = Query(default=20, ge=1, le=500),
) -> dict[str, Any]:
    """Newest-first audit records from the on-disk trail."""
    audit = request.app.state.reporter.audit
    if audit is None:
        return {"records": []}
    return {"records": audit.read_recent(limit)}


@health_router.get("/health/thresholds")
def list_thresholds(request: Request) -> dict[str, Any]:
    evaluator = request.app.state.reporter.evaluator
    return {"thresholds": [t.to_dict() for t in evaluator.thresholds]}


@health_router.get("/health/status")
def scheduler_status(request: Request) -> dict[str, Any]:
    reporter = request.app.state.reporter
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "scheduler": {
            "running": bool(scheduler and scheduler.running),
            "interval_seconds": scheduler.interval if scheduler else None,
            "cycles_run": scheduler.cycles_run if scheduler else 0,
        },
        "notifier": reporter.notifier.status() if reporter.notifier else {"enabled": False},
    }
