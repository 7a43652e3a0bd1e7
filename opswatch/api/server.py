"""FastAPI server exposing the health aggregator."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from opswatch import __version__
from opswatch.api.health_routes import health_router
from opswatch.config import settings
from opswatch.health.reporter import HealthReporter
from opswatch.health.scheduler import HealthScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the reporter (thresholds load here and may abort startup)."""
    if getattr(app.state, "reporter", None) is None:
        app.state.reporter = HealthReporter.from_settings(settings)

    scheduler = None
    if app.state.run_scheduler and settings.check_interval_seconds > 0:
        scheduler = HealthScheduler(app.state.reporter, interval=settings.check_interval_seconds)
        try:
            await scheduler.start()
        except Exception:
            logger.exception("Health scheduler failed to start")
    app.state.scheduler = scheduler

    yield

    # Shutdown
    if scheduler is not None:
        await scheduler.stop()


def create_app(reporter: HealthReporter | None = None, run_scheduler: bool = True) -> FastAPI:
    app = FastAPI(
        title="opswatch - Health Monitoring",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.reporter = reporter
    app.state.run_scheduler = run_scheduler
    app.state.scheduler = None
    app.include_router(health_router, prefix="/api")
    return app
