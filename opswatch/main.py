"""Entry point for the opswatch health aggregator."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import uvicorn
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from opswatch.config import settings
from opswatch.health.errors import EvaluationError
from opswatch.health.models import Status
from opswatch.health.reporter import CycleResult, HealthReporter
from opswatch.health.scheduler import HealthScheduler

console = Console()

_STATUS_STYLE = {
    Status.HEALTHY: "green",
    Status.UNHEALTHY: "red",
    Status.UNKNOWN: "yellow",
}


def render_cycle(result: CycleResult) -> None:
    """Print the report and alerts of one cycle."""
    report = result.report
    table = Table(title=f"Health check {report.timestamp:%Y-%m-%d %H:%M:%S} UTC")
    table.add_column("Domain")
    table.add_column("Probe")
    table.add_column("Status")
    table.add_column("Metrics / error")

    for domain in report.domains():
        for probe_name, probe in domain.results.items():
            detail = escape(", ".join(f"{name}={m.value}" for name, m in probe.metrics.items()))
            if probe.error:
                error = escape(probe.error)
                detail = f"{detail} [dim]({error})[/dim]" if detail else f"[dim]{error}[/dim]"
            style = _STATUS_STYLE[probe.status]
            table.add_row(domain.name, probe_name, f"[{style}]{probe.status.value}[/{style}]", detail)
    console.print(table)

    if result.alerts:
        console.print("\n[bold]Alerts:[/bold]")
        for alert in result.alerts:
            color = "red" if alert.is_critical else "yellow"
            console.print(f"[{color}]{alert.severity.value}: {escape(alert.message)}[/{color}]")
    else:
        console.print("\n[green]No alerts[/green]")

    if result.notification and result.notification.error:
        console.print(f"[dim]Notification failed: {escape(str(result.notification.error))}[/dim]")


def _build_reporter() -> HealthReporter:
    try:
        return HealthReporter.from_settings(settings)
    except EvaluationError as e:
        console.print(f"[red]Invalid threshold configuration:[/red] {e}")
        sys.exit(2)


def run_check(as_json: bool = False) -> int:
    """Run one cycle; exit code 1 when any critical alert fired."""
    reporter = _build_reporter()
    result = asyncio.run(reporter.run_cycle())
    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        render_cycle(result)
    return 1 if result.has_critical else 0


def run_watch() -> None:
    """Run cycles every ``check_interval_seconds`` until interrupted."""
    reporter = _build_reporter()
    console.print(Panel(f"Watching every {settings.check_interval_seconds}s", style="bold blue"))

    async def _watch() -> None:
        scheduler = HealthScheduler(
            reporter, interval=settings.check_interval_seconds, on_cycle=render_cycle,
        )
        await scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")


def run_server() -> None:
    """Start the FastAPI server."""
    from opswatch.api.server import create_app

    console.print(Panel("Starting opswatch API Server", style="bold green"))
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port, reload=False)


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="opswatch health monitoring")
    sub = parser.add_subparsers(dest="command")

    check_parser = sub.add_parser("check", help="Run one health check cycle")
    check_parser.add_argument("--json", action="store_true", help="Print the raw cycle result")
    sub.add_parser("watch", help="Run health checks periodically")
    sub.add_parser("serve", help="Start the API server")

    args = parser.parse_args()

    if args.command == "check":
        sys.exit(run_check(as_json=args.json))
    elif args.command == "watch":
        run_watch()
    elif args.command == "serve":
        run_server()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
