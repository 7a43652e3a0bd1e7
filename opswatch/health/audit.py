"""Append-only audit trail — one JSON object per line.

Each record is ``{"timestamp", "health", "alerts"}``. The file is the only
history the aggregator keeps between cycles.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections import deque
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from .models import Alert, HealthReport, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PATH = Path("logs") / "health.log"


def build_record(report: HealthReport, alerts: Sequence[Alert]) -> dict[str, Any]:
    return {
        "timestamp": utcnow().isoformat(),
        "health": report.to_dict(),
        "alerts": [a.to_dict() for a in alerts],
    }


class AuditLog:
    """JSON-lines file of completed health-check cycles."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path else DEFAULT_PATH
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, line: str) -> None:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    async def append(self, report: HealthReport, alerts: Sequence[Alert]) -> dict[str, Any]:
        """Write one record for a completed cycle and return it."""
        record = build_record(report, alerts)
        await asyncio.to_thread(self._write, json.dumps(record, default=str))
        logger.debug("Audit record appended to %s (%d alerts)", self._path, len(alerts))
        return record

    def read_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent records, newest first. Malformed lines are skipped."""
        if limit <= 0 or not self._path.exists():
            return []
        with self._path.open("r", encoding="utf-8") as fh:
            tail = deque(fh, maxlen=limit)

        records = []
        for line in reversed(tail):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping malformed audit line in %s", self._path)
        return records
