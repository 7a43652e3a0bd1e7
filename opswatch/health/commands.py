"""OS command execution for probes that parse utility output."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def describe_failure(self) -> str:
        """Short human-readable cause for a failed command."""
        if self.timed_out:
            return f"{self.argv[0]} timed out after {self.duration_ms}ms"
        detail = (self.stderr or self.stdout).strip().splitlines()
        tail = detail[-1] if detail else ""
        return f"{self.argv[0]} exited {self.exit_code}: {tail}".rstrip(": ")


class CommandRunner:
    """Runs a command without a shell and returns a structured result.

    Missing executables and timeouts come back as results with
    ``exit_code == -1`` rather than exceptions. The child process is killed
    if the caller is cancelled.
    """

    def __init__(self, timeout_ms: int = 8_000) -> None:
        self.timeout_ms = timeout_ms

    async def run(self, argv: list[str], timeout_ms: int | None = None) -> CommandResult:
        timeout = (timeout_ms or self.timeout_ms) / 1000
        t0 = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - t0) * 1000)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, "LC_ALL": "C"},
            )
        except (FileNotFoundError, PermissionError) as e:
            return CommandResult(tuple(argv), -1, "", f"Command not found: {e}", elapsed())

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Command %s timed out after %.1fs", argv[0], timeout)
            return CommandResult(tuple(argv), -1, "", "", elapsed(), timed_out=True)
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        return CommandResult(
            tuple(argv),
            proc.returncode if proc.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            elapsed(),
        )
