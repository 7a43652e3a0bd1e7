"""Tests for the system resource probes."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from opswatch.health.errors import ProbeUnknown
from opswatch.health.models import Status
from opswatch.health.probes.system import CpuProbe, DiskProbe, MemoryProbe, parse_df_output

DF_OUTPUT = """\
Filesystem     1024-blocks      Used Available Capacity Mounted on
/dev/sda1        102400000  94208000   8192000      92% /
"""


# ── df parsing ───────────────────────────────────────────────────────────────


class TestParseDf:
    def test_parses_capacity(self) -> None:
        usage = parse_df_output(DF_OUTPUT)
        assert usage["usage"] == 92.0
        assert usage["total"] == 102400000 * 1024
        assert usage["mount"] == "/"

    def test_header_only(self) -> None:
        with pytest.raises(ProbeUnknown):
            parse_df_output("Filesystem 1024-blocks Used Available Capacity Mounted on\n")

    def test_garbage_row(self) -> None:
        with pytest.raises(ProbeUnknown):
            parse_df_output("Filesystem\nsomething went wrong here\n")


# ── Probes ───────────────────────────────────────────────────────────────────


class TestDiskProbe:
    @pytest.mark.asyncio
    async def test_usage_metric(self, fake_runner, context) -> None:
        runner = fake_runner(df=DF_OUTPUT)
        result = await DiskProbe(runner, "/").run(context)
        assert result.status == Status.HEALTHY
        assert result.metrics["usage"].value == 92.0
        assert runner.calls == [["df", "-P", "/"]]

    @pytest.mark.asyncio
    async def test_parse_failure_is_unknown_not_unhealthy(self, fake_runner, context) -> None:
        result = await DiskProbe(fake_runner(df="unexpected output"), "/").run(context)
        assert result.status == Status.UNKNOWN

    @pytest.mark.asyncio
    async def test_missing_tool_is_unknown(self, fake_runner, context) -> None:
        result = await DiskProbe(fake_runner(), "/").run(context)
        assert result.status == Status.UNKNOWN
        assert "df" in result.error


class TestCpuProbe:
    @pytest.mark.asyncio
    @patch("opswatch.health.probes.system.psutil")
    async def test_reads_counters(self, mock_psutil, context) -> None:
        mock_psutil.cpu_percent.return_value = 92.0
        mock_psutil.getloadavg.return_value = (3.5, 2.0, 1.0)
        mock_psutil.cpu_count.return_value = 4
        mock_psutil.boot_time.return_value = 0

        result = await CpuProbe(sample_interval=0).run(context)
        assert result.status == Status.HEALTHY
        assert result.metrics["usage"].value == 92.0
        assert result.metrics["cores"].value == 4
        assert result.metrics["load_1m"].value == 3.5

    @pytest.mark.asyncio
    @patch("opswatch.health.probes.system.psutil")
    async def test_counter_failure_is_contained(self, mock_psutil, context) -> None:
        mock_psutil.cpu_percent.side_effect = OSError("no /proc")
        result = await CpuProbe(sample_interval=0).run(context)
        assert result.status == Status.UNHEALTHY
        assert "no /proc" in result.error


class TestMemoryProbe:
    @pytest.mark.asyncio
    @patch("opswatch.health.probes.system.psutil")
    async def test_reads_virtual_memory(self, mock_psutil, context) -> None:
        mock_psutil.virtual_memory.return_value = SimpleNamespace(
            percent=61.234, total=8_000, available=3_100,
        )
        result = await MemoryProbe().run(context)
        assert result.metrics["usage"].value == 61.23
        assert result.metrics["available"].value == 3_100
