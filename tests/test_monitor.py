"""Tests for the SystemMonitor class."""

import asyncio
import os
import subprocess
import sys
from pathlib import Path

import pytest

from peep.config import MonitorConfig
from peep.errors import SnapshotUnavailableError
from peep.models import (
    BatteryInfo,
    CpuStats,
    DiskStats,
    KillResult,
    MemoryStats,
    NetworkStats,
    OsInfo,
    Sample,
    SystemSnapshot,
)
from peep.monitor import SystemMonitor, derive_point
from peep.rates import RateState
from peep.table import SortKey
from peep.tree import TreeRow


def make_snapshot(
    timestamp: float = 100.0,
    rx: float = 0.0,
    tx: float = 0.0,
    processes=(),
    memory: MemoryStats | None = None,
) -> SystemSnapshot:
    return SystemSnapshot(
        timestamp=timestamp,
        cpu=CpuStats(usage=25.0, cores=2, per_core=(20.0, 30.0)),
        memory=memory
        or MemoryStats(total=1000, used=250, free=750, total_swap=200, used_swap=50),
        disk=DiskStats(read=4096.0, write=1024.0),
        network=NetworkStats(rx_cumulative=rx, tx_cumulative=tx),
        processes=tuple(processes),
    )


class FakeProvider:
    """Provider returning queued payloads; exceptions in the queue are raised."""

    def __init__(self, *payloads) -> None:
        self.payloads = list(payloads)
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def fetch_snapshot(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        payload = self.payloads.pop(0) if self.payloads else None
        if isinstance(payload, Exception):
            raise payload
        return payload


class FakeControl:
    def __init__(self, result: KillResult | Exception) -> None:
        self.result = result
        self.killed: list[int] = []

    async def kill_process(self, pid: int) -> KillResult:
        self.killed.append(pid)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _config(**overrides) -> MonitorConfig:
    values = {"poll_interval": 60.0, "history_capacity": 5, "chart_window": 2}
    values.update(overrides)
    return MonitorConfig(**values)


class TestDerivePoint:
    """Tests for derive_point."""

    def test_first_cycle_network_rate_is_zero(self):
        """Test the first snapshot only seeds the network rate state."""
        point, rx, tx = derive_point(make_snapshot(rx=5000, tx=100), RateState(), RateState())

        assert point.network_rx_bytes_per_sec == 0.0
        assert point.network_tx_bytes_per_sec == 0.0
        assert rx.previous_value == 5000
        assert tx.previous_value == 100

    def test_rates_and_percentages(self):
        """Test network rates, memory and swap percentages."""
        rx = RateState(previous_value=1000, previous_timestamp=98.0)
        tx = RateState(previous_value=9000, previous_timestamp=98.0)

        point, _, _ = derive_point(make_snapshot(timestamp=100.0, rx=5000, tx=100), rx, tx)

        assert point.network_rx_bytes_per_sec == 2000
        assert point.network_tx_bytes_per_sec == 0
        assert point.cpu_percent == 25.0
        assert point.per_core_percent == (20.0, 30.0)
        assert point.memory_percent == 25.0
        assert point.swap_percent == 25.0
        assert point.disk_read_bytes_per_sec == 4096.0
        assert point.timestamp == 100.0

    def test_zero_totals_give_zero_percent(self):
        """Test missing memory totals never produce NaN."""
        snapshot = make_snapshot(memory=MemoryStats(total=0, used=10, free=0))

        point, _, _ = derive_point(snapshot, RateState(), RateState())

        assert point.memory_percent == 0.0
        assert point.swap_percent == 0.0

    def test_negative_disk_is_clamped(self):
        """Test disk throughput is never reported negative."""
        snapshot = SystemSnapshot(
            timestamp=1.0,
            cpu=CpuStats(usage=float("nan"), cores=1),
            memory=MemoryStats(total=1, used=0, free=1),
            disk=DiskStats(read=-5.0, write=float("inf")),
            network=NetworkStats(rx_cumulative=0, tx_cumulative=0),
        )

        point, _, _ = derive_point(snapshot, RateState(), RateState())

        assert point.disk_read_bytes_per_sec == 0.0
        assert point.disk_write_bytes_per_sec == 0.0
        assert point.cpu_percent == 0.0


class TestSystemMonitor:
    """Tests for SystemMonitor class."""

    def test_monitor_creation(self):
        """Test SystemMonitor can be instantiated."""
        monitor = SystemMonitor(FakeProvider())

        assert monitor.poll_rate == 2.0
        assert not monitor.is_running
        assert monitor.latest is None

    def test_history_is_preseeded(self):
        """Test consumers never see an empty history."""
        monitor = SystemMonitor(FakeProvider(), config=_config(poll_interval=2.0), clock=lambda: 1000.0)

        history = monitor.history()

        assert [p.timestamp for p in history] == [990.0, 992.0, 994.0, 996.0, 998.0]
        assert all(p.cpu_percent == 0.0 for p in history)

    def test_default_history_capacity(self):
        """Test the default history keeps 900 points."""
        assert len(SystemMonitor(FakeProvider()).history()) == 900

    def test_process_view_before_first_sample(self):
        """Test views are empty until a sample arrives."""
        monitor = SystemMonitor(FakeProvider())

        assert monitor.process_view() == []
        assert monitor.process_view(tree_mode=True) == []

    @pytest.mark.asyncio
    async def test_sample_is_published(self, make_process):
        """Test a completed cycle appends a point and notifies the consumer."""
        snapshot = make_snapshot(processes=[make_process(1)])
        samples: list[Sample] = []
        monitor = SystemMonitor(FakeProvider(snapshot), config=_config())

        monitor.start(on_sample=samples.append)
        await monitor.scheduler.wait_idle()
        monitor.stop()

        assert len(samples) == 1
        assert samples[0].snapshot is snapshot
        assert monitor.latest is snapshot
        history = monitor.history()
        assert len(history) == 5
        assert history[-1] is samples[0].point
        assert history[-1].cpu_percent == 25.0

    @pytest.mark.asyncio
    async def test_network_rate_over_two_cycles(self):
        """Test cumulative counters become a per-second rate on the second cycle."""
        provider = FakeProvider(
            make_snapshot(timestamp=100.0, rx=1000),
            make_snapshot(timestamp=102.0, rx=5000),
        )
        samples: list[Sample] = []
        monitor = SystemMonitor(provider, config=_config(poll_interval=0.1))

        monitor.start(on_sample=samples.append)
        try:
            for _ in range(100):
                if len(samples) >= 2:
                    break
                await asyncio.sleep(0.05)
        finally:
            monitor.stop()

        assert samples[0].point.network_rx_bytes_per_sec == 0.0
        assert samples[1].point.network_rx_bytes_per_sec == 2000.0
        assert [p.network_rx_bytes_per_sec for p in monitor.history(2)] == [0.0, 2000.0]

    @pytest.mark.asyncio
    async def test_mapping_payload_is_ingested(self):
        """Test raw mapping payloads are validated and defaulted."""
        provider = FakeProvider({"cpu": {"usage": 12}, "processes": [{"pid": 4, "name": "x"}]})
        monitor = SystemMonitor(provider, config=_config(), clock=lambda: 500.0)

        monitor.start()
        await monitor.scheduler.wait_idle()
        monitor.stop()

        point = monitor.history()[-1]
        assert point.timestamp == 500.0
        assert point.cpu_percent == 12.0
        assert point.memory_percent == 0.0
        assert [p.pid for p in monitor.process_view()] == [4]

    @pytest.mark.asyncio
    async def test_failed_fetch_leaves_state_untouched(self):
        """Test a provider error appends nothing and is reported."""
        errors: list[BaseException] = []
        monitor = SystemMonitor(FakeProvider(RuntimeError("boom")), config=_config())
        before = monitor.history()

        monitor.start(on_error=errors.append)
        await monitor.scheduler.wait_idle()
        monitor.stop()

        assert isinstance(errors[0], RuntimeError)
        assert monitor.history() == before
        assert monitor.latest is None

    @pytest.mark.asyncio
    async def test_empty_fetch_is_no_data(self):
        """Test a provider returning None is reported as no data available."""
        errors: list[BaseException] = []
        monitor = SystemMonitor(FakeProvider(None), config=_config())

        monitor.start(on_error=errors.append)
        await monitor.scheduler.wait_idle()
        monitor.stop()

        assert isinstance(errors[0], SnapshotUnavailableError)

    @pytest.mark.asyncio
    async def test_stop_suppresses_in_flight_sample(self):
        """Test nothing is appended once stop has been called."""
        provider = FakeProvider(make_snapshot())
        provider.gate = asyncio.Event()
        samples: list[Sample] = []
        monitor = SystemMonitor(provider, config=_config())
        before = monitor.history()

        monitor.start(on_sample=samples.append)
        monitor.stop()
        provider.gate.set()
        await monitor.scheduler.wait_idle()

        assert samples == []
        assert monitor.history() == before
        assert monitor.latest is None
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_process_views(self, make_process):
        """Test flat and tree views over the latest snapshot."""
        processes = [
            make_process(1, name="systemd", cpu_percent=0.1),
            make_process(2, 1, name="chrome", cpu_percent=7.0),
            make_process(3, 99, name="chromedriver", cpu_percent=3.0),
        ]
        monitor = SystemMonitor(FakeProvider(make_snapshot(processes=processes)), config=_config())
        monitor.start()
        await monitor.scheduler.wait_idle()
        monitor.stop()

        flat = monitor.process_view("chrome", SortKey.CPU, descending=True)
        rows = monitor.process_view(tree_mode=True, sort_key=SortKey.PID, descending=False)

        assert [p.pid for p in flat] == [2, 3]
        assert all(isinstance(r, TreeRow) for r in rows)
        assert [(r.process.pid, r.depth) for r in rows] == [(1, 0), (2, 1), (3, 0)]

    def test_chart_history_window(self):
        """Test the chart window is a read-only sub-view of the history."""
        monitor = SystemMonitor(FakeProvider(), config=_config())

        assert monitor.chart_history() == monitor.history()[-2:]


class TestKillProcess:
    """Tests for SystemMonitor.kill_process."""

    async def _running_monitor(self, make_process, control) -> SystemMonitor:
        processes = [make_process(1), make_process(2, 1)]
        monitor = SystemMonitor(
            FakeProvider(make_snapshot(processes=processes)),
            config=_config(),
            process_control=control,
        )
        monitor.start()
        await monitor.scheduler.wait_idle()
        return monitor

    @pytest.mark.asyncio
    async def test_success_removes_pid(self, make_process):
        """Test a confirmed kill drops the process from the view."""
        control = FakeControl(KillResult(True, "Process killed successfully"))
        monitor = await self._running_monitor(make_process, control)

        result = await monitor.kill_process(2)
        monitor.stop()

        assert result == KillResult(True, "Process killed successfully")
        assert control.killed == [2]
        assert [p.pid for p in monitor.process_view()] == [1]

    @pytest.mark.asyncio
    async def test_failure_is_passed_back(self, make_process):
        """Test a refused kill is reported verbatim and the view is kept."""
        control = FakeControl(KillResult(False, "Access denied"))
        monitor = await self._running_monitor(make_process, control)

        result = await monitor.kill_process(2)
        monitor.stop()

        assert result == KillResult(False, "Access denied")
        assert sorted(p.pid for p in monitor.process_view()) == [1, 2]

    @pytest.mark.asyncio
    async def test_control_exception(self, make_process):
        """Test a raising control becomes a failed result."""
        monitor = await self._running_monitor(make_process, FakeControl(OSError("nope")))

        result = await monitor.kill_process(2)
        monitor.stop()

        assert result == KillResult(False, "Failed to kill process")
        assert len(monitor.process_view()) == 2

    @pytest.mark.asyncio
    async def test_kill_after_stop_leaves_view_unchanged(self, make_process):
        """Test the kill still goes through after stop, but published state is frozen."""
        control = FakeControl(KillResult(True, "Process killed successfully"))
        monitor = await self._running_monitor(make_process, control)
        monitor.stop()
        latest = monitor.latest

        result = await monitor.kill_process(2)

        assert result.success is True
        assert control.killed == [2]
        assert monitor.latest is latest
        assert sorted(p.pid for p in monitor.process_view()) == [1, 2]

    @pytest.mark.asyncio
    async def test_no_control_configured(self):
        """Test killing without a control capability fails cleanly."""
        monitor = SystemMonitor(FakeProvider())

        result = await monitor.kill_process(1)

        assert result == KillResult(False, "Process control not available")


class FakeHostInfo:
    def __init__(self, battery=None, os_info=None) -> None:
        self.battery = battery
        self.os = os_info

    async def fetch_battery_info(self):
        return self.battery

    async def fetch_os_info(self):
        return self.os


class TestHostInfo:
    """Tests for SystemMonitor.battery_info and os_info."""

    @pytest.mark.asyncio
    async def test_without_source(self):
        """Test no host-info source means no battery and no OS info."""
        monitor = SystemMonitor(FakeProvider())

        assert await monitor.battery_info() == BatteryInfo(available=False)
        with pytest.raises(SnapshotUnavailableError):
            await monitor.os_info()

    @pytest.mark.asyncio
    async def test_mapping_payloads(self):
        """Test camelCase host payloads are normalized."""
        host = FakeHostInfo(
            battery={"available": True, "percentage": 80, "state": "Charging", "timeToFull": 35},
            os_info={
                "name": "Linux",
                "version": "#1 SMP",
                "kernelVersion": "6.1.0",
                "hostname": "box",
                "uptime": 3600,
            },
        )
        monitor = SystemMonitor(FakeProvider(), host_info=host)

        battery = await monitor.battery_info()
        os_info = await monitor.os_info()

        assert battery == BatteryInfo(
            available=True, percentage=80.0, state="Charging", time_to_full_minutes=35.0
        )
        assert os_info == OsInfo(
            name="Linux",
            version="#1 SMP",
            kernel_version="6.1.0",
            hostname="box",
            uptime_seconds=3600.0,
        )

    @pytest.mark.asyncio
    async def test_missing_battery_is_unavailable(self):
        """Test a provider with no battery answer reports it unavailable."""
        monitor = SystemMonitor(FakeProvider(), host_info=FakeHostInfo())

        assert (await monitor.battery_info()).available is False


def test_monitor_imports_without_psutil():
    """Test the monitor core can be imported without loading psutil."""
    src = Path(__file__).resolve().parents[1] / "src"
    path = os.pathsep.join(p for p in (str(src), os.environ.get("PYTHONPATH")) if p)
    code = "import sys, peep.monitor; sys.exit(1 if 'psutil' in sys.modules else 0)"

    result = subprocess.run(
        [sys.executable, "-c", code],
        env={**os.environ, "PYTHONPATH": path},
        capture_output=True,
        text=True,
    )

    assert result.returncode == 0, result.stderr
