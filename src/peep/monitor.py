"""System monitoring engine for peep."""

import logging
import time
from collections.abc import Callable, Collection

from peep.config import MonitorConfig
from peep.errors import SnapshotUnavailableError
from peep.history import HistoryBuffer
from peep.ingest import (
    coerce_float,
    ensure_battery_info,
    ensure_os_info,
    ensure_snapshot,
    percent_of,
)
from peep.models import (
    BatteryInfo,
    HistoricalDataPoint,
    KillResult,
    OsInfo,
    ProcessSnapshot,
    Sample,
    SystemSnapshot,
)
from peep.protocols import HostInfoProvider, ProcessControl, SnapshotProvider
from peep.rates import RateState
from peep.scheduler import SamplingScheduler
from peep.table import SortKey, process_view, tree_view
from peep.tree import TreeRow

logger = logging.getLogger(__name__)


def derive_point(
    snapshot: SystemSnapshot,
    rx_state: RateState,
    tx_state: RateState,
) -> tuple[HistoricalDataPoint, RateState, RateState]:
    """
    Derive the history point for one snapshot.

    Returns the point and the successor network rate states. The states
    passed in are not modified.
    """
    rx_rate, rx_next = rx_state.advance(snapshot.network.rx_cumulative, snapshot.timestamp)
    tx_rate, tx_next = tx_state.advance(snapshot.network.tx_cumulative, snapshot.timestamp)
    memory = snapshot.memory

    point = HistoricalDataPoint(
        timestamp=snapshot.timestamp,
        cpu_percent=coerce_float(snapshot.cpu.usage),
        per_core_percent=tuple(coerce_float(v) for v in snapshot.cpu.per_core),
        memory_percent=percent_of(memory.used, memory.total),
        swap_percent=percent_of(memory.used_swap, memory.total_swap),
        disk_read_bytes_per_sec=max(0.0, coerce_float(snapshot.disk.read)),
        disk_write_bytes_per_sec=max(0.0, coerce_float(snapshot.disk.write)),
        network_rx_bytes_per_sec=rx_rate,
        network_tx_bytes_per_sec=tx_rate,
    )
    return point, rx_next, tx_next


class SystemMonitor:
    """
    Turns raw snapshots into a bounded history and process views.

    Sampling is driven by a SamplingScheduler on the running event loop.
    Every cycle fetches a snapshot from the provider, derives a
    HistoricalDataPoint, appends it to the history and publishes the
    snapshot as ``latest``. All state is replaced, never edited in place,
    so readers need no locking.
    """

    def __init__(
        self,
        provider: SnapshotProvider,
        config: MonitorConfig | None = None,
        process_control: ProcessControl | None = None,
        clock: Callable[[], float] = time.time,
        host_info: HostInfoProvider | None = None,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            provider: Source of snapshots.
            config: Monitor settings. Defaults to MonitorConfig().
            process_control: Capability used by kill_process.
            clock: Wall clock, used for timestamps of mapping payloads
                and the placeholder history.
            host_info: Source of battery and OS information.
        """
        self._provider = provider
        self._config = config or MonitorConfig()
        self._process_control = process_control
        self._host_info = host_info
        self._clock = clock
        self._history = HistoryBuffer.seeded(
            self._config.history_capacity, self._config.poll_interval, clock()
        )
        self._rx_state = RateState()
        self._tx_state = RateState()
        self._latest: SystemSnapshot | None = None
        self._on_sample: Callable[[Sample], None] | None = None
        self._scheduler: SamplingScheduler[SystemSnapshot] = SamplingScheduler(
            self._fetch, interval=self._config.poll_interval, name="SystemMonitor"
        )

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def poll_rate(self) -> float:
        """Get the sampling interval in seconds."""
        return self._scheduler.interval

    @property
    def is_running(self) -> bool:
        return self._scheduler.is_running

    @property
    def scheduler(self) -> SamplingScheduler[SystemSnapshot]:
        return self._scheduler

    @property
    def latest(self) -> SystemSnapshot | None:
        """The most recently published snapshot, if any."""
        return self._latest

    def start(
        self,
        on_sample: Callable[[Sample], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        """
        Start sampling. Must be called from inside a running event loop.

        Args:
            on_sample: Called once per completed cycle.
            on_error: Called with the exception of a failed cycle.
                Defaults to logging it.
        """
        self._on_sample = on_sample
        self._scheduler.start(self._publish, on_error)

    def stop(self) -> None:
        """Stop sampling. No history or callback updates happen afterwards."""
        self._scheduler.stop()

    async def _fetch(self) -> SystemSnapshot:
        raw = await self._provider.fetch_snapshot()
        return ensure_snapshot(raw, self._clock)

    def _publish(self, snapshot: SystemSnapshot) -> None:
        point, self._rx_state, self._tx_state = derive_point(
            snapshot, self._rx_state, self._tx_state
        )
        self._history.append(point)
        self._latest = snapshot
        if self._on_sample is not None:
            self._on_sample(Sample(snapshot=snapshot, point=point))

    def history(self, window_size: int | None = None) -> list[HistoricalDataPoint]:
        """Get the most recent history points, oldest first."""
        return self._history.snapshot(window_size)

    def chart_history(self) -> list[HistoricalDataPoint]:
        """Get the shorter window used for chart rendering."""
        return self._history.snapshot(self._config.chart_window)

    def process_view(
        self,
        filter_text: str = "",
        sort_key: SortKey = SortKey.CPU,
        descending: bool = True,
        tree_mode: bool = False,
        collapsed: Collection[int] = (),
    ) -> list[ProcessSnapshot] | list[TreeRow]:
        """
        Get the filtered, sorted process list of the latest snapshot.

        Returns ProcessSnapshot rows, or TreeRow rows when ``tree_mode``
        is set. Empty before the first sample.
        """
        snapshot = self._latest
        processes = snapshot.processes if snapshot is not None else ()
        if tree_mode:
            return tree_view(processes, filter_text, sort_key, descending, collapsed=collapsed)
        return process_view(processes, filter_text, sort_key, descending)

    async def kill_process(self, pid: int) -> KillResult:
        """
        Ask the process-control capability to kill ``pid``.

        The result is passed back as is. Only on success, and only while
        sampling is running, is the pid removed from the published process
        list; once stopped the published state no longer changes.
        """
        if self._process_control is None:
            return KillResult(success=False, message="Process control not available")
        try:
            result = await self._process_control.kill_process(pid)
        except Exception:
            logger.warning("killing pid %d failed", pid, exc_info=True)
            return KillResult(success=False, message="Failed to kill process")

        if result.success:
            snapshot = self._latest
            if snapshot is not None and self.is_running:
                self._latest = snapshot.without_process(pid)
        else:
            logger.warning("could not kill pid %d: %s", pid, result.message)
        return result

    async def battery_info(self) -> BatteryInfo:
        """Current battery state; unavailable when no host-info source is set."""
        if self._host_info is None:
            return BatteryInfo(available=False)
        return ensure_battery_info(await self._host_info.fetch_battery_info())

    async def os_info(self) -> OsInfo:
        """
        Host name, OS and kernel versions and uptime.

        Raises:
            SnapshotUnavailableError: If there is no host-info source or it
                returned nothing usable.
        """
        if self._host_info is None:
            raise SnapshotUnavailableError("host information not available")
        return ensure_os_info(await self._host_info.fetch_os_info())
