"""Data models for peep."""

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a process state."""

    pid: int
    ppid: int  # 0 = no parent
    name: str
    cpu_percent: float
    memory_bytes: int
    memory_percent: float
    user: str
    run_time_seconds: float
    cpu_time_seconds: float
    status: str  # 'Running', 'Sleep', 'Zombie', etc.
    command: str
    disk_read: int  # Bytes since previous collection
    disk_write: int
    is_thread: bool = False


@dataclass(slots=True, frozen=True)
class CpuStats:
    usage: float
    cores: int
    per_core: tuple[float, ...] = ()
    brand: str = ""


@dataclass(slots=True, frozen=True)
class MemoryStats:
    total: int
    used: int
    free: int
    total_swap: int = 0
    used_swap: int = 0
    free_swap: int = 0


@dataclass(slots=True, frozen=True)
class DiskDetails:
    """Capacity of one mounted filesystem."""

    name: str
    mount_point: str
    total_space: int
    used_space: int
    available_space: int
    file_system: str = ""


@dataclass(slots=True, frozen=True)
class DiskStats:
    """Disk throughput, already per-second when it reaches the core."""

    read: float
    write: float
    disks: tuple[DiskDetails, ...] = ()


@dataclass(slots=True, frozen=True)
class NetworkInterface:
    """Cumulative counters of one physical network interface."""

    name: str
    kind: str
    received: int
    transmitted: int
    packets_received: int = 0
    packets_transmitted: int = 0


@dataclass(slots=True, frozen=True)
class NetworkStats:
    """Cumulative counters, summed over every interface."""

    rx_cumulative: float
    tx_cumulative: float
    interfaces: tuple[NetworkInterface, ...] = ()


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """One complete, timestamped reading of the machine and its processes."""

    timestamp: float  # Seconds since the epoch
    cpu: CpuStats
    memory: MemoryStats
    disk: DiskStats
    network: NetworkStats
    processes: tuple[ProcessSnapshot, ...] = ()

    def without_process(self, pid: int) -> "SystemSnapshot":
        """Return a copy of this snapshot with every entry for ``pid`` removed."""
        return SystemSnapshot(
            timestamp=self.timestamp,
            cpu=self.cpu,
            memory=self.memory,
            disk=self.disk,
            network=self.network,
            processes=tuple(p for p in self.processes if p.pid != pid),
        )


@dataclass(slots=True, frozen=True)
class HistoricalDataPoint:
    """Derived metrics for one sampling cycle."""

    timestamp: float
    cpu_percent: float = 0.0
    per_core_percent: tuple[float, ...] = ()
    memory_percent: float = 0.0
    swap_percent: float = 0.0
    disk_read_bytes_per_sec: float = 0.0
    disk_write_bytes_per_sec: float = 0.0
    network_rx_bytes_per_sec: float = 0.0
    network_tx_bytes_per_sec: float = 0.0

    @classmethod
    def placeholder(cls, timestamp: float) -> "HistoricalDataPoint":
        """Zero-valued point used to pre-seed the history."""
        return cls(timestamp=timestamp)


@dataclass(slots=True, frozen=True)
class Sample:
    """What a completed sampling cycle publishes to its consumer."""

    snapshot: SystemSnapshot
    point: HistoricalDataPoint


@dataclass(slots=True, frozen=True)
class KillResult:
    success: bool
    message: str = ""


@dataclass(slots=True, frozen=True)
class BatteryInfo:
    """Battery state. Fields other than ``available`` are None when unknown."""

    available: bool
    percentage: float | None = None
    state: str | None = None  # 'Charging', 'Discharging', 'Full'
    time_to_full_minutes: float | None = None
    time_to_empty_minutes: float | None = None
    health: float | None = None
    temperature: float | None = None  # Celsius


@dataclass(slots=True, frozen=True)
class OsInfo:
    name: str
    version: str
    kernel_version: str
    hostname: str
    uptime_seconds: float | None = None
