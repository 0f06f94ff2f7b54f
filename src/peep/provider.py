"""Default snapshot provider and process control backed by psutil.

The monitor core only depends on the protocols in ``peep.protocols``; the
psutil implementations here are what the CLI wires in.
"""

import asyncio
import logging
import platform
import time
from pathlib import Path

import psutil

from peep.format import clamp
from peep.models import (
    BatteryInfo,
    CpuStats,
    DiskDetails,
    DiskStats,
    KillResult,
    MemoryStats,
    NetworkInterface,
    NetworkStats,
    OsInfo,
    ProcessSnapshot,
    SystemSnapshot,
)
from peep.rates import RateState

logger = logging.getLogger(__name__)

# Looked up by name: the set of status constants differs between psutil
# releases and platforms (STATUS_WAKE_KILL is gone from current psutil)
_STATUS_LABELS = [
    ("STATUS_RUNNING", "Running"),
    ("STATUS_SLEEPING", "Sleep"),
    ("STATUS_IDLE", "Idle"),
    ("STATUS_ZOMBIE", "Zombie"),
    ("STATUS_STOPPED", "Stopped"),
    ("STATUS_DEAD", "Dead"),
    ("STATUS_TRACING_STOP", "Tracing"),
    ("STATUS_WAKE_KILL", "Wakekill"),
    ("STATUS_WAKING", "Waking"),
    ("STATUS_PARKED", "Parked"),
    ("STATUS_LOCKED", "Blocked"),
    ("STATUS_WAITING", "Waiting"),
    ("STATUS_DISK_SLEEP", "DiskSleep"),
]

STATUS_NAMES = {
    getattr(psutil, constant): label
    for constant, label in _STATUS_LABELS
    if hasattr(psutil, constant)
}


def status_name(status: str | None) -> str:
    """Map a psutil status constant to its display name."""
    return STATUS_NAMES.get(status, "Unknown")


# Loopback and virtual adapters are left out of the per-interface list
_VIRTUAL_INTERFACE_PREFIXES = ("lo", "bridge", "utun", "awdl", "llw", "ap", "gif", "stf")

_INTERFACE_KINDS = [
    ("en", "Ethernet/Wi-Fi"),
    ("eth", "Ethernet"),
    ("wl", "Wi-Fi"),
    ("fw", "FireWire"),
    ("p2p", "Peer-to-Peer"),
    ("bridge", "Bridge"),
    ("utun", "VPN Tunnel"),
    ("tun", "VPN Tunnel"),
    ("awdl", "Apple Wireless Direct Link"),
]


def is_physical_interface(name: str) -> bool:
    return not name.startswith(_VIRTUAL_INTERFACE_PREFIXES)


def interface_kind(name: str) -> str:
    """Guess an interface's type from its name."""
    for prefix, kind in _INTERFACE_KINDS:
        if name.startswith(prefix):
            return kind
    return "Other"


def cpu_brand(cpuinfo: Path = Path("/proc/cpuinfo")) -> str:
    """CPU model name, e.g. ``Intel(R) Core(TM) i7-8650U``; empty if unknown."""
    try:
        for line in cpuinfo.read_text(encoding="utf-8", errors="replace").splitlines():
            if line.lower().startswith("model name") and ":" in line:
                return line.split(":", 1)[1].strip()
    except OSError:
        logger.debug("no %s, falling back to platform.processor()", cpuinfo)
    return platform.processor()


def battery_from_psutil(battery) -> BatteryInfo:
    """Convert a psutil ``sensors_battery()`` result."""
    if battery is None:
        return BatteryInfo(available=False)

    percentage = clamp(float(battery.percent), 0.0, 100.0)
    if battery.power_plugged is None:
        state = None
    elif battery.power_plugged:
        state = "Full" if percentage >= 100.0 else "Charging"
    else:
        state = "Discharging"

    time_to_empty = None
    if state == "Discharging" and battery.secsleft not in (
        psutil.POWER_TIME_UNLIMITED,
        psutil.POWER_TIME_UNKNOWN,
    ):
        time_to_empty = max(0.0, battery.secsleft / 60.0)

    return BatteryInfo(
        available=True,
        percentage=percentage,
        state=state,
        time_to_empty_minutes=time_to_empty,
    )
_PROCESS_ATTRS = [
    "pid",
    "ppid",
    "name",
    "username",
    "status",
    "cpu_percent",
    "memory_info",
    "memory_percent",
    "create_time",
    "cpu_times",
    "cmdline",
]

# Not every platform exposes per-process I/O counters (macOS does not)
if hasattr(psutil.Process, "io_counters"):
    _PROCESS_ATTRS.append("io_counters")


class PsutilSnapshotProvider:
    """
    Collects system snapshots using psutil.

    Collection runs on a worker thread so the event loop driving the
    sampler is never blocked. Handles AccessDenied and ZombieProcess
    errors by skipping the affected process.
    """

    def __init__(self, include_threads: bool = False) -> None:
        """
        Initialize the PsutilSnapshotProvider.

        Args:
            include_threads: Also list each process's threads as entries
                parented to their owning process.
        """
        self.include_threads = include_threads
        self._disk_read = RateState()
        self._disk_write = RateState()
        self._process_io: dict[tuple[int, float], tuple[int, int]] = {}
        self._cpu_brand = cpu_brand()
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(percpu=True)

    async def fetch_snapshot(self) -> SystemSnapshot:
        return await asyncio.to_thread(self.collect)

    async def fetch_battery_info(self) -> BatteryInfo:
        return await asyncio.to_thread(self.collect_battery)

    async def fetch_os_info(self) -> OsInfo:
        return await asyncio.to_thread(self.collect_os_info)

    def collect(self) -> SystemSnapshot:
        """Collect a snapshot of the current system state."""
        now = time.time()

        per_core = psutil.cpu_percent(percpu=True)
        usage = sum(per_core) / len(per_core) if per_core else 0.0
        cores = psutil.cpu_count() or len(per_core)

        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()

        dio = psutil.disk_io_counters()
        if dio:
            read_rate, self._disk_read = self._disk_read.advance(dio.read_bytes, now)
            write_rate, self._disk_write = self._disk_write.advance(dio.write_bytes, now)
        else:
            read_rate = write_rate = 0.0

        net = psutil.net_io_counters()

        return SystemSnapshot(
            timestamp=now,
            cpu=CpuStats(
                usage=usage, cores=cores, per_core=tuple(per_core), brand=self._cpu_brand
            ),
            memory=MemoryStats(
                total=mem.total,
                used=mem.used,
                free=mem.available,
                total_swap=swap.total,
                used_swap=swap.used,
                free_swap=swap.free,
            ),
            disk=DiskStats(read=read_rate, write=write_rate, disks=self._collect_disks()),
            network=NetworkStats(
                rx_cumulative=net.bytes_recv if net else 0,
                tx_cumulative=net.bytes_sent if net else 0,
                interfaces=self._collect_interfaces(),
            ),
            processes=tuple(self._collect_processes(now)),
        )

    def collect_battery(self) -> BatteryInfo:
        """Read the battery, reporting it unavailable where psutil cannot."""
        if not hasattr(psutil, "sensors_battery"):
            return BatteryInfo(available=False)
        try:
            battery = psutil.sensors_battery()
        except (OSError, RuntimeError) as exc:
            logger.debug("battery unavailable: %s", exc)
            return BatteryInfo(available=False)
        return battery_from_psutil(battery)

    def collect_os_info(self) -> OsInfo:
        return OsInfo(
            name=platform.system() or "Unknown",
            version=platform.version() or "Unknown",
            kernel_version=platform.release() or "Unknown",
            hostname=platform.node() or "Unknown",
            uptime_seconds=max(0.0, time.time() - psutil.boot_time()),
        )

    def _collect_disks(self) -> tuple[DiskDetails, ...]:
        """Capacity of each mounted physical filesystem, one entry per mount point."""
        disks: list[DiskDetails] = []
        seen: set[str] = set()
        for part in psutil.disk_partitions(all=False):
            if part.mountpoint in seen:
                continue
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                # Unreadable or vanished mount
                continue
            seen.add(part.mountpoint)
            disks.append(
                DiskDetails(
                    name=part.device,
                    mount_point=part.mountpoint,
                    total_space=usage.total,
                    used_space=usage.used,
                    available_space=usage.free,
                    file_system=part.fstype,
                )
            )
        return tuple(disks)

    def _collect_interfaces(self) -> tuple[NetworkInterface, ...]:
        counters = psutil.net_io_counters(pernic=True) or {}
        return tuple(
            NetworkInterface(
                name=name,
                kind=interface_kind(name),
                received=io.bytes_recv,
                transmitted=io.bytes_sent,
                packets_received=io.packets_recv,
                packets_transmitted=io.packets_sent,
            )
            for name, io in counters.items()
            if is_physical_interface(name)
        )

    def _collect_processes(self, now: float) -> list[ProcessSnapshot]:
        """
        Collect snapshots of all running processes.

        Per-process disk figures are the bytes moved since the previous
        collection, tracked per (pid, create_time) so a reused pid starts over.
        """
        processes: list[ProcessSnapshot] = []
        process_io: dict[tuple[int, float], tuple[int, int]] = {}

        for proc in psutil.process_iter(attrs=_PROCESS_ATTRS):
            try:
                with proc.oneshot():
                    info = proc.info
                    pid = info.get("pid", 0)
                    name = info.get("name") or ""
                    user = info.get("username") or "unknown"
                    status = status_name(info.get("status"))

                    cmdline = info.get("cmdline") or []
                    command = " ".join(cmdline) if cmdline else name

                    mem_info = info.get("memory_info")
                    cpu_times = info.get("cpu_times")
                    create_time = info.get("create_time") or now

                    disk_read = disk_write = 0
                    io = info.get("io_counters")
                    if io is not None:
                        key = (pid, create_time)
                        process_io[key] = (io.read_bytes, io.write_bytes)
                        previous = self._process_io.get(key)
                        if previous is not None:
                            disk_read = max(0, io.read_bytes - previous[0])
                            disk_write = max(0, io.write_bytes - previous[1])

                    snapshot = ProcessSnapshot(
                        pid=pid,
                        ppid=info.get("ppid") or 0,
                        name=name,
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        memory_bytes=mem_info.rss if mem_info else 0,
                        memory_percent=info.get("memory_percent") or 0.0,
                        user=user,
                        run_time_seconds=max(0.0, now - create_time),
                        cpu_time_seconds=(cpu_times.user + cpu_times.system) if cpu_times else 0.0,
                        status=status,
                        command=command,
                        disk_read=disk_read,
                        disk_write=disk_write,
                    )
                    processes.append(snapshot)

                    if self.include_threads:
                        processes.extend(self._thread_entries(proc, snapshot))

            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Process died mid-poll, or is off limits
                continue

        self._process_io = process_io
        return processes

    def _thread_entries(
        self, proc: psutil.Process, owner: ProcessSnapshot
    ) -> list[ProcessSnapshot]:
        try:
            threads = proc.threads()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return []

        return [
            ProcessSnapshot(
                pid=thread.id,
                ppid=owner.pid,
                name=owner.name,
                cpu_percent=0.0,
                memory_bytes=0,
                memory_percent=0.0,
                user=owner.user,
                run_time_seconds=owner.run_time_seconds,
                cpu_time_seconds=thread.user_time + thread.system_time,
                status=owner.status,
                command=owner.command,
                disk_read=0,
                disk_write=0,
                is_thread=True,
            )
            for thread in threads
            if thread.id != owner.pid
        ]


class PsutilProcessControl:
    """Terminates processes with SIGKILL via psutil."""

    async def kill_process(self, pid: int) -> KillResult:
        return await asyncio.to_thread(self._kill, pid)

    def _kill(self, pid: int) -> KillResult:
        try:
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess:
            return KillResult(success=False, message="Process not found")
        except psutil.AccessDenied:
            return KillResult(success=False, message="Access denied")
        except OSError as exc:
            logger.warning("failed to kill pid %d: %s", pid, exc)
            return KillResult(success=False, message="Failed to kill process")
        return KillResult(success=True, message="Process killed successfully")
