"""Validation of raw snapshot payloads at the ingestion boundary.

Providers that talk over IPC or JSON hand back loosely-typed mappings in
which any field may be missing. Everything is normalized here into the
typed models so that no None or NaN travels further into the history.
"""

import logging
import math
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from peep.errors import SnapshotSchemaError, SnapshotUnavailableError
from peep.models import (
    BatteryInfo,
    CpuStats,
    DiskDetails,
    DiskStats,
    MemoryStats,
    NetworkInterface,
    NetworkStats,
    OsInfo,
    ProcessSnapshot,
    SystemSnapshot,
)

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1


def coerce_float(value: Any) -> float:
    """Convert a payload value to a finite float, defaulting to 0.0."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def coerce_int(value: Any) -> int:
    return int(coerce_float(value))


def percent_of(part: float, total: float) -> float:
    """Percentage of ``part`` in ``total``; a zero total is 0% usage."""
    part = coerce_float(part)
    total = coerce_float(total)
    if total <= 0:
        return 0.0
    return part / total * 100.0


def _field(data: Mapping[str, Any], *names: str) -> Any:
    # First present key wins; covers both camelCase and snake_case payloads.
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name)
    return section if isinstance(section, Mapping) else {}


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _mappings(value: Any) -> list[Mapping[str, Any]]:
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def process_from_mapping(data: Mapping[str, Any]) -> ProcessSnapshot | None:
    """Build a ProcessSnapshot, or None when the record has no usable pid."""
    raw_pid = data.get("pid")
    if isinstance(raw_pid, bool) or raw_pid is None:
        return None
    try:
        pid = int(raw_pid)
    except (TypeError, ValueError, OverflowError):
        # OverflowError: an infinite pid, as json.loads gives for Infinity
        return None

    return ProcessSnapshot(
        pid=pid,
        ppid=coerce_int(_field(data, "ppid")),
        name=_text(_field(data, "name")),
        cpu_percent=coerce_float(_field(data, "cpu_percent", "cpu")),
        memory_bytes=coerce_int(_field(data, "memory_bytes", "memoryBytes", "memory")),
        memory_percent=coerce_float(_field(data, "memory_percent", "memoryPercentage")),
        user=_text(_field(data, "user"), "unknown"),
        run_time_seconds=coerce_float(_field(data, "run_time_seconds", "runTime")),
        cpu_time_seconds=coerce_float(_field(data, "cpu_time_seconds", "cpuTime")),
        status=_text(_field(data, "status"), "Unknown"),
        command=_text(_field(data, "command")),
        disk_read=coerce_int(_field(data, "disk_read", "diskRead")),
        disk_write=coerce_int(_field(data, "disk_write", "diskWrite")),
        is_thread=bool(_field(data, "is_thread", "isThread")),
    )


def processes_from_records(records: Iterable[Any]) -> tuple[ProcessSnapshot, ...]:
    processes: list[ProcessSnapshot] = []
    dropped = 0
    for record in records:
        process = process_from_mapping(record) if isinstance(record, Mapping) else None
        if process is None:
            dropped += 1
            continue
        processes.append(process)
    if dropped:
        logger.warning("dropped %d process record(s) without a usable pid", dropped)
    return tuple(processes)


def disk_from_mapping(data: Mapping[str, Any]) -> DiskDetails:
    return DiskDetails(
        name=_text(_field(data, "name")),
        mount_point=_text(_field(data, "mount_point", "mountPoint")),
        total_space=coerce_int(_field(data, "total_space", "totalSpace")),
        used_space=coerce_int(_field(data, "used_space", "usedSpace")),
        available_space=coerce_int(_field(data, "available_space", "availableSpace")),
        file_system=_text(_field(data, "file_system", "fileSystem")),
    )


def interface_from_mapping(data: Mapping[str, Any]) -> NetworkInterface:
    return NetworkInterface(
        name=_text(_field(data, "name")),
        kind=_text(_field(data, "kind", "type"), "Other"),
        received=coerce_int(_field(data, "received")),
        transmitted=coerce_int(_field(data, "transmitted")),
        packets_received=coerce_int(_field(data, "packets_received", "packetsReceived")),
        packets_transmitted=coerce_int(
            _field(data, "packets_transmitted", "packetsTransmitted")
        ),
    )


def snapshot_from_mapping(
    data: Mapping[str, Any],
    timestamp: float | None = None,
) -> SystemSnapshot:
    """
    Convert a raw provider payload into a SystemSnapshot.

    Args:
        data: Payload with ``cpu``, ``memory``, ``disk``, ``network`` and
            ``processes`` entries. Any of them may be missing.
        timestamp: Capture time to use when the payload carries none.

    Raises:
        SnapshotSchemaError: If the payload declares a newer schema version.
    """
    version = coerce_int(data.get("schema_version", SNAPSHOT_SCHEMA_VERSION))
    if version > SNAPSHOT_SCHEMA_VERSION:
        raise SnapshotSchemaError(
            f"snapshot schema version {version} is newer than supported "
            f"version {SNAPSHOT_SCHEMA_VERSION}"
        )

    cpu = _section(data, "cpu")
    memory = _section(data, "memory")
    disk = _section(data, "disk")
    network = _section(data, "network")

    per_core = _field(cpu, "per_core", "perCore") or ()
    if not isinstance(per_core, Iterable) or isinstance(per_core, (str, bytes)):
        per_core = ()

    captured_at = _field(data, "timestamp")
    if captured_at is None:
        captured_at = time.time() if timestamp is None else timestamp

    records = data.get("processes") or ()
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        records = ()

    return SystemSnapshot(
        timestamp=coerce_float(captured_at),
        cpu=CpuStats(
            usage=coerce_float(_field(cpu, "usage")),
            cores=coerce_int(_field(cpu, "cores")),
            per_core=tuple(coerce_float(v) for v in per_core),
            brand=_text(_field(cpu, "brand")),
        ),
        memory=MemoryStats(
            total=coerce_int(_field(memory, "total")),
            used=coerce_int(_field(memory, "used")),
            free=coerce_int(_field(memory, "free")),
            total_swap=coerce_int(_field(memory, "total_swap", "totalSwap")),
            used_swap=coerce_int(_field(memory, "used_swap", "usedSwap")),
            free_swap=coerce_int(_field(memory, "free_swap", "freeSwap")),
        ),
        disk=DiskStats(
            read=coerce_float(_field(disk, "read")),
            write=coerce_float(_field(disk, "write")),
            disks=tuple(disk_from_mapping(d) for d in _mappings(disk.get("disks"))),
        ),
        network=NetworkStats(
            rx_cumulative=coerce_float(_field(network, "rx_cumulative", "rxCumulative", "rx")),
            tx_cumulative=coerce_float(_field(network, "tx_cumulative", "txCumulative", "tx")),
            interfaces=tuple(
                interface_from_mapping(i) for i in _mappings(network.get("interfaces"))
            ),
        ),
        processes=processes_from_records(records),
    )


def ensure_snapshot(
    raw: SystemSnapshot | Mapping[str, Any] | None,
    clock: Callable[[], float] = time.time,
) -> SystemSnapshot:
    """
    Normalize whatever a provider returned into a SystemSnapshot.

    Raises:
        SnapshotUnavailableError: If the provider returned nothing usable.
    """
    if raw is None:
        raise SnapshotUnavailableError()
    if isinstance(raw, SystemSnapshot):
        return raw
    if isinstance(raw, Mapping):
        return snapshot_from_mapping(raw, timestamp=clock())
    raise SnapshotUnavailableError(f"no data available: unexpected payload {type(raw).__name__}")


def battery_from_mapping(data: Mapping[str, Any]) -> BatteryInfo:
    """Convert a raw battery payload; anything not marked available is unavailable."""
    if not _field(data, "available"):
        return BatteryInfo(available=False)
    state = _field(data, "state")
    return BatteryInfo(
        available=True,
        percentage=_optional_float(_field(data, "percentage")),
        state=None if state is None else str(state),
        time_to_full_minutes=_optional_float(_field(data, "time_to_full_minutes", "timeToFull")),
        time_to_empty_minutes=_optional_float(
            _field(data, "time_to_empty_minutes", "timeToEmpty")
        ),
        health=_optional_float(_field(data, "health")),
        temperature=_optional_float(_field(data, "temperature")),
    )


def os_info_from_mapping(data: Mapping[str, Any]) -> OsInfo:
    return OsInfo(
        name=_text(_field(data, "name"), "Unknown"),
        version=_text(_field(data, "version"), "Unknown"),
        kernel_version=_text(_field(data, "kernel_version", "kernelVersion"), "Unknown"),
        hostname=_text(_field(data, "hostname"), "Unknown"),
        uptime_seconds=_optional_float(_field(data, "uptime_seconds", "uptime")),
    )


def ensure_battery_info(raw: BatteryInfo | Mapping[str, Any] | None) -> BatteryInfo:
    """A machine without a battery is a normal answer, not an error."""
    if isinstance(raw, BatteryInfo):
        return raw
    if isinstance(raw, Mapping):
        return battery_from_mapping(raw)
    return BatteryInfo(available=False)


def ensure_os_info(raw: OsInfo | Mapping[str, Any] | None) -> OsInfo:
    """
    Normalize a host-information payload.

    Raises:
        SnapshotUnavailableError: If the provider returned nothing usable.
    """
    if isinstance(raw, OsInfo):
        return raw
    if isinstance(raw, Mapping):
        return os_info_from_mapping(raw)
    raise SnapshotUnavailableError("no host information available")
