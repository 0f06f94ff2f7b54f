"""Capabilities the monitor consumes from the outside world.

Only these protocols are imported by the monitor core, so it can be used
with any snapshot source without loading psutil.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from peep.models import BatteryInfo, KillResult, OsInfo, SystemSnapshot


class SnapshotProvider(Protocol):
    async def fetch_snapshot(self) -> SystemSnapshot | Mapping[str, Any] | None: ...


class ProcessControl(Protocol):
    async def kill_process(self, pid: int) -> KillResult: ...


class HostInfoProvider(Protocol):
    """Slow-changing facts about the host, fetched on demand rather than per tick."""

    async def fetch_battery_info(self) -> BatteryInfo | Mapping[str, Any] | None: ...

    async def fetch_os_info(self) -> OsInfo | Mapping[str, Any] | None: ...
