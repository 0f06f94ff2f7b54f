"""Filtering and sorting of the process table."""

from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from peep.models import ProcessSnapshot
from peep.tree import TreeRow, build_forest, flatten_forest, prune_forest


class SortKey(Enum):
    """Sort keys for the process table."""

    PID = "pid"
    CPU = "cpu"
    MEMORY_BYTES = "memory_bytes"
    MEMORY_PERCENT = "memory_percent"
    RUN_TIME = "run_time"
    CPU_TIME = "cpu_time"
    DISK_READ = "disk_read"
    DISK_WRITE = "disk_write"
    NAME = "name"
    USER = "user"
    STATUS = "status"
    COMMAND = "command"

    @property
    def is_numeric(self) -> bool:
        return self not in _TEXT_KEYS

    @property
    def attribute(self) -> str:
        return _ATTRIBUTES[self]

    def sort_value(self) -> Callable[[ProcessSnapshot], Any]:
        """Key function comparing numerically or case-insensitively."""
        attribute = self.attribute
        if self.is_numeric:
            return lambda p: _numeric(getattr(p, attribute))
        return lambda p: str(getattr(p, attribute)).casefold()


_TEXT_KEYS = frozenset({SortKey.NAME, SortKey.USER, SortKey.STATUS, SortKey.COMMAND})

_ATTRIBUTES = {
    SortKey.PID: "pid",
    SortKey.CPU: "cpu_percent",
    SortKey.MEMORY_BYTES: "memory_bytes",
    SortKey.MEMORY_PERCENT: "memory_percent",
    SortKey.RUN_TIME: "run_time_seconds",
    SortKey.CPU_TIME: "cpu_time_seconds",
    SortKey.DISK_READ: "disk_read",
    SortKey.DISK_WRITE: "disk_write",
    SortKey.NAME: "name",
    SortKey.USER: "user",
    SortKey.STATUS: "status",
    SortKey.COMMAND: "command",
}


def _numeric(value: Any) -> float:
    # NaN would make the ordering inconsistent
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0


@dataclass(slots=True, frozen=True)
class SortState:
    """Active sort column and direction."""

    key: SortKey = SortKey.CPU
    descending: bool = True

    def select(self, key: SortKey) -> "SortState":
        """Re-selecting the active key flips direction; a new key starts descending."""
        if key is self.key:
            return SortState(key=key, descending=not self.descending)
        return SortState(key=key, descending=True)


def matches_filter(process: ProcessSnapshot, filter_text: str) -> bool:
    """Case-insensitive substring match on the process name."""
    if not filter_text:
        return True
    return filter_text.casefold() in process.name.casefold()


def filter_processes(
    processes: Sequence[ProcessSnapshot], filter_text: str
) -> list[ProcessSnapshot]:
    if not filter_text:
        return list(processes)
    return [p for p in processes if matches_filter(p, filter_text)]


def sort_processes(
    processes: Sequence[ProcessSnapshot],
    sort_key: SortKey = SortKey.CPU,
    descending: bool = True,
) -> list[ProcessSnapshot]:
    """Stable sort; equal rows keep their input order in either direction."""
    return sorted(processes, key=sort_key.sort_value(), reverse=descending)


def process_view(
    processes: Sequence[ProcessSnapshot],
    filter_text: str = "",
    sort_key: SortKey = SortKey.CPU,
    descending: bool = True,
) -> list[ProcessSnapshot]:
    """Filter the flat process list by name, then sort it."""
    return sort_processes(filter_processes(processes, filter_text), sort_key, descending)


def tree_view(
    processes: Sequence[ProcessSnapshot],
    filter_text: str = "",
    sort_key: SortKey = SortKey.CPU,
    descending: bool = True,
    collapsed: Collection[int] = (),
) -> list[TreeRow]:
    """
    Build the process forest and flatten it into visible rows.

    Siblings are sorted by ``sort_key``; children stay directly below their
    parent. With a filter, matching processes are kept together with their
    ancestor chain.
    """
    roots = build_forest(processes, collapsed=collapsed).roots
    if filter_text:
        roots = prune_forest(roots, lambda p: matches_filter(p, filter_text))
    return flatten_forest(roots, sort_key=sort_key.sort_value(), descending=descending)
