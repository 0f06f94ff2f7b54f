"""Shared fixtures for peep tests."""

import pytest

from peep.models import ProcessSnapshot


@pytest.fixture
def make_process():
    """Factory for ProcessSnapshot with sensible defaults."""

    def factory(pid: int, ppid: int = 0, **overrides) -> ProcessSnapshot:
        values = {
            "name": f"proc{pid}",
            "cpu_percent": 0.0,
            "memory_bytes": 0,
            "memory_percent": 0.0,
            "user": "user",
            "run_time_seconds": 0.0,
            "cpu_time_seconds": 0.0,
            "status": "Sleep",
            "command": f"/bin/proc{pid}",
            "disk_read": 0,
            "disk_write": 0,
            "is_thread": False,
        }
        values.update(overrides)
        return ProcessSnapshot(pid=pid, ppid=ppid, **values)

    return factory
