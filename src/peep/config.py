"""Monitor settings and how they are loaded."""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from peep.format import clamp
from peep.history import DEFAULT_CAPACITY, DEFAULT_CHART_WINDOW
from peep.scheduler import MIN_INTERVAL

logger = logging.getLogger(__name__)

ENV_PREFIX = "PEEP_"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class MonitorConfig:
    poll_interval: float = 2.0  # Seconds
    history_capacity: int = DEFAULT_CAPACITY
    chart_window: int = DEFAULT_CHART_WINDOW
    include_threads: bool = False
    log_level: str = "INFO"
    log_file: str | None = None  # JSON lines, rotated daily

    def __post_init__(self) -> None:
        self.poll_interval = max(MIN_INTERVAL, float(self.poll_interval))
        self.history_capacity = max(1, int(self.history_capacity))
        self.chart_window = int(clamp(int(self.chart_window), 1, self.history_capacity))
        self.log_level = str(self.log_level).upper()
        if self.log_level not in _LOG_LEVELS:
            self.log_level = "INFO"
        self.log_file = str(self.log_file) if self.log_file else None


def _convert(name: str, raw: Any) -> Any:
    default = getattr(MonitorConfig(), name)
    if default is None:
        return str(raw) if raw not in (None, "") else None
    if isinstance(default, bool):
        if isinstance(raw, str):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return bool(raw)
    return type(default)(raw)


def config_from_dict(data: dict[str, Any]) -> MonitorConfig:
    """Build a config from a mapping; unknown keys and bad values are ignored."""
    values: dict[str, Any] = {}
    for f in fields(MonitorConfig):
        if f.name not in data:
            continue
        try:
            values[f.name] = _convert(f.name, data[f.name])
        except (TypeError, ValueError):
            logger.warning("ignoring invalid value for %s: %r", f.name, data[f.name])
    return MonitorConfig(**values)


def load_config(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> MonitorConfig:
    """
    Load settings from an optional JSON file, then apply environment overrides.

    A missing or unreadable file yields the defaults. Environment variables
    are the upper-cased field names prefixed with ``PEEP_``, for example
    ``PEEP_POLL_INTERVAL``.
    """
    data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path).expanduser()
        try:
            loaded = json.loads(config_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            loaded = {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("could not read config %s: %s", config_path, exc)
            loaded = {}
        if isinstance(loaded, dict):
            data.update(loaded)

    env = os.environ if environ is None else environ
    for f in fields(MonitorConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in env:
            data[f.name] = env[key]

    return config_from_dict(data)
