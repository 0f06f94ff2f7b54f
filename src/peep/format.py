"""Human-readable formatting of sizes, rates and durations."""

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(size: float, per_second: bool = False, decimals: int = 2) -> str:
    """Format bytes as a human-readable string, e.g. ``1.50 GB`` or ``1.50 GB/s``."""
    suffix = "/s" if per_second else ""
    if size == 0:
        return f"0 B{suffix}"
    if size < 1:
        return f"{size:.{decimals}f} B{suffix}"

    value = float(size)
    for unit in _SIZE_UNITS[:-1]:
        if value < 1024:
            return f"{value:.{decimals}f} {unit}{suffix}"
        value = value / 1024
    return f"{value:.{decimals}f} {_SIZE_UNITS[-1]}{suffix}"


def format_storage(size: float, decimals: int = 2) -> str:
    return format_bytes(size, per_second=False, decimals=decimals)


def format_throughput(bytes_per_second: float, decimals: int = 2) -> str:
    return format_bytes(bytes_per_second, per_second=True, decimals=decimals)


def format_percentage(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def format_duration(seconds: float) -> str:
    """Format a run time or uptime: ``45s``, ``5m``, ``2h 3m``, ``1d 4h``."""
    if seconds < 60:
        return f"{int(seconds)}s"
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes}m"
    hours, mins = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {mins}m"
    days, hrs = divmod(hours, 24)
    return f"{days}d {hrs}h"


format_uptime = format_duration


def format_cpu_time(seconds: float) -> str:
    """Format CPU time as ``HH:MM:SS.mmm``."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    millis = int((seconds % 1) * 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)
