"""Headless command-line runner for peep."""

import argparse
import asyncio
import logging
from dataclasses import replace

from peep.config import MonitorConfig, load_config
from peep.format import (
    format_bytes,
    format_duration,
    format_percentage,
    format_throughput,
    format_uptime,
)
from peep.logging_setup import configure_logging
from peep.models import BatteryInfo, OsInfo, ProcessSnapshot, Sample
from peep.monitor import SystemMonitor
from peep.provider import PsutilProcessControl, PsutilSnapshotProvider
from peep.table import SortKey
from peep.tree import TreeRow

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="peep", description="Sample system and process telemetry.")
    parser.add_argument("--config", help="Path to a JSON settings file")
    parser.add_argument("--interval", type=float, help="Seconds between samples")
    parser.add_argument("--samples", type=int, default=3, help="Number of samples to take")
    parser.add_argument("--filter", default="", help="Only show processes whose name contains this")
    parser.add_argument(
        "--sort",
        choices=[key.value for key in SortKey],
        default=SortKey.CPU.value,
        help="Process sort column",
    )
    parser.add_argument("--ascending", action="store_true", help="Sort ascending")
    parser.add_argument("--tree", action="store_true", help="Show the process hierarchy")
    parser.add_argument("--threads", action="store_true", help="List threads as processes")
    parser.add_argument("--top", type=int, default=15, help="Process rows to print")
    parser.add_argument("--log-level", help="Logging level")
    parser.add_argument("--log-file", help="Also write JSON lines logs to this file")
    return parser


def summarize(sample: Sample) -> str:
    """One-line summary of a completed sample."""
    point = sample.point
    return (
        f"cpu {format_percentage(point.cpu_percent)} "
        f"mem {format_percentage(point.memory_percent)} "
        f"swap {format_percentage(point.swap_percent)} "
        f"rx {format_throughput(point.network_rx_bytes_per_sec)} "
        f"tx {format_throughput(point.network_tx_bytes_per_sec)} "
        f"procs {len(sample.snapshot.processes)}"
    )


def describe_host(os_info: OsInfo, battery: BatteryInfo) -> str:
    """One-line host summary: name, kernel, uptime and battery."""
    parts = [os_info.hostname, f"{os_info.name} {os_info.kernel_version}"]
    if os_info.uptime_seconds is not None:
        parts.append(f"up {format_uptime(os_info.uptime_seconds)}")
    if battery.available and battery.percentage is not None:
        state = f" {battery.state}" if battery.state else ""
        parts.append(f"battery {format_percentage(battery.percentage, decimals=0)}{state}")
    return "  ".join(parts)


def format_row(process: ProcessSnapshot, depth: int = 0) -> str:
    name = "  " * depth + process.name
    return (
        f"{process.pid:>8} {process.user[:10]:<10} {process.status[:9]:<9} "
        f"{process.cpu_percent:6.1f} {format_bytes(process.memory_bytes, decimals=1):>10} "
        f"{format_duration(process.run_time_seconds):>8}  {name}"
    )


async def run(args: argparse.Namespace, config: MonitorConfig) -> int:
    provider = PsutilSnapshotProvider(include_threads=config.include_threads)
    monitor = SystemMonitor(
        provider,
        config=config,
        process_control=PsutilProcessControl(),
        host_info=provider,
    )
    done = asyncio.Event()
    remaining = max(1, args.samples)

    def on_sample(sample: Sample) -> None:
        nonlocal remaining
        logger.info(summarize(sample))
        remaining -= 1
        if remaining <= 0:
            done.set()

    monitor.start(on_sample=on_sample)
    try:
        await done.wait()
    finally:
        monitor.stop()

    rows = monitor.process_view(
        filter_text=args.filter,
        sort_key=SortKey(args.sort),
        descending=not args.ascending,
        tree_mode=args.tree,
    )
    print(describe_host(await monitor.os_info(), await monitor.battery_info()))
    print(f"{'PID':>8} {'USER':<10} {'STATUS':<9} {'CPU%':>6} {'MEM':>10} {'TIME':>8}  NAME")
    for row in rows[: max(0, args.top)]:
        if isinstance(row, TreeRow):
            print(format_row(row.process, row.depth))
        else:
            print(format_row(row))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the peep command."""
    args = build_parser().parse_args(argv)
    overrides: dict[str, object] = {}
    if args.interval is not None:
        overrides["poll_interval"] = args.interval
    if args.threads:
        overrides["include_threads"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_file:
        overrides["log_file"] = args.log_file
    config = replace(load_config(args.config), **overrides)

    configure_logging(config.log_level, log_file=config.log_file)
    return asyncio.run(run(args, config))
