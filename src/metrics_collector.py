#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: 2025 telegram-remote-control contributors
"""
Host Telemetry Collector

Collects CPU, memory, disk, temperature and network counters with psutil.
Every call samples the host again; nothing is cached.

Features:
- Graceful degradation (a failed probe yields None, never an exception)
- Pluggable temperature sources with a defined probing order
- Top memory-consuming processes
- Text bar charts for percentage values

Usage:
    collector = MetricsCollector()
    metrics = collector.collect_all_metrics()

    # CLI usage
    python3 metrics_collector.py [--json]
"""

import json
import logging
import math
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import psutil

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024
BAR_FILLED = "█"
BAR_EMPTY = "░"
BAR_NOT_APPLICABLE = "[ N/A ]"

DEFAULT_SENSOR_PRIORITY = ("coretemp", "k10temp", "cpu_thermal", "zenpower")
THERMAL_ZONE_PATH = Path("/sys/class/thermal/thermal_zone0/temp")


def create_bar_chart(value: Any, max_value: float = 100, length: int = 15) -> str:
    """
    Render a value as a fixed-width text bar with a percentage label.

    Args:
        value: Measured value
        max_value: Value that fills the whole bar
        length: Number of character cells

    Returns:
        "[█████░░░░░] 50.0%", or "[ N/A ]" for non-numeric or negative input
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return BAR_NOT_APPLICABLE
    if not math.isfinite(value) or value < 0:
        return BAR_NOT_APPLICABLE
    if max_value <= 0:
        return BAR_NOT_APPLICABLE

    percentage = (value / max_value) * 100
    filled_length = min(int(length * value // max_value), length)
    bar = BAR_FILLED * filled_length + BAR_EMPTY * (length - filled_length)
    return f"[{bar}] {percentage:.1f}%"


class TemperatureSource(Protocol):
    """Something that can report a CPU temperature in degrees Celsius."""

    name: str

    def read(self) -> float | None:
        """Return the temperature, or None when no data is available."""
        ...


class PsutilTemperatureSource:
    """Reads hwmon sensors via psutil, preferring known CPU sensor chips."""

    name = "psutil"

    def __init__(self, preferred_chips: tuple[str, ...] | list[str] = DEFAULT_SENSOR_PRIORITY) -> None:
        self.preferred_chips = tuple(preferred_chips)

    def read(self) -> float | None:
        try:
            temps = psutil.sensors_temperatures()
        except (AttributeError, OSError):
            # sensors_temperatures() does not exist on every platform
            return None
        if not temps:
            return None

        for chip in self.preferred_chips:
            readings = [entry.current for entry in temps.get(chip, [])]
            if readings:
                return sum(readings) / len(readings)

        for entries in temps.values():
            if entries:
                return entries[0].current

        return None


class ThermalZoneTemperatureSource:
    """Reads the generic Linux thermal zone (millidegrees)."""

    name = "thermal_zone"

    def __init__(self, path: Path = THERMAL_ZONE_PATH) -> None:
        self.path = path

    def read(self) -> float | None:
        try:
            return float(self.path.read_text().strip()) / 1000
        except (OSError, ValueError):
            return None


class MetricsCollector:
    """Local system metrics collector using psutil."""

    def __init__(
        self,
        temperature_sources: list[TemperatureSource] | None = None,
        disk_path: str = "/",
        cpu_interval: float = 1.0,
    ) -> None:
        if temperature_sources is None:
            temperature_sources = [PsutilTemperatureSource(), ThermalZoneTemperatureSource()]
        self.temperature_sources = temperature_sources
        self.disk_path = disk_path
        self.cpu_interval = cpu_interval

    def get_cpu_percent(self) -> float | None:
        try:
            return psutil.cpu_percent(interval=self.cpu_interval)
        except OSError as e:
            logger.warning(f"CPU check failed: {e}")
            return None

    def get_memory_percent(self) -> float | None:
        try:
            return psutil.virtual_memory().percent
        except OSError as e:
            logger.warning(f"Memory check failed: {e}")
            return None

    def get_disk_percent(self) -> float | None:
        """Get usage percentage of the monitored filesystem."""
        try:
            return psutil.disk_usage(self.disk_path).percent
        except OSError as e:
            logger.warning(f"Disk check failed for {self.disk_path}: {e}")
            return None

    def get_cpu_temperature(self) -> float | None:
        """
        Get CPU temperature from the first source that has data.

        Returns:
            Temperature in Celsius, or None if no sensor is exposed
        """
        for source in self.temperature_sources:
            value = source.read()
            if value is not None:
                logger.debug(f"CPU temperature {value:.1f}°C from {source.name}")
                return value
        return None

    def get_network_stats(self) -> dict[str, float] | None:
        """Get cumulative bytes sent/received in MB."""
        try:
            net_io = psutil.net_io_counters()
        except OSError as e:
            logger.warning(f"Network check failed: {e}")
            return None
        if net_io is None:
            return None
        return {
            "sent_mb": net_io.bytes_sent / BYTES_PER_MB,
            "recv_mb": net_io.bytes_recv / BYTES_PER_MB,
        }

    def get_top_processes(self, limit: int = 5) -> list[dict[str, Any]]:
        """
        Get processes with the highest resident memory.

        Args:
            limit: Number of processes to return

        Returns:
            List of dicts with pid, rss_mb and name, largest first
        """
        processes = []
        for proc in psutil.process_iter(["pid", "name", "memory_info"]):
            memory_info = proc.info.get("memory_info")
            processes.append(
                {
                    "pid": proc.info.get("pid"),
                    "name": proc.info.get("name") or "?",
                    "rss": memory_info.rss if memory_info else 0,
                }
            )

        # sorted() is stable, ties keep iteration order
        processes = sorted(processes, key=lambda p: p["rss"], reverse=True)[:limit]
        return [
            {"pid": p["pid"], "rss_mb": p["rss"] / BYTES_PER_MB, "name": p["name"]}
            for p in processes
        ]

    def collect_all_metrics(self) -> dict[str, Any]:
        """Collect all available metrics."""
        return {
            "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "cpu_percent": self.get_cpu_percent(),
            "memory_percent": self.get_memory_percent(),
            "disk_percent": self.get_disk_percent(),
            "cpu_temp": self.get_cpu_temperature(),
            "network": self.get_network_stats(),
        }


def main() -> int:
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Collect a telemetry snapshot")
    parser.add_argument(
        "--json",
        "-j",
        action="store_true",
        help="Output as JSON",
    )
    args = parser.parse_args()

    collector = MetricsCollector()
    metrics = collector.collect_all_metrics()

    if args.json:
        print(json.dumps(metrics, indent=2))
    else:
        print(f"Timestamp: {metrics['timestamp']}")
        print(f"CPU : {create_bar_chart(metrics['cpu_percent'])}")
        print(f"RAM : {create_bar_chart(metrics['memory_percent'])}")
        print(f"Disk: {create_bar_chart(metrics['disk_percent'])}")
        temp = metrics["cpu_temp"]
        print(f"Temp: {f'{temp:.1f}°C' if temp is not None else 'N/A'}")
        if metrics["network"]:
            print(
                f"Net : sent {metrics['network']['sent_mb']:.2f} MB, "
                f"recv {metrics['network']['recv_mb']:.2f} MB"
            )

    return 0


if __name__ == "__main__":
    sys.exit(main())
