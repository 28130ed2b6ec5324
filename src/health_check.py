# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: 2025 telegram-remote-control contributors
"""
Host Diagnostics Collector

Runs external utilities (df, lsblk, smartctl, uptime) and aggregates their
output into a HealthReport. Failures of individual utilities are recorded in
the report and never raised to the caller.
"""

import logging
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import psutil

logger = logging.getLogger(__name__)

# smartctl exit status bit 0: command line did not parse, bit 1: device open failed.
# Higher bits describe the disk itself and still come with usable output.
SMARTCTL_FAILURE_MASK = 0b11

PERMISSION_MARKERS = (
    "permission denied",
    "operation not permitted",
    "a password is required",
    "a terminal is required",
    "not in the sudoers",
)

MAX_ERROR_LENGTH = 200


class DiagnosticCommandError(Exception):
    """An external diagnostic utility could not be run or failed."""

    def __init__(self, command: list[str], message: str) -> None:
        self.command = command
        self.message = message.strip()[:MAX_ERROR_LENGTH]
        self.permission_denied = any(m in message.lower() for m in PERMISSION_MARKERS)
        super().__init__(f"{' '.join(command)}: {self.message}")


@dataclass(frozen=True)
class CommandOutput:
    returncode: int
    stdout: str
    stderr: str


def run_command(args: list[str], timeout: float = 30, check: bool = True) -> CommandOutput:
    """
    Execute a command without a shell and capture its output.

    Args:
        args: Command and arguments
        timeout: Seconds before the command is killed
        check: Raise on a nonzero exit status

    Returns:
        CommandOutput with stripped stdout/stderr

    Raises:
        DiagnosticCommandError: Binary missing, timeout, or nonzero exit with check
    """
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        raise DiagnosticCommandError(args, f"timed out after {timeout:g}s")
    except (subprocess.SubprocessError, OSError) as e:
        raise DiagnosticCommandError(args, str(e))

    output = CommandOutput(result.returncode, result.stdout.strip(), result.stderr.strip())
    if check and result.returncode != 0:
        raise DiagnosticCommandError(
            args, output.stderr or output.stdout or f"exit status {result.returncode}"
        )
    return output


@dataclass(frozen=True)
class DiskHealth:
    """
    Health state of one block device.

    supported=False is the "no data" result: the device has no usable
    SMART support and is only noted in the report.
    """

    device: str
    supported: bool
    verdict: str | None = None


class DiskHealthSource(Protocol):
    """Enumerates block devices and reports their health."""

    def list_devices(self) -> list[str]:
        ...

    def check(self, device: str) -> DiskHealth:
        ...


class SmartctlHealthSource:
    """DiskHealthSource backed by lsblk and smartctl (via passwordless sudo)."""

    def __init__(self, timeout: float = 15, use_sudo: bool = True) -> None:
        self.timeout = timeout
        self.prefix = ["sudo", "-n"] if use_sudo else []

    def list_devices(self) -> list[str]:
        output = run_command(["lsblk", "-d", "-n", "-o", "NAME,TYPE"], timeout=self.timeout)
        devices = []
        for line in output.stdout.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1] == "disk":
                devices.append(f"/dev/{parts[0]}")
        return devices

    def _smartctl(self, flag: str, device: str) -> str:
        args = self.prefix + ["smartctl", flag, device]
        result = run_command(args, timeout=self.timeout, check=False)
        if result.returncode & SMARTCTL_FAILURE_MASK:
            raise DiagnosticCommandError(
                args, result.stderr or result.stdout or f"exit status {result.returncode}"
            )
        return result.stdout

    def check(self, device: str) -> DiskHealth:
        info = self._smartctl("-i", device)
        support_lines = [line for line in info.splitlines() if "SMART support is:" in line]
        support = " ".join(support_lines)
        if "Available" not in support or "Enabled" not in support:
            return DiskHealth(device=device, supported=False)

        health = self._smartctl("-H", device)
        verdict = None
        for line in health.splitlines():
            if "test result" in line or "Health Status" in line:
                verdict = line.strip()
                break
        return DiskHealth(device=device, supported=True, verdict=verdict or "verdict not reported")


@dataclass
class HealthReport:
    """Aggregated diagnostics. Error fields hold one-line messages."""

    timestamp: str
    filesystem_usage: str | None = None
    filesystem_error: str | None = None
    disks: list[DiskHealth] = field(default_factory=list)
    disk_errors: list[str] = field(default_factory=list)
    no_devices: bool = False
    permission_denied: bool = False


class HealthChecker:
    """Builds HealthReports from df and a DiskHealthSource."""

    def __init__(
        self,
        disk_source: DiskHealthSource | None = None,
        filesystem_path: str = "/",
        timeout: float = 30,
    ) -> None:
        self.disk_source = disk_source or SmartctlHealthSource()
        self.filesystem_path = filesystem_path
        self.timeout = timeout

    def check(self) -> HealthReport:
        report = HealthReport(timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"))

        try:
            report.filesystem_usage = run_command(
                ["df", "-h", self.filesystem_path], timeout=self.timeout
            ).stdout
        except DiagnosticCommandError as e:
            logger.warning(f"Filesystem check failed: {e}")
            report.filesystem_error = str(e)

        try:
            devices = self.disk_source.list_devices()
        except DiagnosticCommandError as e:
            logger.warning(f"Block device enumeration failed: {e}")
            report.disk_errors.append(str(e))
            report.permission_denied = e.permission_denied
            return report

        if not devices:
            report.no_devices = True
            return report

        for device in devices:
            try:
                report.disks.append(self.disk_source.check(device))
            except DiagnosticCommandError as e:
                logger.warning(f"SMART check failed for {device}: {e}")
                if e.permission_denied:
                    report.permission_denied = True
                else:
                    report.disk_errors.append(f"{device}: {e.message}")

        return report

    def get_uptime(self) -> str:
        """Human readable uptime, from `uptime -p` or psutil boot time."""
        try:
            output = run_command(["uptime", "-p"], timeout=self.timeout).stdout
            if output:
                return output
        except DiagnosticCommandError as e:
            logger.debug(f"uptime -p unavailable, using boot time: {e}")
        return format_uptime_seconds(time.time() - psutil.boot_time())


def format_uptime_seconds(seconds: float) -> str:
    """Format seconds the way `uptime -p` does ("up 2 days, 3 hours, 4 minutes")."""
    minutes_total = int(seconds // 60)
    days, remainder = divmod(minutes_total, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    parts = []
    for amount, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if amount:
            parts.append(f"{amount} {unit}{'s' if amount != 1 else ''}")
    return "up " + (", ".join(parts) if parts else "0 minutes")
