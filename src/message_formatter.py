# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: 2025 telegram-remote-control contributors
"""
Telegram message and keyboard builders.

All texts use Telegram legacy Markdown (ParseMode.MARKDOWN). Fixed-width
labels sit in inline code spans so report columns line up in the client.
"""

from typing import Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.helpers import escape_markdown

from health_check import HealthReport
from metrics_collector import create_bar_chart
from power_actions import PowerAction

RULE = f"`{'─' * 25}`"
CANCEL_CALLBACK = "/help"

UNAUTHORIZED_MESSAGE = "🚫 You are not authorized to use this bot."


def _label(server_location: str) -> str:
    # Legacy Markdown ignores escapes inside entities; keep labels outside bold/italic
    return escape_markdown(server_location, version=1)


def _code(text: Any) -> str:
    # Backticks would terminate the code span
    return str(text).replace("`", "'")


def get_help_text(server_location: str) -> str:
    return (
        f"*Welcome!* 🤖 Remote control for {_label(server_location)}\n\n"
        "Here are the available commands:\n\n"
        "*/status* - Show current server status.\n"
        "*/health* - Perform a detailed health check.\n"
        "*/reboot* - Reboot the server (requires confirmation).\n"
        "*/shutdown* - Shut down the server (requires confirmation).\n"
        "*/suspend* - Suspend the server (requires confirmation).\n"
        "*/top* - Show top 5 memory-consuming processes.\n"
        "*/uptime* - Show server uptime.\n"
        "*/help* - Show this help message."
    )


def format_status_report(
    metrics: dict[str, Any], server_location: str, bar_length: int = 15
) -> str:
    """
    Format the telemetry snapshot as a fixed-width status block.

    Args:
        metrics: Output of MetricsCollector.collect_all_metrics()
        server_location: Display label of this host
        bar_length: Cells per bar chart

    Returns:
        Markdown report ending with the generation timestamp
    """
    temp = metrics.get("cpu_temp")
    temp_text = f"{temp:.1f}°C" if isinstance(temp, (int, float)) else "N/A"

    network = metrics.get("network")
    if network:
        net_text = f"Sent: {network['sent_mb']:.2f} MB, Recv: {network['recv_mb']:.2f} MB"
    else:
        net_text = "N/A"

    return (
        f"*📊 Server Status:* {_label(server_location)}\n"
        f"{RULE}\n"
        f"`CPU Usage :` {create_bar_chart(metrics.get('cpu_percent'), length=bar_length)}\n"
        f"`RAM Usage :` {create_bar_chart(metrics.get('memory_percent'), length=bar_length)}\n"
        f"`Disk Usage:` {create_bar_chart(metrics.get('disk_percent'), length=bar_length)}\n"
        f"`CPU Temp  :` {temp_text}\n"
        f"`Network   :` {net_text}\n"
        f"{RULE}\n"
        f"_Last updated: {metrics.get('timestamp', 'N/A')}_"
    )


def format_health_report(report: HealthReport, server_location: str) -> str:
    """Format a HealthReport; every failure shows up as its own line."""
    message = f"*🩺 Server Health Check:* {_label(server_location)}\n"
    message += f"{RULE}\n"

    message += "*Filesystem Usage:*\n"
    if report.filesystem_usage is not None:
        message += f"```\n{report.filesystem_usage}\n```\n"
    else:
        message += f"`Error: {_code(report.filesystem_error)}`\n"

    message += "*Disk S.M.A.R.T. Status:*\n"
    for disk in report.disks:
        if disk.supported:
            message += f"`{disk.device}:` {_code(disk.verdict)}\n"
        else:
            message += f"`{disk.device}:` SMART not available\n"

    if report.no_devices:
        message += "`No physical drives found to check.`\n"
    elif report.disks and not any(disk.supported for disk in report.disks):
        message += "`No SMART-enabled drives found.`\n"

    if report.permission_denied:
        message += (
            "`Insufficient privileges to query SMART data. "
            "Ensure the bot has sudo rights for smartctl.`\n"
        )
    for error in report.disk_errors:
        message += f"`Error: {_code(error)}`\n"

    message += f"_Checked: {report.timestamp}_"
    return message


def format_top_processes(processes: list[dict[str, Any]]) -> str:
    message = "*Top 5 Memory-Intensive Processes*\n"
    message += "`PID     | RSS     | Name`\n"
    message += f"`{'─' * 30}`\n"
    for proc in processes:
        rss = f"{proc['rss_mb']:.1f}M"
        message += f"`{proc['pid']:<7} | {rss:<7} | {_code(proc['name'])}`\n"
    return message


def format_uptime(uptime: str) -> str:
    return f"Server uptime: `{_code(uptime)}`"


def format_confirmation(action: PowerAction) -> str:
    return f"⚠️ *Are you sure you want to {action.value} the server?*"


def format_executing(action: PowerAction) -> str:
    return f"✅ Command received. Executing *{action.value}* now..."


def format_startup_notice(server_location: str) -> str:
    return (
        f"🤖 Bot is online on {_label(server_location)}\n"
        "Performing startup health check..."
    )


def main_keyboard() -> InlineKeyboardMarkup:
    """Two rows of three: monitoring on top, power actions below."""
    keyboard = [
        [
            InlineKeyboardButton("📊 Status", callback_data="/status"),
            InlineKeyboardButton("🩺 Health", callback_data="/health"),
            InlineKeyboardButton("📈 Top Processes", callback_data="/top"),
        ],
        [
            InlineKeyboardButton("🚨 Reboot", callback_data="/reboot"),
            InlineKeyboardButton("🚫 Shutdown", callback_data="/shutdown"),
            InlineKeyboardButton("💤 Suspend", callback_data="/suspend"),
        ],
    ]
    return InlineKeyboardMarkup(keyboard)


def confirmation_keyboard(action: PowerAction, confirm_token: str) -> InlineKeyboardMarkup:
    """
    Yes/No keyboard for a pending power action.

    Args:
        action: Action awaiting confirmation
        confirm_token: Callback data echoed back when "Yes" is pressed

    Returns:
        Keyboard whose "No" button routes back to the help menu
    """
    keyboard = [
        [
            InlineKeyboardButton(
                f"✅ Yes, {action.value.capitalize()}", callback_data=confirm_token
            ),
            InlineKeyboardButton("❌ No, Cancel", callback_data=CANCEL_CALLBACK),
        ]
    ]
    return InlineKeyboardMarkup(keyboard)
