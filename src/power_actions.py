# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: 2025 telegram-remote-control contributors
"""
Privileged host power actions (reboot, shutdown, suspend).

The executor trusts its caller: confirmation is enforced by the command
router before execute() is ever reached. Commands run through passwordless
sudo rules installed at deployment time (see deploy/sudoers.example).
"""

import asyncio
import logging
import subprocess
from enum import Enum

logger = logging.getLogger(__name__)


class PowerAction(str, Enum):
    REBOOT = "reboot"
    SHUTDOWN = "shutdown"
    SUSPEND = "suspend"


POWER_COMMANDS: dict[PowerAction, list[str]] = {
    PowerAction.REBOOT: ["sudo", "-n", "/sbin/reboot"],
    PowerAction.SHUTDOWN: ["sudo", "-n", "/sbin/shutdown", "now"],
    PowerAction.SUSPEND: ["sudo", "-n", "systemctl", "suspend"],
}


class ActionExecutor:
    """Fire-and-forget runner for power actions."""

    def __init__(self, delay: float = 1.0) -> None:
        # Gives the preceding "executing" reply time to leave the host
        self.delay = delay

    async def execute(self, action: PowerAction) -> None:
        """
        Issue the OS command for action without waiting for its outcome.

        The host is expected to go down (or sleep) shortly afterwards, so the
        spawned process is never awaited and its result is never reported.
        """
        action = PowerAction(action)
        command = POWER_COMMANDS[action]
        await asyncio.sleep(self.delay)

        logger.warning(f"Executing power action '{action.value}': {' '.join(command)}")
        try:
            subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to spawn power action '{action.value}': {e}")
