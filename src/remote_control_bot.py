#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: 2025 telegram-remote-control contributors
"""
Remote Control Telegram Bot

Single-operator remote control for one host:
- System status (CPU, RAM, disk, temperature, network)
- Disk health checks (df, SMART)
- Top memory-consuming processes and uptime
- Reboot / shutdown / suspend behind a confirmation keyboard

Updates are long-polled and handled strictly one at a time.

Usage:
    # Run directly
    python3 remote_control_bot.py

    # As systemd service
    systemctl start telegram-remote-control.service

    # With custom config
    TELEGRAM_CONFIG_DIR=/etc/mybot python3 remote_control_bot.py

Configuration:
    See config/telegram_config.yml.example for configuration options.
    Token, user ID and server location can be set via environment variables.

Telegram Commands:
    /status, /health, /top, /uptime, /reboot, /shutdown, /suspend, /help
"""

import asyncio
import logging
import logging.handlers
import os
import signal
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

from telegram import Bot
from telegram.error import InvalidToken, RetryAfter, TelegramError

from command_router import CommandRouter
from config_loader import BotConfig, load_config, validate_config
from health_check import HealthChecker, SmartctlHealthSource
from message_formatter import format_health_report, format_startup_notice, main_keyboard
from metrics_collector import (
    DEFAULT_SENSOR_PRIORITY,
    MetricsCollector,
    PsutilTemperatureSource,
    ThermalZoneTemperatureSource,
)
from power_actions import ActionExecutor

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
FALLBACK_LOG_DIR = Path("/tmp/telegram-remote-control")


def setup_logging(config: dict[str, Any]) -> None:
    """Log to stderr and a rotating file, falling back to /tmp for the file."""
    log_config = config.get("logging", {})
    log_dir = Path(log_config.get("log_dir", "/var/log/telegram-remote-control"))

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        log_dir = FALLBACK_LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)

    log_level = os.getenv("LOG_LEVEL", config.get("bot", {}).get("log_level", "INFO"))
    logging.basicConfig(
        level=getattr(logging, str(log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.handlers.RotatingFileHandler(
                log_dir / "bot.log",
                maxBytes=log_config.get("max_bytes", 5 * 1024 * 1024),
                backupCount=log_config.get("backup_count", 3),
            ),
        ],
    )
    # httpx logs every getUpdates request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _retry_seconds(retry_after: int | float | timedelta) -> float:
    if isinstance(retry_after, timedelta):
        return retry_after.total_seconds()
    return float(retry_after)


class UpdatePoller:
    """
    Long-polling consumer that feeds updates to the router one by one.

    The offset is advanced before each dispatch, so an update whose handling
    fails is never fetched again.
    """

    def __init__(
        self,
        bot: Any,
        router: CommandRouter,
        poll_timeout: int = 30,
        retry_delay: float = 15,
    ) -> None:
        self.bot = bot
        self.router = router
        self.poll_timeout = poll_timeout
        self.retry_delay = retry_delay
        self.offset = 0
        self._running = False

    async def poll_once(self) -> int:
        """
        Fetch one batch and dispatch it in arrival order.

        Returns:
            Number of updates dispatched

        Raises:
            TelegramError: Fetching or replying failed
        """
        updates = await self.bot.get_updates(offset=self.offset + 1, timeout=self.poll_timeout)

        dispatched = 0
        for update in updates:
            if update.update_id <= self.offset:
                logger.debug(f"Skipping already consumed update {update.update_id}")
                continue
            self.offset = update.update_id
            await self.router.handle_update(update)
            dispatched += 1
        return dispatched

    async def run(self) -> None:
        """Poll until stop() is called. Only InvalidToken escapes."""
        self._running = True
        while self._running:
            try:
                await self.poll_once()
            except InvalidToken:
                raise
            except RetryAfter as e:
                delay = _retry_seconds(e.retry_after)
                logger.warning(f"Flood control exceeded. Retrying in {delay:g} seconds...")
                await asyncio.sleep(delay)
            except TelegramError as e:
                logger.error(f"Network error: {e}. Retrying in {self.retry_delay:g} seconds...")
                await asyncio.sleep(self.retry_delay)
            except Exception as e:
                logger.error(f"An unexpected error occurred: {e}", exc_info=True)
                await asyncio.sleep(self.retry_delay)

    def stop(self) -> None:
        self._running = False


class RemoteControlBot:
    """Wires configuration, collectors, router and poller together."""

    def __init__(self, config: BotConfig, bot: Any | None = None) -> None:
        self.config = config
        self.bot = bot if bot is not None else Bot(token=config.token)

        self.collector = MetricsCollector(
            temperature_sources=[
                PsutilTemperatureSource(config.temperature_sensors or DEFAULT_SENSOR_PRIORITY),
                ThermalZoneTemperatureSource(),
            ],
            disk_path=config.disk_path,
            cpu_interval=config.cpu_interval,
        )
        self.health_checker = HealthChecker(
            disk_source=SmartctlHealthSource(timeout=config.smartctl_timeout),
            filesystem_path=config.disk_path,
            timeout=config.subprocess_timeout,
        )
        self.executor = ActionExecutor(delay=config.action_delay)
        self.router = CommandRouter(
            bot=self.bot,
            authorized_user_id=config.user_id,
            server_location=config.server_location,
            collector=self.collector,
            health_checker=self.health_checker,
            executor=self.executor,
            bar_length=config.bar_length,
        )
        self.poller = UpdatePoller(
            self.bot,
            self.router,
            poll_timeout=config.poll_timeout,
            retry_delay=config.retry_delay,
        )

    async def initialize(self) -> None:
        """Initialize the Bot (getMe), retrying on transport errors."""
        while True:
            try:
                await self.bot.initialize()
                return
            except InvalidToken:
                raise
            except TelegramError as e:
                logger.error(
                    f"Could not reach Telegram: {e}. "
                    f"Retrying in {self.config.retry_delay:g} seconds..."
                )
                await asyncio.sleep(self.config.retry_delay)

    async def send_startup_report(self) -> None:
        """
        Phone home: startup notice plus a health report to the operator.

        Returns normally even when sending fails; only InvalidToken propagates.
        """
        chat_id = self.config.user_id
        location = self.config.server_location
        try:
            await self.router.reply(chat_id, format_startup_notice(location))
            report = format_health_report(self.health_checker.check(), location)
            await self.router.reply(chat_id, report, main_keyboard())
        except InvalidToken:
            raise
        except TelegramError as e:
            logger.warning(f"Failed to send startup report (non-fatal): {e}")

    async def run(self) -> None:
        await self.initialize()
        try:
            logger.info(f"Bot started on {self.config.server_location}")
            await self.send_startup_report()
            await self.poller.run()
        finally:
            await self.bot.shutdown()


async def serve(bot: RemoteControlBot) -> None:
    """Run the bot, cancelling it on SIGTERM."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    except NotImplementedError:
        # add_signal_handler is unavailable on Windows event loops
        pass
    await bot.run()


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0=stopped by signal, 1=configuration error, 130=SIGINT)
    """
    config = load_config()
    setup_logging(config)

    errors = validate_config(config)
    if errors:
        for error in errors:
            logger.error(f"FATAL: Config error: {error}")
        return 1

    bot = RemoteControlBot(BotConfig(config))

    try:
        asyncio.run(serve(bot))
        return 0
    except asyncio.CancelledError:
        logger.info("SIGTERM received, bot stopped")
        return 0
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received")
        return 130
    except InvalidToken:
        logger.error("FATAL: Bot token was rejected by Telegram")
        return 1
    except Exception as e:
        logger.exception(f"Bot crashed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
