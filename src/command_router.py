# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: 2025 telegram-remote-control contributors
"""
Command Router

Turns one inbound Telegram update into at most one reply (plus, for a
confirmed power action, one executor call).

Security model:
- Exactly one authorized sender ID; everyone else gets a denial and nothing else
- Power actions need a confirm_<action> token, which is only ever handed out
  inside the confirmation keyboard
- No server-side session: the pending action travels in the callback data
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from telegram import InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.error import InvalidToken, TelegramError

from health_check import HealthChecker
from message_formatter import (
    UNAUTHORIZED_MESSAGE,
    confirmation_keyboard,
    format_confirmation,
    format_executing,
    format_health_report,
    format_status_report,
    format_top_processes,
    format_uptime,
    get_help_text,
    main_keyboard,
)
from metrics_collector import MetricsCollector
from power_actions import ActionExecutor, PowerAction

logger = logging.getLogger(__name__)


class Command(str, Enum):
    START = "start"
    HELP = "help"
    STATUS = "status"
    HEALTH = "health"
    TOP = "top"
    UPTIME = "uptime"
    REBOOT = "reboot"
    SHUTDOWN = "shutdown"
    SUSPEND = "suspend"
    CONFIRM = "confirm"
    CANCEL = "cancel"


SLASH_COMMANDS: dict[str, Command] = {
    "/start": Command.START,
    "/help": Command.HELP,
    "/status": Command.STATUS,
    "/health": Command.HEALTH,
    "/top": Command.TOP,
    "/uptime": Command.UPTIME,
    "/reboot": Command.REBOOT,
    "/shutdown": Command.SHUTDOWN,
    "/suspend": Command.SUSPEND,
    "/cancel": Command.CANCEL,
    "cancel": Command.CANCEL,
}

ACTION_REQUESTS: dict[Command, PowerAction] = {
    Command.REBOOT: PowerAction.REBOOT,
    Command.SHUTDOWN: PowerAction.SHUTDOWN,
    Command.SUSPEND: PowerAction.SUSPEND,
}


@dataclass(frozen=True)
class PendingAction:
    """A power action awaiting confirmation, encoded in callback data."""

    PREFIX: ClassVar[str] = "confirm_"

    action: PowerAction

    @property
    def token(self) -> str:
        return f"{self.PREFIX}{self.action.value}"

    @classmethod
    def from_token(cls, token: str) -> "PendingAction | None":
        if not token.startswith(cls.PREFIX):
            return None
        try:
            return cls(PowerAction(token[len(cls.PREFIX):]))
        except ValueError:
            return None


@dataclass(frozen=True)
class ParsedCommand:
    command: Command
    action: PowerAction | None = None


def parse_command(token: str | None) -> ParsedCommand | None:
    """
    Classify message text or callback data.

    "/status@my_bot extra" is read as "/status". A confirm_ token with an
    unknown action and any other unrecognized input yield None.
    """
    if not token or not token.strip():
        return None
    token = token.strip()

    pending = PendingAction.from_token(token)
    if pending is not None:
        return ParsedCommand(Command.CONFIRM, pending.action)

    word = token.split()[0].split("@", 1)[0]
    command = SLASH_COMMANDS.get(word)
    if command is None:
        return None
    return ParsedCommand(command, ACTION_REQUESTS.get(command))


@dataclass(frozen=True)
class InboundEvent:
    chat_id: int
    sender_id: int | None
    token: str
    callback_id: str | None = None


def extract_event(update: Update) -> InboundEvent | None:
    """Reduce a message or callback query update to an InboundEvent."""
    query = update.callback_query
    if query is not None:
        chat_id = query.message.chat.id if query.message is not None else query.from_user.id
        return InboundEvent(
            chat_id=chat_id,
            sender_id=query.from_user.id,
            token=query.data or "",
            callback_id=query.id,
        )

    message = update.message
    if message is not None:
        sender = message.from_user
        return InboundEvent(
            chat_id=message.chat.id,
            sender_id=sender.id if sender is not None else None,
            token=message.text or "",
        )

    return None


class CommandRouter:
    """Dispatches updates from the single authorized operator."""

    def __init__(
        self,
        bot: Any,
        authorized_user_id: int,
        server_location: str,
        collector: MetricsCollector,
        health_checker: HealthChecker,
        executor: ActionExecutor,
        bar_length: int = 15,
    ) -> None:
        self.bot = bot
        self.authorized_user_id = authorized_user_id
        self.server_location = server_location
        self.collector = collector
        self.health_checker = health_checker
        self.executor = executor
        self.bar_length = bar_length

        self.handlers: dict[Command, Callable[[int, ParsedCommand], Awaitable[None]]] = {
            Command.START: self.help_command,
            Command.HELP: self.help_command,
            Command.CANCEL: self.help_command,
            Command.STATUS: self.status_command,
            Command.HEALTH: self.health_command,
            Command.TOP: self.top_command,
            Command.UPTIME: self.uptime_command,
            Command.REBOOT: self.confirmation_command,
            Command.SHUTDOWN: self.confirmation_command,
            Command.SUSPEND: self.confirmation_command,
            Command.CONFIRM: self.confirm_command,
        }

    async def handle_update(self, update: Update) -> None:
        """
        Process one update to completion.

        Raises:
            TelegramError: Sending the reply failed (callback acknowledgment
                failures are logged and never raised)
        """
        event = extract_event(update)
        if event is None:
            logger.debug(f"Ignoring update {update.update_id} without message or callback")
            return

        # Clear the button's loading indicator regardless of outcome
        if event.callback_id is not None:
            await self.answer_callback(event.callback_id)

        if event.sender_id != self.authorized_user_id:
            logger.warning(f"Unauthorized access attempt by user ID: {event.sender_id}")
            await self.reply(event.chat_id, UNAUTHORIZED_MESSAGE)
            return

        parsed = parse_command(event.token)
        if parsed is None:
            logger.debug(f"Ignoring unrecognized input from user {event.sender_id}")
            return

        logger.info(f"Received command '{event.token.strip()}' from user {event.sender_id}")
        await self.handlers[parsed.command](event.chat_id, parsed)

    async def answer_callback(self, callback_id: str) -> None:
        try:
            await self.bot.answer_callback_query(callback_query_id=callback_id)
        except TelegramError as e:
            logger.warning(f"Could not answer callback query: {e}")

    async def reply(
        self, chat_id: int, text: str, reply_markup: InlineKeyboardMarkup | None = None
    ) -> None:
        await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN,
            reply_markup=reply_markup,
        )
        logger.info(f"Message sent to {chat_id}")

    async def help_command(self, chat_id: int, parsed: ParsedCommand) -> None:
        await self.reply(chat_id, get_help_text(self.server_location), main_keyboard())

    async def status_command(self, chat_id: int, parsed: ParsedCommand) -> None:
        metrics = self.collector.collect_all_metrics()
        report = format_status_report(metrics, self.server_location, self.bar_length)
        await self.reply(chat_id, report, main_keyboard())

    async def health_command(self, chat_id: int, parsed: ParsedCommand) -> None:
        report = format_health_report(self.health_checker.check(), self.server_location)
        await self.reply(chat_id, report, main_keyboard())

    async def top_command(self, chat_id: int, parsed: ParsedCommand) -> None:
        report = format_top_processes(self.collector.get_top_processes(limit=5))
        await self.reply(chat_id, report, main_keyboard())

    async def uptime_command(self, chat_id: int, parsed: ParsedCommand) -> None:
        await self.reply(chat_id, format_uptime(self.health_checker.get_uptime()), main_keyboard())

    async def confirmation_command(self, chat_id: int, parsed: ParsedCommand) -> None:
        """Offer a yes/no keyboard; nothing is executed here."""
        pending = PendingAction(parsed.action)
        await self.reply(
            chat_id,
            format_confirmation(pending.action),
            confirmation_keyboard(pending.action, pending.token),
        )

    async def confirm_command(self, chat_id: int, parsed: ParsedCommand) -> None:
        # The update is already consumed; a lost acknowledgment must not drop the action
        try:
            await self.reply(chat_id, format_executing(parsed.action))
        except InvalidToken:
            raise
        except TelegramError as e:
            logger.error(f"Could not acknowledge {parsed.action.value}: {e}")
        await self.executor.execute(parsed.action)
