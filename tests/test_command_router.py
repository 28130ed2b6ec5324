"""Tests for command parsing and the authorization / confirmation flow."""

import pytest
from telegram.error import InvalidToken, NetworkError

from command_router import (
    Command,
    PendingAction,
    ParsedCommand,
    extract_event,
    parse_command,
)
from conftest import OPERATOR_ID, STRANGER_ID, callback_update, message_update
from message_formatter import UNAUTHORIZED_MESSAGE
from power_actions import PowerAction


def callback_data(markup) -> list[list[str]]:
    return [[button.callback_data for button in row] for row in markup.inline_keyboard]


@pytest.mark.parametrize(
    "token, expected",
    [
        ("/start", ParsedCommand(Command.START)),
        ("/help", ParsedCommand(Command.HELP)),
        ("/status", ParsedCommand(Command.STATUS)),
        ("/health", ParsedCommand(Command.HEALTH)),
        ("/top", ParsedCommand(Command.TOP)),
        ("/uptime", ParsedCommand(Command.UPTIME)),
        ("/reboot", ParsedCommand(Command.REBOOT, PowerAction.REBOOT)),
        ("/shutdown", ParsedCommand(Command.SHUTDOWN, PowerAction.SHUTDOWN)),
        ("/suspend", ParsedCommand(Command.SUSPEND, PowerAction.SUSPEND)),
        ("confirm_shutdown", ParsedCommand(Command.CONFIRM, PowerAction.SHUTDOWN)),
        ("cancel", ParsedCommand(Command.CANCEL)),
        ("/status@my_remote_bot", ParsedCommand(Command.STATUS)),
        ("  /uptime please ", ParsedCommand(Command.UPTIME)),
    ],
)
def test_parse_command_recognizes_vocabulary(token, expected):
    assert parse_command(token) == expected


@pytest.mark.parametrize(
    "token",
    [None, "", "   ", "hello", "/restart", "status", "confirm_format", "confirm_", "/STATUS"],
)
def test_parse_command_ignores_unknown_input(token):
    assert parse_command(token) is None


def test_pending_action_token_roundtrip():
    pending = PendingAction(PowerAction.SUSPEND)

    assert pending.token == "confirm_suspend"
    assert PendingAction.from_token(pending.token) == pending
    assert PendingAction.from_token("/suspend") is None


def test_extract_event_from_message_and_callback():
    message_event = extract_event(message_update(1, "/help"))
    callback_event = extract_event(callback_update(2, "/status"))

    assert message_event.sender_id == OPERATOR_ID
    assert message_event.token == "/help"
    assert message_event.callback_id is None

    assert callback_event.chat_id == OPERATOR_ID
    assert callback_event.token == "/status"
    assert callback_event.callback_id == "cb-2"


@pytest.mark.asyncio
async def test_help_replies_with_command_list_and_main_keyboard(router, fake_bot):
    await router.handle_update(message_update(1, "/help"))

    assert len(fake_bot.sent) == 1
    reply = fake_bot.sent[0]
    assert reply.chat_id == OPERATOR_ID
    for command in ("/status", "/health", "/reboot", "/shutdown", "/suspend", "/top", "/uptime", "/help"):
        assert command in reply.text
    buttons = [button for row in reply.reply_markup.inline_keyboard for button in row]
    assert len(buttons) == 6


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["/help", "/status", "/shutdown", "confirm_reboot", "hello"])
async def test_unauthorized_sender_only_gets_denial(router, fake_bot, collector, health_checker, executor, text):
    await router.handle_update(message_update(1, text, sender_id=STRANGER_ID))

    assert [m.text for m in fake_bot.sent] == [UNAUTHORIZED_MESSAGE]
    assert fake_bot.sent[0].chat_id == STRANGER_ID
    assert collector.calls == 0
    assert health_checker.calls == 0
    assert executor.executed == []


@pytest.mark.asyncio
async def test_message_without_sender_is_denied(router, fake_bot, executor):
    await router.handle_update(message_update(1, "confirm_reboot", sender_id=None))

    assert [m.text for m in fake_bot.sent] == [UNAUTHORIZED_MESSAGE]
    assert executor.executed == []


@pytest.mark.asyncio
async def test_unauthorized_callback_is_still_acknowledged(router, fake_bot, executor):
    await router.handle_update(callback_update(5, "confirm_shutdown", sender_id=STRANGER_ID))

    assert fake_bot.answered == ["cb-5"]
    assert [m.text for m in fake_bot.sent] == [UNAUTHORIZED_MESSAGE]
    assert executor.executed == []


@pytest.mark.asyncio
@pytest.mark.parametrize("action", list(PowerAction))
async def test_power_request_only_asks_for_confirmation(router, fake_bot, executor, action):
    await router.handle_update(message_update(1, f"/{action.value}"))

    assert executor.executed == []
    reply = fake_bot.sent[0]
    assert action.value in reply.text
    assert callback_data(reply.reply_markup) == [[f"confirm_{action.value}", "/help"]]


@pytest.mark.asyncio
async def test_shutdown_confirm_flow_executes_once(router, fake_bot, executor):
    await router.handle_update(message_update(1, "/shutdown"))
    confirm_token = fake_bot.sent[0].reply_markup.inline_keyboard[0][0].callback_data

    await router.handle_update(callback_update(2, confirm_token))

    assert executor.executed == [PowerAction.SHUTDOWN]
    assert fake_bot.answered == ["cb-2"]
    assert "Executing *shutdown*" in fake_bot.sent[-1].text


@pytest.mark.asyncio
async def test_cancel_button_returns_to_help_without_executing(router, fake_bot, executor):
    await router.handle_update(message_update(1, "/reboot"))
    cancel_token = fake_bot.sent[0].reply_markup.inline_keyboard[0][1].callback_data

    await router.handle_update(callback_update(2, cancel_token))

    assert executor.executed == []
    assert "available commands" in fake_bot.sent[-1].text


@pytest.mark.asyncio
async def test_unknown_confirm_suffix_is_dropped(router, fake_bot, executor):
    await router.handle_update(callback_update(3, "confirm_format"))

    assert fake_bot.answered == ["cb-3"]
    assert fake_bot.sent == []
    assert executor.executed == []


@pytest.mark.asyncio
async def test_unrecognized_command_gets_no_reply(router, fake_bot):
    await router.handle_update(message_update(1, "what is going on"))

    assert fake_bot.sent == []


@pytest.mark.asyncio
async def test_report_commands_use_collectors(router, fake_bot, collector, health_checker):
    await router.handle_update(message_update(1, "/status"))
    await router.handle_update(message_update(2, "/health"))
    await router.handle_update(message_update(3, "/top"))
    await router.handle_update(message_update(4, "/uptime"))

    status, health, top, uptime = (m.text for m in fake_bot.sent)
    assert "*📊 Server Status:* Home\\_Server" in status
    assert "PASSED" in health
    assert "systemd" in top
    assert "up 3 hours, 5 minutes" in uptime
    assert collector.calls == 2
    assert health_checker.calls == 2


@pytest.mark.asyncio
async def test_failed_callback_ack_does_not_block_reply(router, fake_bot):
    fake_bot.answer_error = NetworkError("connection reset")

    await router.handle_update(callback_update(7, "/uptime"))

    assert len(fake_bot.sent) == 1


@pytest.mark.asyncio
async def test_report_send_failure_propagates(router, fake_bot):
    fake_bot.send_error = NetworkError("connection reset")

    with pytest.raises(NetworkError):
        await router.handle_update(message_update(8, "/status"))


@pytest.mark.asyncio
async def test_confirmed_action_runs_when_acknowledgment_fails(router, fake_bot, executor, caplog):
    fake_bot.send_error = NetworkError("connection reset")

    await router.handle_update(callback_update(8, "confirm_reboot"))

    assert executor.executed == [PowerAction.REBOOT]
    assert "Could not acknowledge reboot" in caplog.text


@pytest.mark.asyncio
async def test_rejected_token_while_acknowledging_skips_executor(router, fake_bot, executor):
    fake_bot.send_error = InvalidToken("rejected")

    with pytest.raises(InvalidToken):
        await router.handle_update(callback_update(8, "confirm_reboot"))

    assert executor.executed == []
