from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, NamedTuple

import pytest
from telegram import CallbackQuery, Chat, Message, Update, User

from command_router import CommandRouter
from health_check import DiskHealth, HealthReport

OPERATOR_ID = 4242
STRANGER_ID = 1313


class SentMessage(NamedTuple):
    chat_id: int
    text: str
    reply_markup: Any


class FakeBot:
    """Stands in for telegram.Bot; records replies and serves scripted batches."""

    def __init__(self, batches: list | None = None) -> None:
        self.sent: list[SentMessage] = []
        self.answered: list[str] = []
        self.batches: list = list(batches or [])
        self.offsets: list[int] = []
        self.on_exhausted: Callable[[], None] | None = None
        self.answer_error: Exception | None = None
        self.send_error: Exception | None = None
        self.initialize_errors: list[Exception] = []
        self.initialized = False
        self.shut_down = False

    async def send_message(self, chat_id, text, parse_mode=None, reply_markup=None, **kwargs):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(SentMessage(chat_id, text, reply_markup))

    async def answer_callback_query(self, callback_query_id, **kwargs):
        if self.answer_error is not None:
            raise self.answer_error
        self.answered.append(callback_query_id)

    async def get_updates(self, offset=None, timeout=None, **kwargs):
        self.offsets.append(offset)
        if not self.batches:
            if self.on_exhausted is not None:
                self.on_exhausted()
            return ()
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return tuple(batch)

    async def initialize(self):
        if self.initialize_errors:
            raise self.initialize_errors.pop(0)
        self.initialized = True

    async def shutdown(self):
        self.shut_down = True


class FakeCollector:
    def __init__(self) -> None:
        self.calls = 0

    def collect_all_metrics(self) -> dict[str, Any]:
        self.calls += 1
        return {
            "timestamp": "2025-01-01 12:00:00",
            "cpu_percent": 12.5,
            "memory_percent": 40.0,
            "disk_percent": 70.0,
            "cpu_temp": 48.0,
            "network": {"sent_mb": 1.5, "recv_mb": 20.25},
        }

    def get_top_processes(self, limit: int = 5) -> list[dict[str, Any]]:
        self.calls += 1
        return [{"pid": 1, "rss_mb": 12.0, "name": "systemd"}]


class FakeHealthChecker:
    def __init__(self) -> None:
        self.calls = 0

    def check(self) -> HealthReport:
        self.calls += 1
        return HealthReport(
            timestamp="2025-01-01 12:00:00",
            filesystem_usage="Filesystem Size Used Avail Use% Mounted on\n/dev/sda1 100G 40G 60G 40% /",
            disks=[DiskHealth("/dev/sda", True, "SMART overall-health self-assessment test result: PASSED")],
        )

    def get_uptime(self) -> str:
        self.calls += 1
        return "up 3 hours, 5 minutes"


class FakeExecutor:
    def __init__(self) -> None:
        self.executed: list = []

    async def execute(self, action) -> None:
        self.executed.append(action)


def make_user(user_id: int) -> User:
    return User(id=user_id, first_name="Operator", is_bot=False)


def make_message(text: str | None, sender_id: int | None = OPERATOR_ID, chat_id: int | None = None) -> Message:
    chat = Chat(id=chat_id if chat_id is not None else (sender_id or 1), type="private")
    return Message(
        message_id=1,
        date=datetime.now(timezone.utc),
        chat=chat,
        from_user=make_user(sender_id) if sender_id is not None else None,
        text=text,
    )


def message_update(update_id: int, text: str | None, sender_id: int | None = OPERATOR_ID) -> Update:
    return Update(update_id=update_id, message=make_message(text, sender_id))


def callback_update(update_id: int, data: str, sender_id: int = OPERATOR_ID) -> Update:
    query = CallbackQuery(
        id=f"cb-{update_id}",
        from_user=make_user(sender_id),
        chat_instance="instance",
        data=data,
        message=make_message("menu", sender_id, chat_id=sender_id),
    )
    return Update(update_id=update_id, callback_query=query)


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
def health_checker() -> FakeHealthChecker:
    return FakeHealthChecker()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def router(fake_bot, collector, health_checker, executor) -> CommandRouter:
    return CommandRouter(
        bot=fake_bot,
        authorized_user_id=OPERATOR_ID,
        server_location="Home_Server",
        collector=collector,
        health_checker=health_checker,
        executor=executor,
        bar_length=10,
    )
