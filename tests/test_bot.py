from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

from telegram import Chat, Message, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden, NetworkError, RetryAfter, TimedOut

import bot
from conftest import FixedRandom
from mechquest.config import Settings
from mechquest.engine import QuestEngine, RenderedScreen

SETTINGS = Settings(bot_token="t", send_attempts=4, retry_base_delay=1.0, retry_max_delay=3.0)
SCREEN = RenderedScreen(user_id=7, screen_id="start", text="<b>Hi</b>", rows=[["a", "b"], ["c"]])


class FakeBot:
    def __init__(self, *failures: Exception) -> None:
        self.failures = list(failures)
        self.sent = []

    async def send_message(self, chat_id, text, **kwargs):
        self.sent.append((chat_id, text, kwargs))
        if self.failures:
            raise self.failures.pop(0)
        return SimpleNamespace(chat_id=chat_id, text=text)


def run_send(fake, settings=SETTINGS):
    sleeps = []

    async def sleep(seconds):
        sleeps.append(seconds)

    result = asyncio.run(bot.send_screen(fake, SCREEN, settings, sleep=sleep))
    return result, sleeps


def test_keyboard_markup_keeps_rows():
    markup = bot.keyboard_markup([["a", "b"], [], ["c"]])

    assert isinstance(markup, ReplyKeyboardMarkup)
    assert [[button.text for button in row] for row in markup.keyboard] == [["a", "b"], ["c"]]
    assert markup.resize_keyboard is True


def test_keyboard_markup_removes_empty_keyboard():
    assert isinstance(bot.keyboard_markup([[]]), ReplyKeyboardRemove)


def test_send_screen_uses_html():
    fake = FakeBot()

    result, sleeps = run_send(fake)

    assert result.text == "<b>Hi</b>"
    assert sleeps == []
    chat_id, text, kwargs = fake.sent[0]
    assert chat_id == 7
    assert kwargs["parse_mode"] == ParseMode.HTML


def test_network_errors_back_off_exponentially_with_ceiling():
    fake = FakeBot(NetworkError("down"), TimedOut(), NetworkError("down"))

    result, sleeps = run_send(fake)

    assert result is not None
    assert sleeps == [1.0, 2.0, 3.0]


def test_flood_control_waits_as_asked():
    fake = FakeBot(RetryAfter(5))

    result, sleeps = run_send(fake)

    assert result is not None
    assert sleeps == [5.0]


def test_gives_up_after_last_attempt():
    fake = FakeBot(*[NetworkError("down")] * 10)

    result, sleeps = run_send(fake)

    assert result is None
    assert len(fake.sent) == SETTINGS.send_attempts
    assert len(sleeps) == SETTINGS.send_attempts - 1


def test_bad_request_is_not_retried():
    fake = FakeBot(BadRequest("can't parse entities"))

    result, sleeps = run_send(fake)

    assert result is None
    assert len(fake.sent) == 1
    assert sleeps == []


def _update(user_id, text):
    message = SimpleNamespace(text=text, replies=[])

    async def reply_text(reply):
        message.replies.append(reply)

    message.reply_text = reply_text
    return SimpleNamespace(effective_user=SimpleNamespace(id=user_id), effective_message=message)


def _context(engine, fake):
    return SimpleNamespace(bot=fake, bot_data={"engine": engine, "settings": SETTINGS})


def test_handlers_drive_the_engine(graph):
    engine = QuestEngine(graph, rng=FixedRandom(0))
    fake = FakeBot()
    context = _context(engine, fake)

    asyncio.run(bot.cmd_start(_update(7, "/start"), context))
    asyncio.run(bot.on_text(_update(7, "Направо"), context))
    asyncio.run(bot.on_text(_update(7, "/unknown"), context))

    assert [text for _, text, _ in fake.sent] == ["» Привет!", "Plain {hp}"]
    assert engine.sessions.get(7).current_screen == "right"


def test_state_command_reports_session(graph):
    engine = QuestEngine(graph, rng=FixedRandom(0))
    context = _context(engine, FakeBot())

    missing = _update(8, "/state")
    asyncio.run(bot.cmd_state(missing, context))
    engine.start(8)
    present = _update(8, "/state")
    asyncio.run(bot.cmd_state(present, context))

    assert "/start" in missing.effective_message.replies[0]
    assert '"screen": "start"' in present.effective_message.replies[0]


def test_error_handler_survives_blocked_chat():
    message = Message(
        message_id=1,
        date=datetime.now(timezone.utc),
        chat=Chat(id=5, type=Chat.PRIVATE),
        text="hello",
    )
    update = Update(update_id=1, message=message)
    fake = FakeBot(Forbidden("bot was blocked by the user"))
    context = SimpleNamespace(bot=fake, error=RuntimeError("render failed"))

    asyncio.run(bot.error_handler(update, context))

    assert len(fake.sent) == 1
    assert fake.sent[0][0] == 5
