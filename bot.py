#!/usr/bin/env python3
# mechquest: Telegram front end for YAML screen-graph quests.
from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from typing import Awaitable, Callable, List, Optional, Union

from telegram import Message, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest, NetworkError, RetryAfter, TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from mechquest.config import Settings, load_settings
from mechquest.document import load_document
from mechquest.engine import QuestEngine, RenderedScreen
from mechquest.errors import ConfigError

# ----------------------------
# Logging
# ----------------------------
logging.basicConfig(
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    level=logging.INFO,
)
log = logging.getLogger("mechquest.bot")

Sleep = Callable[[float], Awaitable[None]]


# ----------------------------
# Outbound
# ----------------------------
def keyboard_markup(rows: List[List[str]]) -> Union[ReplyKeyboardMarkup, ReplyKeyboardRemove]:
    rows = [row for row in rows if row]
    if not rows:
        return ReplyKeyboardRemove()
    return ReplyKeyboardMarkup(rows, resize_keyboard=True)


def _seconds(retry_after: Union[int, float, timedelta]) -> float:
    if isinstance(retry_after, timedelta):
        return retry_after.total_seconds()
    return float(retry_after)


async def send_screen(bot, rendered: RenderedScreen, settings: Settings, sleep: Sleep = asyncio.sleep) -> Optional[Message]:
    """Send a rendered screen, retrying transient Bot API failures.

    Network errors back off exponentially up to ``retry_max_delay``; flood
    control waits as long as Telegram asks. Gives up quietly after
    ``send_attempts`` tries.
    """
    markup = keyboard_markup(rendered.rows)
    for attempt in range(settings.send_attempts):
        try:
            return await bot.send_message(
                rendered.user_id,
                rendered.text,
                parse_mode=ParseMode.HTML,
                reply_markup=markup,
            )
        except BadRequest as e:
            log.error("Telegram rejected screen %s for user=%s: %s", rendered.screen_id, rendered.user_id, e)
            return None
        except RetryAfter as e:
            wait = _seconds(e.retry_after)
            error: Exception = e
        except NetworkError as e:
            wait = min(settings.retry_base_delay * 2 ** attempt, settings.retry_max_delay)
            error = e
        if attempt + 1 >= settings.send_attempts:
            break
        log.warning("Send to user=%s failed (%s); retry %d in %.1fs", rendered.user_id, error, attempt + 1, wait)
        await sleep(wait)
    log.error("Giving up on screen %s for user=%s after %d attempts", rendered.screen_id, rendered.user_id, settings.send_attempts)
    return None


# ----------------------------
# Handlers
# ----------------------------
def _engine(context: ContextTypes.DEFAULT_TYPE) -> QuestEngine:
    return context.bot_data["engine"]


def _settings(context: ContextTypes.DEFAULT_TYPE) -> Settings:
    return context.bot_data["settings"]


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    if user is None:
        return
    rendered = _engine(context).start(user.id)
    await send_screen(context.bot, rendered, _settings(context))


async def on_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    message = update.effective_message
    if user is None or message is None or message.text is None:
        return
    rendered = _engine(context).handle_text(user.id, message.text)
    if rendered is not None:
        await send_screen(context.bot, rendered, _settings(context))


async def cmd_state(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    message = update.effective_message
    if user is None or message is None:
        return
    session = _engine(context).sessions.get(user.id)
    if session is None:
        await message.reply_text("No active session. /start to begin.")
        return
    await message.reply_text(json.dumps(session.snapshot(), ensure_ascii=False, indent=2))


# ----------------------------
# Error handler
# ----------------------------
async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    log.error("Unhandled exception while handling an update", exc_info=context.error)
    if not isinstance(update, Update) or update.effective_chat is None:
        return
    try:
        await context.bot.send_message(update.effective_chat.id, "An error occurred. The quest stutters; please try again or /start over.")
    except TelegramError as e:
        log.warning("Could not report the error to chat=%s: %s", update.effective_chat.id, e)


# ----------------------------
# Bootstrap
# ----------------------------
def build_application(settings: Settings, engine: QuestEngine) -> Application:
    builder = ApplicationBuilder().token(settings.bot_token)
    if settings.proxy_url:
        builder = builder.proxy(settings.proxy_url).get_updates_proxy(settings.proxy_url)
    application = builder.build()
    application.bot_data["engine"] = engine
    application.bot_data["settings"] = settings

    application.add_handler(CommandHandler("start", cmd_start))
    application.add_handler(CommandHandler("state", cmd_state))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, on_text))
    application.add_error_handler(error_handler)
    return application


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        raise SystemExit(str(e)) from e
    logging.getLogger().setLevel(settings.log_level)

    try:
        document = load_document(settings.quest_file)
    except ConfigError as e:
        raise SystemExit(str(e)) from e
    engine = QuestEngine(document, rerender_unmatched=settings.rerender_unmatched)
    application = build_application(settings, engine)

    log.info("Starting mechquest from %s, polling...", settings.quest_file)
    try:
        application.run_polling(allowed_updates=Update.ALL_TYPES, bootstrap_retries=-1)
    finally:
        engine.close()
        log.info("Stopped; released %d sessions", len(engine.sessions))


if __name__ == "__main__":
    main()
