"""
Family Calendar Assistant — Telegram Bot.

Alternative transport to Signal. Every update is forwarded to the shared
MessageHandler; access control, commands, state and replies all live in
the core, so this module only maps Telegram concepts onto it:

    sender      "tg:<telegram user id>"  (listed in the whitelist's aliases)
    message id  "<chat id>:<message id>"
    reply to    the chat the message came from
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from famcal.config import settings

if TYPE_CHECKING:
    from famcal.core.message_handler import MessageHandler as CoreMessageHandler

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60

# Telegram slash commands mapped onto the core's command keywords.
_SLASH_COMMANDS = {"start": "hilfe", "help": "hilfe", "cancel": "abbrechen"}


def sender_id(update: Update) -> str:
    return f"tg:{update.effective_user.id}"


def message_id(update: Update) -> str:
    return f"{update.effective_chat.id}:{update.effective_message.message_id}"


async def _forward(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str | None) -> None:
    if update.effective_user is None or update.effective_message is None:
        return
    handler: CoreMessageHandler = context.bot_data["handler"]
    await handler.handle_message(
        sender_id(update),
        message_id(update),
        text,
        timestamp=update.effective_message.date,
        reply_to=str(update.effective_chat.id),
    )


# ---------------------------------------------------------------------------
# Update handlers
# ---------------------------------------------------------------------------


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Plain text messages go straight to the core pipeline."""
    await _forward(update, context, update.effective_message.text)


async def handle_non_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Photos, voice notes, stickers… are answered with the text-only notice."""
    await _forward(update, context, None)


async def handle_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    command = update.effective_message.text.split()[0].lstrip("/").split("@")[0].lower()
    await _forward(update, context, _SLASH_COMMANDS.get(command, "hilfe"))


async def _cleanup_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    handler: CoreMessageHandler = context.bot_data["handler"]
    try:
        handler.run_cleanup()
    except Exception:
        logger.exception("Periodic cleanup failed")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(handler: CoreMessageHandler | None = None) -> Application:
    """Build and configure the Telegram Application.

    Args:
        handler: Core message handler. Defaults to the production wiring
                 around a TelegramNotifier for this bot.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).concurrent_updates(True).build()

    if handler is None:
        from famcal.adapters.telegram_notifier import TelegramNotifier
        from famcal.core.message_handler import create_handler
        handler = create_handler(TelegramNotifier(app.bot))

    app.bot_data["handler"] = handler

    app.add_handler(CommandHandler(list(_SLASH_COMMANDS), handle_command))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    app.add_handler(MessageHandler(~filters.TEXT & ~filters.StatusUpdate.ALL, handle_non_text))

    app.job_queue.run_repeating(
        _cleanup_job,
        interval=CLEANUP_INTERVAL_SECONDS,
        first=0,
        name="daily_cleanup",
    )

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logger.info("Starting Family Calendar Assistant on Telegram...")
    app = build_app()
    app.run_polling()
