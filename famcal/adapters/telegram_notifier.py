"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance. Recipients are chat ids as strings (the
core is transport-agnostic and only passes strings around).
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, recipient: str, text: str) -> bool:
        try:
            await self._bot.send_message(chat_id=int(recipient), text=text)
        except (TelegramError, ValueError) as exc:
            logger.error("Failed to send Telegram message to %s: %s", recipient, exc)
            return False
        return True
