"""
Family Calendar Assistant — Per-message pipeline.

Transport-agnostic: the Signal and Telegram adapters both call
``MessageHandler.handle_message`` once per delivered message. Order of work:

    whitelist → idempotency check → mark processed → command → state load
    → history (user) → reply classifier | intent extraction → engine
    → send → history (assistant) → sub-state persistence

A single bad message never propagates out of ``handle_message``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from famcal.bot.rejections import RejectionLimiter
from famcal.core import replies
from famcal.core.action_service import EngineReply, ResponseKind
from famcal.core.parser import IntentExtractionError, extract_intent

if TYPE_CHECKING:
    from famcal.core.action_service import ActionService
    from famcal.core.parser import CalendarIntent
    from famcal.data.db import ConversationDB, IdempotencyDB
    from famcal.data.family import FamilyWhitelist
    from famcal.data.models import HistoryEntry
    from famcal.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

Extractor = Callable[..., Awaitable["CalendarIntent"]]


class MessageHandler:
    """Glue between a messenger adapter and the resolution engine."""

    def __init__(
        self,
        engine: ActionService,
        notifier: NotificationPort,
        conversations: ConversationDB,
        idempotency: IdempotencyDB,
        whitelist: FamilyWhitelist,
        rejections: RejectionLimiter | None = None,
        extractor: Extractor = extract_intent,
        timezone: str | None = None,
    ) -> None:
        if timezone is None:
            from famcal.config import settings
            timezone = settings.TIMEZONE

        self._engine = engine
        self._notifier = notifier
        self._conversations = conversations
        self._idempotency = idempotency
        self._whitelist = whitelist
        self._rejections = rejections or RejectionLimiter()
        self._extract = extractor
        self._tz = timezone

    async def _send(self, recipient: str, text: str) -> bool:
        sent = await self._notifier.send_message(recipient, text)
        if not sent:
            logger.warning("Reply to %s could not be delivered", recipient)
        return sent

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_message(
        self,
        sender: str,
        message_id: str,
        text: str | None,
        timestamp: datetime | None = None,
        reply_to: str | None = None,
    ) -> str | None:
        """Process one inbound message; returns the reply sent, or None if ignored.

        *text* is None (or empty) for non-text messages such as stickers,
        voice notes or attachments.
        """
        reply_to = reply_to or sender
        try:
            return await self._process(sender, message_id, text, reply_to)
        except Exception:
            logger.exception("Error processing message %s from %s", message_id, sender)
            try:
                await self._send(reply_to, replies.GENERIC_ERROR)
            except Exception:
                logger.exception("Failed to send error reply to %s", sender)
            return replies.GENERIC_ERROR

    async def _process(
        self, sender: str, message_id: str, text: str | None, reply_to: str,
    ) -> str | None:
        if not self._whitelist.is_allowed(sender):
            logger.warning("Message from unknown sender %s rejected", sender)
            if self._rejections.should_notify(sender):
                await self._send(reply_to, replies.UNKNOWN_SENDER)
            return None

        if not text or not text.strip():
            logger.debug("Non-text message %s from %s rejected", message_id, sender)
            await self._send(reply_to, replies.TEXT_ONLY)
            return replies.TEXT_ONLY

        if self._idempotency.is_processed(message_id):
            logger.debug("Duplicate message %s from %s, skipping", message_id, sender)
            return None
        if not self._idempotency.mark_processed(message_id):
            logger.debug("Message %s claimed concurrently, skipping", message_id)
            return None

        logger.info("Processing message %s from %s", message_id, sender)

        command = replies.detect_command(text)
        if command:
            self._conversations.clear_state(sender)
            reply = replies.HELP_TEXT if command == "help" else replies.CANCELLED
            await self._send(reply_to, reply)
            logger.info("Command '%s' from %s, state reset", command, sender)
            return reply

        state = self._conversations.get_state(sender)
        history: list[HistoryEntry] = list(state.history) if state else []
        self._conversations.add_to_history(sender, "user", text)

        if state is not None and state.pending is not None:
            logger.info("Resolving %s for %s", state.awaiting, sender)
            result = await self._engine.resolve_pending(state.pending, text)
        else:
            result = await self._run_intent(sender, text, history)

        await self._send(reply_to, result.message)
        self._conversations.add_to_history(sender, "assistant", result.message)

        if result.resolved:
            self._conversations.clear_state(sender)
        elif result.pending is not None:
            self._conversations.set_pending(sender, result.pending)

        logger.info("Message %s from %s answered (%s)", message_id, sender, result.kind.value)
        return result.message

    async def _run_intent(
        self, sender: str, text: str, history: list[HistoryEntry],
    ) -> EngineReply:
        try:
            intent = await self._extract(text, history, tz=self._tz)
        except IntentExtractionError as exc:
            logger.error("Intent extraction failed for %s: %s", sender, exc)
            return EngineReply(ResponseKind.ERROR, replies.EXTRACTION_FAILED)

        return await self._engine.handle_intent(intent, self._whitelist.display_name(sender))

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def run_cleanup(self) -> None:
        """Purge old processed-message ids and expired conversations."""
        removed = self._idempotency.cleanup()
        expired = self._conversations.cleanup_expired()
        logger.info("Cleanup: %d processed id(s), %d conversation(s) removed", removed, expired)


def create_handler(notifier: NotificationPort) -> MessageHandler:
    """Wire the production handler from settings around *notifier*."""
    from famcal.adapters.google_calendar import GoogleCalendarAdapter
    from famcal.core.action_service import ActionService
    from famcal.data.db import ConversationDB, IdempotencyDB
    from famcal.data.family import FamilyWhitelist, load_family_config

    whitelist = FamilyWhitelist(load_family_config())
    calendar = GoogleCalendarAdapter()
    handler = MessageHandler(
        engine=ActionService(calendar),
        notifier=notifier,
        conversations=ConversationDB(),
        idempotency=IdempotencyDB(),
        whitelist=whitelist,
        timezone=calendar.timezone,
    )
    logger.info(
        "Message handler ready: %d family member(s), calendar %s (%s)",
        whitelist.member_count, calendar.calendar_id, calendar.timezone,
    )
    return handler
