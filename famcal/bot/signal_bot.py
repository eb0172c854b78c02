"""
Family Calendar Assistant — Signal bot.

Polls the signal-cli REST API and hands every message to the shared
MessageHandler as its own asyncio task, so one slow LLM or calendar call
never blocks other family members. Also runs the daily cleanup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from famcal.adapters.signal_messenger import SignalMessenger
    from famcal.core.message_handler import MessageHandler

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60
_ERROR_BACKOFF_SECONDS = 5


class SignalBot:
    """Receive loop: poll, dispatch, periodically clean up."""

    def __init__(
        self,
        handler: MessageHandler,
        messenger: SignalMessenger,
        poll_interval: float = 1.0,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self._handler = handler
        self._messenger = messenger
        self._poll_interval = poll_interval
        self._cleanup_interval = cleanup_interval
        self._tasks: set[asyncio.Task] = set()
        self._last_cleanup: float | None = None

    def _dispatch(self, message) -> asyncio.Task:
        task = asyncio.create_task(
            self._handler.handle_message(
                message.sender,
                message.message_id,
                message.text,
                timestamp=message.timestamp,
                reply_to=message.reply_to,
            )
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _maybe_cleanup(self) -> None:
        now = asyncio.get_running_loop().time()
        if self._last_cleanup is not None and now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        try:
            self._handler.run_cleanup()
        except Exception:
            logger.exception("Periodic cleanup failed")

    async def poll_once(self) -> int:
        """One receive round. Returns the number of messages dispatched."""
        self._maybe_cleanup()
        try:
            messages = await self._messenger.receive()
        except httpx.HTTPError as exc:
            logger.error("Signal receive failed: %s", exc)
            await asyncio.sleep(_ERROR_BACKOFF_SECONDS)
            return 0

        for message in messages:
            self._dispatch(message)
        return len(messages)

    async def run(self) -> None:
        logger.info("Signal bot polling every %.1fs", self._poll_interval)
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self._poll_interval)
        finally:
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            await self._messenger.aclose()


def main() -> None:
    """Entry point: wire the Signal adapter and start polling."""
    from famcal.adapters.signal_messenger import SignalMessenger
    from famcal.config import settings
    from famcal.core.message_handler import create_handler

    messenger = SignalMessenger()
    handler = create_handler(messenger)
    logger.info("Starting Family Calendar Assistant on Signal (%s)...", settings.SIGNAL_PHONE_NUMBER)
    bot = SignalBot(handler, messenger, poll_interval=settings.SIGNAL_POLL_INTERVAL)
    try:
        asyncio.run(bot.run())
    except KeyboardInterrupt:
        logger.info("Signal bot stopped")
