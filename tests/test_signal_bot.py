"""Tests for famcal.bot.signal_bot — poll loop dispatch and cleanup."""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from famcal.adapters.signal_messenger import SignalMessage
from famcal.bot.signal_bot import SignalBot


def _message(message_id="1", text="Hallo", group_id=None):
    return SignalMessage(
        message_id=message_id,
        sender="+4915112345678",
        text=text,
        timestamp=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        group_id=group_id,
    )


def _bot(messages=None, receive_error=None):
    handler = MagicMock()
    handler.handle_message = AsyncMock(return_value="ok")
    messenger = MagicMock()
    messenger.receive = AsyncMock(return_value=messages or [], side_effect=receive_error)
    messenger.aclose = AsyncMock()
    return SignalBot(handler, messenger, poll_interval=0), handler, messenger


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_each_message_gets_its_own_task(self):
        bot, handler, _ = _bot([_message("1"), _message("2", group_id="abc==")])

        dispatched = await bot.poll_once()
        await asyncio.gather(*list(bot._tasks))

        assert dispatched == 2
        assert handler.handle_message.await_count == 2
        first, second = handler.handle_message.call_args_list
        assert first.args == ("+4915112345678", "1", "Hallo")
        assert first.kwargs["reply_to"] == "+4915112345678"
        assert second.kwargs["reply_to"].startswith("group.")

    @pytest.mark.asyncio
    async def test_receive_failure_backs_off(self):
        bot, handler, _ = _bot(receive_error=httpx.ConnectError("down"))

        with patch("famcal.bot.signal_bot.asyncio.sleep", AsyncMock()) as sleep:
            dispatched = await bot.poll_once()

        assert dispatched == 0
        sleep.assert_awaited_once_with(5)
        handler.handle_message.assert_not_called()


class TestCleanup:
    @pytest.mark.asyncio
    async def test_runs_on_first_poll_then_daily(self):
        bot, handler, _ = _bot()

        await bot.poll_once()
        await bot.poll_once()

        handler.run_cleanup.assert_called_once()

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_stop_polling(self):
        bot, handler, messenger = _bot([_message()])
        handler.run_cleanup.side_effect = RuntimeError("disk full")

        dispatched = await bot.poll_once()
        await asyncio.gather(*list(bot._tasks))

        assert dispatched == 1
        messenger.receive.assert_awaited_once()
