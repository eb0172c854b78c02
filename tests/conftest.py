"""Shared test fixtures and configuration.

Sets up fake environment variables so famcal.config doesn't sys.exit(),
and provides common fixtures like temp-file SQLite stores and a fake
calendar.
"""

import os

# Patch env vars BEFORE any famcal imports
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "anthropic")
os.environ.setdefault("MESSENGER_PROVIDER", "signal")
os.environ.setdefault("SIGNAL_PHONE_NUMBER", "+4915100000000")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:fake-token-for-tests")
os.environ.setdefault("TIMEZONE", "Europe/Berlin")
os.environ.setdefault("DATABASE_PATH", "data/test-famcal.db")

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

TZ = "Europe/Berlin"


class FakeClock:
    """Controllable UTC clock for TTL and retention tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_famcal.db")


@pytest.fixture
def conversation_db(tmp_db_path, clock):
    """Return a ConversationDB instance backed by a temp file."""
    from famcal.data.db import ConversationDB
    return ConversationDB(db_path=tmp_db_path, ttl_minutes=30, max_history=5, clock=clock)


@pytest.fixture
def idempotency_db(tmp_db_path, clock):
    """Return an IdempotencyDB instance backed by a temp file."""
    from famcal.data.db import IdempotencyDB
    return IdempotencyDB(db_path=tmp_db_path, retention_days=7, clock=clock)


@pytest.fixture
def calendar():
    """A CalendarPort double: every method is an AsyncMock."""
    cal = MagicMock()
    cal.timezone = TZ
    cal.list_events = AsyncMock(return_value=[])
    cal.find_events = AsyncMock()
    cal.create_event = AsyncMock()
    cal.create_all_day_event = AsyncMock()
    cal.create_recurring_event = AsyncMock()
    cal.update_event = AsyncMock()
    cal.delete_event = AsyncMock(return_value=None)
    cal.trim_series = AsyncMock(return_value=None)
    cal.find_conflicts = AsyncMock(return_value=[])
    return cal


def _make_event(
    summary="Termin",
    start="2026-10-20T10:00:00+02:00",
    end="2026-10-20T11:00:00+02:00",
    event_id="ev1",
    all_day=False,
    recurring_event_id=None,
):
    from famcal.ports.calendar_port import CalendarEvent
    return CalendarEvent(
        id=event_id,
        summary=summary,
        start=start,
        end=end,
        is_all_day=all_day,
        recurring_event_id=recurring_event_id,
    )


@pytest.fixture
def make_event():
    """Factory for CalendarEvent snapshots."""
    return _make_event
