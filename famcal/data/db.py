"""
Family Calendar Assistant — SQLite stores.

Two small tables in one SQLite file:
  * ``conversations`` — per-sender state with a sliding inactivity TTL.
  * ``processed_messages`` — ledger of handled message ids (at-most-once).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from famcal.data.models import (
    ConversationState,
    HistoryEntry,
    Pending,
    pending_from_dict,
    pending_to_dict,
)

logger = logging.getLogger(__name__)

# Fixed-width UTC timestamps so SQL string comparison orders correctly.
_TS_FORMAT = "%Y-%m-%d %H:%M:%S"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _stamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _unstamp(value: str) -> datetime:
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class _SQLiteStore:
    def __init__(self, db_path: str, clock: Clock | None = None) -> None:
        self._db_path = db_path
        self._clock = clock or _utc_now
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class ConversationDB(_SQLiteStore):
    """SQLite-backed conversation state with a sliding TTL."""

    def __init__(
        self,
        db_path: str | None = None,
        ttl_minutes: int | None = None,
        max_history: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        if db_path is None or ttl_minutes is None or max_history is None:
            from famcal.config import settings
            db_path = db_path or settings.DATABASE_PATH
            ttl_minutes = ttl_minutes if ttl_minutes is not None else settings.SESSION_TTL_MINUTES
            max_history = max_history if max_history is not None else settings.MAX_HISTORY_MESSAGES

        self._ttl = timedelta(minutes=ttl_minutes)
        self._max_history = max_history
        super().__init__(db_path, clock)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    sender          TEXT PRIMARY KEY,
                    pending         TEXT,
                    history         TEXT NOT NULL DEFAULT '[]',
                    last_message_at TEXT NOT NULL
                )
            """)
        logger.debug("Conversations table initialized at %s", self._db_path)

    def _is_expired(self, last_message_at: str) -> bool:
        return self._clock() - _unstamp(last_message_at) > self._ttl

    def get_state(self, sender: str) -> ConversationState | None:
        """Return the sender's state, or None if absent or expired."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE sender = ?", (sender,)
            ).fetchone()
        if row is None:
            return None
        if self._is_expired(row["last_message_at"]):
            logger.debug("Conversation for %s expired", sender)
            return None

        try:
            history = [HistoryEntry(**entry) for entry in json.loads(row["history"])]
        except (TypeError, ValueError) as exc:
            logger.warning("Malformed history for %s: %s", sender, exc)
            history = []
        try:
            pending_data = json.loads(row["pending"]) if row["pending"] else None
        except ValueError as exc:
            logger.warning("Malformed pending payload for %s: %s", sender, exc)
            pending_data = None

        return ConversationState(
            sender=sender,
            pending=pending_from_dict(pending_data),
            history=history,
            last_message_at=row["last_message_at"],
        )

    def save_state(self, state: ConversationState) -> None:
        """Upsert the state; refreshes the TTL and enforces the history bound."""
        state.history = state.history[-self._max_history:] if self._max_history > 0 else []
        state.last_message_at = _stamp(self._clock())
        pending_json = json.dumps(pending_to_dict(state.pending)) if state.pending else None
        history_json = json.dumps([asdict(entry) for entry in state.history], ensure_ascii=False)

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO conversations (sender, pending, history, last_message_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(sender) DO UPDATE SET
                    pending = excluded.pending,
                    history = excluded.history,
                    last_message_at = excluded.last_message_at
                """,
                (state.sender, pending_json, history_json, state.last_message_at),
            )

    def clear_state(self, sender: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM conversations WHERE sender = ?", (sender,))
        logger.debug("Conversation for %s cleared", sender)

    def add_to_history(self, sender: str, role: str, content: str) -> None:
        state = self.get_state(sender) or ConversationState(sender=sender)
        state.history.append(HistoryEntry(role=role, content=content))
        self.save_state(state)

    def set_pending(self, sender: str, pending: Pending | None) -> None:
        """Store (or drop) the sub-state while keeping the history."""
        state = self.get_state(sender) or ConversationState(sender=sender)
        state.pending = pending
        self.save_state(state)
        logger.info("Conversation for %s now %s", sender, state.awaiting or "idle")

    def cleanup_expired(self) -> int:
        """Physically delete expired conversations. Returns the number removed."""
        cutoff = _stamp(self._clock() - self._ttl)
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM conversations WHERE last_message_at < ?", (cutoff,)
            )
            removed = cursor.rowcount
        if removed:
            logger.info("Purged %d expired conversation(s)", removed)
        return removed


# ---------------------------------------------------------------------------
# Processed-message ledger
# ---------------------------------------------------------------------------


class IdempotencyDB(_SQLiteStore):
    """Ledger of processed message ids with time-based retention."""

    def __init__(
        self,
        db_path: str | None = None,
        retention_days: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        if db_path is None or retention_days is None:
            from famcal.config import settings
            db_path = db_path or settings.DATABASE_PATH
            if retention_days is None:
                retention_days = settings.PROCESSED_MESSAGE_RETENTION_DAYS

        self._retention = timedelta(days=retention_days)
        super().__init__(db_path, clock)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS processed_messages (
                    message_id   TEXT PRIMARY KEY,
                    processed_at TEXT NOT NULL
                )
            """)
        logger.debug("Processed-messages table initialized at %s", self._db_path)

    def is_processed(self, message_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM processed_messages WHERE message_id = ?", (message_id,)
            ).fetchone()
        return row is not None

    def mark_processed(self, message_id: str) -> bool:
        """Record *message_id*. True iff this call inserted it."""
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO processed_messages (message_id, processed_at) VALUES (?, ?)",
                (message_id, _stamp(self._clock())),
            )
            inserted = cursor.rowcount == 1
        if not inserted:
            logger.debug("Message %s already recorded", message_id)
        return inserted

    def cleanup(self) -> int:
        """Delete records older than the retention window. Returns rows deleted."""
        cutoff = _stamp(self._clock() - self._retention)
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM processed_messages WHERE processed_at < ?", (cutoff,)
            )
            deleted = cursor.rowcount
        logger.info("Idempotency cleanup removed %d record(s)", deleted)
        return deleted
