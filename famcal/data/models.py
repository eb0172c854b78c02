"""
Family Calendar Assistant — Data Models.

Per-sender conversation state that survives bot restarts: a short chat
history for the LLM plus at most one open multi-turn sub-state (a
conflict confirmation or a recurring-delete scope question).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from famcal.ports.calendar_port import Recurrence

logger = logging.getLogger(__name__)

AWAITING_CONFLICT_CONFIRMATION = "awaiting_conflict_confirmation"
AWAITING_DELETE_SCOPE = "awaiting_delete_scope"


@dataclass
class HistoryEntry:
    role: str      # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class ConflictPending:
    """An event held back because it overlaps existing events.

    Created only after the conflict check, so confirming it writes the
    event without checking again.
    """

    title: str
    date: str                          # YYYY-MM-DD
    time: str                          # HH:MM
    duration_minutes: int = 60
    recurrence: Recurrence | None = None
    kind: str = field(default="conflict", init=False)


@dataclass(frozen=True)
class DeleteScopePending:
    """A delete that hit one instance of a recurring series."""

    event_id: str                      # the instance
    series_id: str                     # the recurring parent
    instance_date: str                 # YYYY-MM-DD, local
    summary: str
    kind: str = field(default="delete_scope", init=False)


Pending = ConflictPending | DeleteScopePending


def pending_to_dict(pending: Pending) -> dict:
    """Serialise a pending sub-state with its ``kind`` tag."""
    return asdict(pending)


def pending_from_dict(data: dict | None) -> Pending | None:
    """Rebuild a pending sub-state; unknown or malformed payloads load as None."""
    if not data:
        return None
    payload = dict(data)
    kind = payload.pop("kind", None)
    try:
        if kind == "conflict":
            recurrence = payload.pop("recurrence", None)
            return ConflictPending(
                **payload,
                recurrence=Recurrence(**recurrence) if recurrence else None,
            )
        if kind == "delete_scope":
            return DeleteScopePending(**payload)
    except TypeError as exc:
        logger.warning("Malformed pending payload %r: %s", data, exc)
        return None

    logger.warning("Unknown pending payload kind %r, ignoring", kind)
    return None


@dataclass
class ConversationState:
    """Everything remembered about one sender between messages."""

    sender: str
    pending: Pending | None = None
    history: list[HistoryEntry] = field(default_factory=list)
    last_message_at: str = ""          # UTC, "YYYY-MM-DD HH:MM:SS"

    @property
    def awaiting(self) -> str | None:
        """Sub-intent marker derived from the pending variant."""
        if isinstance(self.pending, ConflictPending):
            return AWAITING_CONFLICT_CONFIRMATION
        if isinstance(self.pending, DeleteScopePending):
            return AWAITING_DELETE_SCOPE
        return None
