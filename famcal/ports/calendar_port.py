"""Calendar port — abstract interface for calendar operations.

Core modules depend on this protocol, never on a specific provider.
Provider errors are translated into the small CalendarError taxonomy
below; backend-specific error shapes never cross this boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol
from zoneinfo import ZoneInfo

from famcal.core.dates import local_date, parse_instant


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------


class CalendarErrorKind(Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"


class CalendarError(Exception):
    """Raised when any calendar provider operation fails."""

    kind = CalendarErrorKind.API_ERROR


class NotFound(CalendarError):
    """The event no longer exists (deleted or gone)."""

    kind = CalendarErrorKind.NOT_FOUND


class PermissionDenied(CalendarError):
    """The service account has no write access to the calendar."""

    kind = CalendarErrorKind.PERMISSION_DENIED


class RateLimited(CalendarError):
    kind = CalendarErrorKind.RATE_LIMITED


class GenericApiError(CalendarError):
    """Any backend or transport failure that is not classified otherwise."""

    kind = CalendarErrorKind.API_ERROR


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalendarEvent:
    """Immutable snapshot of one calendar event (or one series instance).

    Timed events carry ISO datetimes in ``start``/``end``; all-day events
    carry YYYY-MM-DD dates with an exclusive ``end``.
    """

    id: str
    summary: str
    start: str
    end: str
    is_all_day: bool = False
    description: str = ""
    recurring_event_id: str | None = None

    def start_datetime(self, tz: str) -> datetime:
        return parse_instant(self.start).astimezone(ZoneInfo(tz))

    def end_datetime(self, tz: str) -> datetime:
        return parse_instant(self.end).astimezone(ZoneInfo(tz))

    def local_date(self, tz: str) -> str:
        return local_date(self.start, tz)


@dataclass(frozen=True)
class Recurrence:
    frequency: str                 # "DAILY" | "WEEKLY" | "MONTHLY"
    day_of_week: str | None = None  # "MO".."SU", weekly only
    end_date: str | None = None     # last valid local day, YYYY-MM-DD


@dataclass(frozen=True)
class SearchResult:
    """Outcome of find_events: exactly one of event / candidates is set, or neither."""

    event: CalendarEvent | None = None
    candidates: list[CalendarEvent] = field(default_factory=list)

    @property
    def not_found(self) -> bool:
        return self.event is None and not self.candidates

    @classmethod
    def from_events(cls, events: list[CalendarEvent]) -> SearchResult:
        if len(events) == 1:
            return cls(event=events[0])
        return cls(candidates=list(events))


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class CalendarPort(Protocol):
    """Abstract calendar interface used by core modules."""

    timezone: str

    async def list_events(self, target_date: str) -> list[CalendarEvent]: ...

    async def find_events(
        self,
        target_date: str,
        title_hint: str | None = None,
        date_end: str | None = None,
    ) -> SearchResult: ...

    async def create_event(
        self,
        summary: str,
        target_date: str,
        start_time: str,
        duration_minutes: int = 60,
        description: str | None = None,
    ) -> CalendarEvent: ...

    async def create_all_day_event(
        self,
        summary: str,
        start_date: str,
        end_date_exclusive: str,
        description: str | None = None,
    ) -> CalendarEvent: ...

    async def create_recurring_event(
        self,
        summary: str,
        target_date: str,
        start_time: str,
        duration_minutes: int,
        recurrence: Recurrence,
        description: str | None = None,
    ) -> tuple[CalendarEvent, list[str]]: ...

    async def update_event(
        self,
        event_id: str,
        summary: str | None = None,
        target_date: str | None = None,
        start_time: str | None = None,
        duration_minutes: int | None = None,
    ) -> CalendarEvent: ...

    async def delete_event(self, event_id: str) -> None: ...

    async def trim_series(self, series_id: str, cutover_date: str) -> None: ...

    async def find_conflicts(
        self, start: datetime, end: datetime
    ) -> list[CalendarEvent]: ...
