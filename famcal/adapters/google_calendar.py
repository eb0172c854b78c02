"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol.

The googleapiclient is blocking, so every request runs in a worker thread.
Transient 429/5xx responses are retried by the client library itself
(``num_retries``); the core never retries a write.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from googleapiclient.errors import HttpError

from famcal.core.conflict_checker import filter_conflicts
from famcal.core.dates import (
    DATE_FORMAT,
    TIME_FORMAT,
    add_days,
    add_duration,
    combine,
    format_dd_mm,
    parse_date,
    parse_instant,
)
from famcal.core.recurrence import format_rrule, next_occurrences, trim_rrule, weekly_start_date
from famcal.ports.calendar_port import (
    CalendarError,
    CalendarEvent,
    GenericApiError,
    NotFound,
    PermissionDenied,
    RateLimited,
    Recurrence,
    SearchResult,
)

logger = logging.getLogger(__name__)

_NUM_RETRIES = 3
_DEFAULT_DURATION = 60
_PREVIEW_OCCURRENCES = 3


def _status_of(exc: HttpError) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None and getattr(exc, "resp", None) is not None:
        status = getattr(exc.resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _translate_error(exc: Exception, action: str) -> CalendarError:
    """Map a backend failure onto the CalendarError taxonomy."""
    if isinstance(exc, HttpError):
        status = _status_of(exc)
        if status == 403:
            return PermissionDenied(f"Calendar access denied while trying to {action}")
        if status in (404, 410):
            return NotFound(f"Calendar event not found while trying to {action}")
        if status == 429:
            return RateLimited(f"Calendar API rate limit exceeded while trying to {action}")
    return GenericApiError(f"Failed to {action}")


def _to_event(item: dict) -> CalendarEvent:
    start = item.get("start", {})
    end = item.get("end", {})
    return CalendarEvent(
        id=item.get("id", ""),
        summary=item.get("summary") or "(Kein Titel)",
        start=start.get("dateTime", start.get("date", "")),
        end=end.get("dateTime", end.get("date", "")),
        is_all_day="date" in start and "dateTime" not in start,
        description=item.get("description") or "",
        recurring_event_id=item.get("recurringEventId"),
    )


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort."""

    def __init__(
        self,
        service=None,
        calendar_id: str | None = None,
        timezone: str | None = None,
    ) -> None:
        if calendar_id is None or timezone is None:
            from famcal.config import settings
            calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
            timezone = timezone or settings.TIMEZONE
        if service is None:
            from famcal.integrations.google_auth import get_calendar_service
            service = get_calendar_service()

        self._service = service
        self.calendar_id = calendar_id
        self.timezone = timezone

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _execute(self, request, action: str):
        try:
            return await asyncio.to_thread(request.execute, num_retries=_NUM_RETRIES)
        except Exception as exc:
            logger.error("Google Calendar API error while trying to %s: %s", action, exc)
            raise _translate_error(exc, action) from exc

    def _date_time(self, instant: datetime) -> dict:
        return {"dateTime": instant.isoformat(), "timeZone": self.timezone}

    async def _list_window(
        self, first_day: str, last_day: str, query: str | None = None
    ) -> list[CalendarEvent]:
        time_min = combine(first_day, "00:00", self.timezone)
        time_max = combine(add_days(last_day, 1), "00:00", self.timezone)
        params: dict = {
            "calendarId": self.calendar_id,
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if query:
            params["q"] = query

        result = await self._execute(self._service.events().list(**params), "list events")
        return [_to_event(item) for item in result.get("items", [])]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_events(self, target_date: str) -> list[CalendarEvent]:
        events = await self._list_window(target_date, target_date)
        logger.info("Listed %d event(s) on %s", len(events), target_date)
        return events

    async def find_events(
        self,
        target_date: str,
        title_hint: str | None = None,
        date_end: str | None = None,
    ) -> SearchResult:
        events = await self._list_window(target_date, date_end or target_date, title_hint)
        logger.info(
            "Found %d event(s) for query='%s' in %s..%s",
            len(events), title_hint, target_date, date_end or target_date,
        )
        return SearchResult.from_events(events)

    async def find_conflicts(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        day = start.astimezone(ZoneInfo(self.timezone)).strftime(DATE_FORMAT)
        events = await self.list_events(day)
        return filter_conflicts(events, start, end, self.timezone)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_event(
        self,
        summary: str,
        target_date: str,
        start_time: str,
        duration_minutes: int = _DEFAULT_DURATION,
        description: str | None = None,
    ) -> CalendarEvent:
        start = combine(target_date, start_time, self.timezone)
        end = add_duration(start, duration_minutes)
        body = {
            "summary": summary,
            "description": description or "",
            "start": self._date_time(start),
            "end": self._date_time(end),
        }
        created = await self._execute(
            self._service.events().insert(calendarId=self.calendar_id, body=body),
            "create event",
        )
        event = _to_event(created)
        logger.info("Event created: '%s' on %s at %s (%s)", summary, target_date, start_time, event.id)
        return event

    async def create_all_day_event(
        self,
        summary: str,
        start_date: str,
        end_date_exclusive: str,
        description: str | None = None,
    ) -> CalendarEvent:
        body = {
            "summary": summary,
            "description": description or "",
            "start": {"date": start_date},
            "end": {"date": end_date_exclusive},
        }
        created = await self._execute(
            self._service.events().insert(calendarId=self.calendar_id, body=body),
            "create all-day event",
        )
        event = _to_event(created)
        logger.info(
            "All-day event created: '%s' %s..%s (exclusive) (%s)",
            summary, start_date, end_date_exclusive, event.id,
        )
        return event

    async def create_recurring_event(
        self,
        summary: str,
        target_date: str,
        start_time: str,
        duration_minutes: int,
        recurrence: Recurrence,
        description: str | None = None,
    ) -> tuple[CalendarEvent, list[str]]:
        effective_date = target_date
        if recurrence.frequency == "WEEKLY":
            effective_date = weekly_start_date(target_date, recurrence.day_of_week)

        start = combine(effective_date, start_time, self.timezone)
        end = add_duration(start, duration_minutes)
        rrule = format_rrule(
            recurrence.frequency, recurrence.day_of_week, recurrence.end_date, self.timezone,
        )
        body = {
            "summary": summary,
            "description": description or "",
            "start": self._date_time(start),
            "end": self._date_time(end),
            "recurrence": [rrule],
        }
        created = await self._execute(
            self._service.events().insert(calendarId=self.calendar_id, body=body),
            "create recurring event",
        )
        event = _to_event(created)

        preview = [
            format_dd_mm(dt)
            for dt in next_occurrences(
                effective_date, start_time, recurrence.frequency,
                _PREVIEW_OCCURRENCES, self.timezone,
                day_of_week=recurrence.day_of_week, end_date=recurrence.end_date,
            )
        ]
        logger.info(
            "Recurring event created: '%s' from %s %s, %s (%s)",
            summary, effective_date, start_time, rrule, event.id,
        )
        return event, preview

    async def update_event(
        self,
        event_id: str,
        summary: str | None = None,
        target_date: str | None = None,
        start_time: str | None = None,
        duration_minutes: int | None = None,
    ) -> CalendarEvent:
        updates: dict = {}
        if summary is not None:
            updates["summary"] = summary

        if target_date or start_time or duration_minutes:
            existing = await self._execute(
                self._service.events().get(calendarId=self.calendar_id, eventId=event_id),
                "load event for update",
            )
            updates.update(
                self._reschedule_body(existing, target_date, start_time, duration_minutes)
            )

        updated = await self._execute(
            self._service.events().patch(
                calendarId=self.calendar_id, eventId=event_id, body=updates,
            ),
            "update event",
        )
        logger.info("Event %s updated: %s", event_id, sorted(updates))
        return _to_event(updated)

    def _reschedule_body(
        self,
        existing: dict,
        target_date: str | None,
        start_time: str | None,
        duration_minutes: int | None,
    ) -> dict:
        """New start/end for an existing event, keeping whatever was not changed."""
        current = _to_event(existing)

        if current.is_all_day and not start_time:
            # Shift the all-day span, keeping its length.
            if not target_date:
                return {}
            span = (parse_date(current.end) - parse_date(current.start)).days or 1
            return {
                "start": {"date": target_date},
                "end": {"date": add_days(target_date, span)},
            }

        if current.is_all_day:
            day = target_date or current.start
            duration = duration_minutes or _DEFAULT_DURATION
        else:
            existing_start = current.start_datetime(self.timezone)
            day = target_date or existing_start.strftime(DATE_FORMAT)
            start_time = start_time or existing_start.strftime(TIME_FORMAT)
            elapsed = parse_instant(current.end) - parse_instant(current.start)
            existing_minutes = int(elapsed.total_seconds() // 60)
            duration = duration_minutes or (existing_minutes if existing_minutes > 0 else _DEFAULT_DURATION)

        start = combine(day, start_time, self.timezone)
        end = add_duration(start, duration)
        return {"start": self._date_time(start), "end": self._date_time(end)}

    async def delete_event(self, event_id: str) -> None:
        await self._execute(
            self._service.events().delete(calendarId=self.calendar_id, eventId=event_id),
            "delete event",
        )
        logger.info("Event with ID %s deleted successfully.", event_id)

    async def trim_series(self, series_id: str, cutover_date: str) -> None:
        """End the series on the eve of *cutover_date*; earlier instances stay."""
        series = await self._execute(
            self._service.events().get(calendarId=self.calendar_id, eventId=series_id),
            "load recurring event",
        )
        rules = series.get("recurrence") or []
        if not any(rule.startswith("RRULE:") for rule in rules):
            logger.error("Event %s is not a recurring series", series_id)
            raise GenericApiError("Event is not a recurring series")

        start_day = self._local_start_date(series)
        if start_day is not None and cutover_date <= start_day:
            # Nothing precedes the cutover, so the whole series goes.
            await self.delete_event(series_id)
            logger.info("Series %s deleted: cutover %s is its first day", series_id, cutover_date)
            return

        updated_rules = [
            trim_rrule(rule, cutover_date, self.timezone) if rule.startswith("RRULE:") else rule
            for rule in rules
        ]
        await self._execute(
            self._service.events().patch(
                calendarId=self.calendar_id,
                eventId=series_id,
                body={"recurrence": updated_rules},
            ),
            "trim recurring event",
        )
        logger.info("Series %s trimmed before %s: %s", series_id, cutover_date, updated_rules)

    def _local_start_date(self, item: dict) -> str | None:
        start = item.get("start") or {}
        if "date" in start:
            return start["date"]
        if "dateTime" in start:
            local = parse_instant(start["dateTime"]).astimezone(ZoneInfo(self.timezone))
            return local.strftime(DATE_FORMAT)
        return None
