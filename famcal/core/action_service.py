"""
Family Calendar Assistant — Intent Resolution Engine.

Turns one extracted CalendarIntent (or a reply to an open question) into
calendar operations and exactly one reply. The service never talks to a
messenger and never touches the conversation store: it returns an
EngineReply and the message handler persists whatever sub-state it
carries.

States per sender:
    IDLE ──create with conflict──▶ AWAITING_CONFLICT_CONFIRM ──yes/no──▶ IDLE
    IDLE ──delete recurring instance──▶ AWAITING_DELETE_SCOPE ──1/2──▶ IDLE
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable

from famcal.core import replies
from famcal.core.dates import (
    add_days,
    add_duration,
    combine,
    date_range,
    minutes_between,
    now_in,
    parse_date,
    resolve_implicit_date,
    today,
)
from famcal.core.recurrence import weekly_start_date
from famcal.core.replies import ReplyKind, classify_reply, requires_clarification
from famcal.data.models import (
    AWAITING_CONFLICT_CONFIRMATION,
    AWAITING_DELETE_SCOPE,
    ConflictPending,
    DeleteScopePending,
    Pending,
)
from famcal.ports.calendar_port import CalendarError, Recurrence, SearchResult

if TYPE_CHECKING:
    from famcal.core.parser import CalendarEntities, CalendarIntent
    from famcal.ports.calendar_port import CalendarPort

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 60
SEARCH_WINDOW_DAYS = 30
MAX_RANGE_DAYS = 31


# ---------------------------------------------------------------------------
# Response type
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    CLARIFICATION = "clarification"
    QUERY_RESULT = "query_result"
    CONFLICT_PROMPT = "conflict_prompt"
    DELETE_SCOPE_PROMPT = "delete_scope_prompt"
    CANDIDATES = "candidates"
    NO_ACTION = "no_action"


@dataclass
class EngineReply:
    """One reply plus the sub-state transition it implies.

    ``pending`` is the sub-state to persist (None: leave the stored one
    alone). ``resolved`` marks a finished multi-turn confirmation; the
    caller then clears the conversation completely.
    """

    kind: ResponseKind
    message: str
    pending: Pending | None = None
    resolved: bool = False


# ---------------------------------------------------------------------------
# ActionService
# ---------------------------------------------------------------------------


class ActionService:
    """Stateless engine that orchestrates all calendar business logic."""

    def __init__(
        self,
        calendar: CalendarPort,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._calendar = calendar
        self._clock = clock

    @property
    def _tz(self) -> str:
        return self._calendar.timezone

    def _now(self) -> datetime:
        return self._clock() if self._clock else now_in(self._tz)

    def _today(self) -> str:
        return today(self._tz, self._now())

    # ------------------------------------------------------------------
    # Public: fresh intent
    # ------------------------------------------------------------------

    async def handle_intent(
        self, intent: CalendarIntent, display_name: str | None = None,
    ) -> EngineReply:
        """Dispatch a freshly extracted intent. Calendar errors become replies."""
        try:
            if intent.intent == "greeting":
                return EngineReply(ResponseKind.NO_ACTION, replies.greeting(display_name))
            if intent.intent == "help":
                return EngineReply(ResponseKind.NO_ACTION, replies.HELP_TEXT)
            if intent.intent == "query_events":
                return await self._query(intent.entities)
            if intent.intent == "create_event":
                return await self._create(intent)
            if intent.intent == "update_event":
                return await self._update(intent)
            if intent.intent == "delete_event":
                return await self._delete(intent)

            return EngineReply(
                ResponseKind.CLARIFICATION,
                intent.clarification_needed or replies.NOT_UNDERSTOOD,
            )
        except CalendarError as exc:
            logger.error("Calendar error while handling %s: %s", intent.intent, exc)
            return EngineReply(ResponseKind.ERROR, replies.calendar_error_message(exc.kind))

    # ------------------------------------------------------------------
    # Public: reply to an open question
    # ------------------------------------------------------------------

    async def resolve_pending(self, pending: Pending, text: str) -> EngineReply:
        """Answer an open sub-state from the raw reply text, without the LLM."""
        try:
            if isinstance(pending, ConflictPending):
                return await self._resolve_conflict(pending, text)
            return await self._resolve_delete_scope(pending, text)
        except CalendarError as exc:
            logger.error("Calendar error while resolving %s: %s", pending.kind, exc)
            return EngineReply(
                ResponseKind.ERROR,
                replies.calendar_error_message(exc.kind),
                resolved=True,
            )

    async def _resolve_conflict(self, pending: ConflictPending, text: str) -> EngineReply:
        answer = classify_reply(text, AWAITING_CONFLICT_CONFIRMATION)
        if answer is not ReplyKind.AFFIRMATIVE:
            logger.info("Conflict confirmation declined (%s): %s", answer.value, pending.title)
            return EngineReply(ResponseKind.NO_ACTION, replies.CONFLICT_DECLINED, resolved=True)

        logger.info("Conflict confirmed, creating '%s' on %s", pending.title, pending.date)
        reply = await self._write_event(
            pending.title, pending.date, pending.time,
            pending.duration_minutes, pending.recurrence,
        )
        reply.resolved = True
        return reply

    async def _resolve_delete_scope(self, pending: DeleteScopePending, text: str) -> EngineReply:
        answer = classify_reply(text, AWAITING_DELETE_SCOPE)

        if answer is ReplyKind.THIS_ONLY:
            await self._calendar.delete_event(pending.event_id)
            return EngineReply(ResponseKind.SUCCESS, replies.DELETED_THIS_ONLY, resolved=True)

        if answer is ReplyKind.ALL_FUTURE:
            await self._calendar.trim_series(pending.series_id, pending.instance_date)
            return EngineReply(
                ResponseKind.SUCCESS,
                replies.deleted_all_future(pending.instance_date),
                resolved=True,
            )

        return EngineReply(ResponseKind.DELETE_SCOPE_PROMPT, replies.DELETE_SCOPE_REASK, pending=pending)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def _query(self, entities: CalendarEntities) -> EngineReply:
        day = entities.date or self._today()

        if entities.date_end and parse_date(entities.date_end) > parse_date(day):
            last_day = min(entities.date_end, add_days(day, MAX_RANGE_DAYS - 1))
            if last_day != entities.date_end:
                logger.info("Range query %s..%s capped at %s", day, entities.date_end, last_day)
            overview = []
            for current in date_range(day, last_day):
                overview.append((current, await self._calendar.list_events(current)))
            return EngineReply(ResponseKind.QUERY_RESULT, replies.range_overview(overview, self._tz))

        events = await self._calendar.list_events(day)
        return EngineReply(ResponseKind.QUERY_RESULT, replies.day_overview(day, events, self._tz))

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _create(self, intent: CalendarIntent) -> EngineReply:
        clarification = requires_clarification(intent, replies.NOT_UNDERSTOOD)
        if clarification:
            return EngineReply(ResponseKind.CLARIFICATION, clarification)

        entities = intent.entities
        title = entities.title or replies.DEFAULT_TITLE

        if entities.all_day and entities.date:
            last_day = entities.date_end or entities.date
            # The calendar backend wants an exclusive end date.
            await self._calendar.create_all_day_event(title, entities.date, add_days(last_day, 1))
            return EngineReply(
                ResponseKind.SUCCESS, replies.created_all_day(title, entities.date, last_day),
            )

        if entities.all_day:
            return EngineReply(ResponseKind.CLARIFICATION, replies.ASK_DATE)

        if not entities.time:
            return EngineReply(ResponseKind.CLARIFICATION, replies.ASK_TIME)

        if entities.end_time:
            duration = minutes_between(entities.time, entities.end_time)
            if duration <= 0:
                logger.info("End time %s not after start %s", entities.end_time, entities.time)
                return EngineReply(ResponseKind.CLARIFICATION, replies.ASK_END_TIME)
        else:
            duration = entities.duration_minutes or DEFAULT_DURATION

        day = entities.date or resolve_implicit_date(entities.time, self._tz, self._now())
        recurrence = None
        if entities.recurrence:
            recurrence = Recurrence(
                frequency=entities.recurrence.frequency,
                day_of_week=entities.recurrence.day_of_week,
                end_date=entities.recurrence.end_date,
            )
            if recurrence.frequency == "WEEKLY":
                day = weekly_start_date(day, recurrence.day_of_week)

        start = combine(day, entities.time, self._tz)
        end = add_duration(start, duration)
        conflicts = await self._calendar.find_conflicts(start, end)
        if conflicts:
            pending = ConflictPending(
                title=title,
                date=day,
                time=entities.time,
                duration_minutes=duration,
                recurrence=recurrence,
            )
            return EngineReply(
                ResponseKind.CONFLICT_PROMPT,
                replies.conflict_prompt(conflicts, self._tz),
                pending=pending,
            )

        return await self._write_event(title, day, entities.time, duration, recurrence)

    async def _write_event(
        self,
        title: str,
        day: str,
        start_time: str,
        duration: int,
        recurrence: Recurrence | None,
    ) -> EngineReply:
        if recurrence:
            event, next_dates = await self._calendar.create_recurring_event(
                title, day, start_time, duration, recurrence,
            )
            message = replies.created_recurring(title, recurrence, event, next_dates, self._tz)
        else:
            event = await self._calendar.create_event(title, day, start_time, duration)
            message = replies.created_event(title, day, event, self._tz)
        return EngineReply(ResponseKind.SUCCESS, message)

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    async def _search(self, entities: CalendarEntities) -> SearchResult:
        """Explicit date, or a window from today to +30 days when none is given."""
        if entities.date:
            search_date, search_end = entities.date, None
        else:
            search_date = self._today()
            search_end = add_days(search_date, SEARCH_WINDOW_DAYS)

        query = entities.event_search_query or entities.title
        return await self._calendar.find_events(search_date, query, search_end)

    def _unresolved_search(self, result: SearchResult) -> EngineReply | None:
        if result.not_found:
            return EngineReply(ResponseKind.NO_ACTION, replies.NO_MATCH)
        if result.event is None:
            return EngineReply(
                ResponseKind.CANDIDATES, replies.candidate_list(result.candidates, self._tz),
            )
        return None

    async def _update(self, intent: CalendarIntent) -> EngineReply:
        clarification = requires_clarification(intent, replies.WHICH_TO_UPDATE)
        if clarification:
            return EngineReply(ResponseKind.CLARIFICATION, clarification)

        entities = intent.entities
        result = await self._search(entities)
        unresolved = self._unresolved_search(result)
        if unresolved:
            return unresolved

        event = result.event
        # A title only renames when it is not the search term itself.
        new_summary = None
        if entities.title and entities.event_search_query and entities.title != entities.event_search_query:
            new_summary = entities.title

        updated = await self._calendar.update_event(
            event.id,
            summary=new_summary,
            target_date=entities.date,
            start_time=entities.time,
            duration_minutes=entities.duration_minutes,
        )
        logger.info("Updated event %s ('%s')", event.id, updated.summary)
        return EngineReply(ResponseKind.SUCCESS, replies.updated(updated, self._tz))

    async def _delete(self, intent: CalendarIntent) -> EngineReply:
        clarification = requires_clarification(intent, replies.WHICH_TO_DELETE)
        if clarification:
            return EngineReply(ResponseKind.CLARIFICATION, clarification)

        result = await self._search(intent.entities)
        unresolved = self._unresolved_search(result)
        if unresolved:
            return unresolved

        event = result.event
        if event.recurring_event_id:
            pending = DeleteScopePending(
                event_id=event.id,
                series_id=event.recurring_event_id,
                instance_date=event.local_date(self._tz),
                summary=event.summary,
            )
            return EngineReply(
                ResponseKind.DELETE_SCOPE_PROMPT, replies.DELETE_SCOPE_QUESTION, pending=pending,
            )

        await self._calendar.delete_event(event.id)
        return EngineReply(ResponseKind.SUCCESS, replies.deleted(event, self._tz))
