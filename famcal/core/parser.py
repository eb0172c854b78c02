"""
Family Calendar Assistant — Intent Extractor.

Converts a natural-language message (German or English) into a structured
CalendarIntent using the configured LLM provider. The model must answer by
calling the ``parse_calendar_intent`` tool; its arguments are validated by
pydantic and nothing is trusted on partial success.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from famcal.core.dates import DATE_FORMAT, TIME_FORMAT, format_day_name, now_in
from famcal.core.llm import complete_structured
from famcal.data.models import HistoryEntry

logger = logging.getLogger(__name__)

MAX_HISTORY = 5
CONFIDENCE_THRESHOLD = 0.7

IntentType = Literal[
    "create_event",
    "query_events",
    "update_event",
    "delete_event",
    "greeting",
    "help",
    "unclear",
]


class IntentExtractionError(Exception):
    """Raised when the LLM gives no usable structured intent."""


# ---------------------------------------------------------------------------
# Intent contract
# ---------------------------------------------------------------------------


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _check_date(v: str | None) -> str | None:
    if v is not None:
        datetime.strptime(v, DATE_FORMAT)
        if len(v) != 10:
            raise ValueError("date must be YYYY-MM-DD")
    return v


def _check_time(v: str | None) -> str | None:
    if v is not None:
        datetime.strptime(v, TIME_FORMAT)
        if len(v) != 5:
            raise ValueError("time must be HH:MM")
    return v


class RecurrenceSpec(BaseModel):
    frequency: Literal["DAILY", "WEEKLY", "MONTHLY"]
    day_of_week: Literal["MO", "TU", "WE", "TH", "FR", "SA", "SU"] | None = None
    end_date: str | None = None

    @field_validator("frequency", "day_of_week", mode="before")
    @classmethod
    def upper(cls, v):
        v = _blank_to_none(v)
        return v.upper() if isinstance(v, str) else v

    @field_validator("end_date", mode="before")
    @classmethod
    def blank_end(cls, v):
        return _blank_to_none(v)

    @field_validator("end_date")
    @classmethod
    def check_end_date(cls, v: str | None) -> str | None:
        return _check_date(v)


class CalendarEntities(BaseModel):
    """Entities extracted from the message. All optional.

    JSON example:
    {
        "title": "Zahnarzt",
        "date": "2026-10-20",
        "time": "15:00",
        "duration_minutes": 60
    }
    """

    title: str | None = None
    date: str | None = None            # YYYY-MM-DD
    date_end: str | None = None        # YYYY-MM-DD, inclusive
    time: str | None = None            # HH:MM, 24h
    end_time: str | None = None        # HH:MM, 24h
    duration_minutes: int | None = Field(default=None, gt=0)
    recurrence: RecurrenceSpec | None = None
    all_day: bool | None = None
    event_search_query: str | None = None

    @field_validator(
        "title", "date", "date_end", "time", "end_time", "event_search_query",
        mode="before",
    )
    @classmethod
    def blank_strings(cls, v):
        return _blank_to_none(v)

    @field_validator("date", "date_end")
    @classmethod
    def check_dates(cls, v: str | None) -> str | None:
        return _check_date(v)

    @field_validator("time", "end_time")
    @classmethod
    def check_times(cls, v: str | None) -> str | None:
        return _check_time(v)


class CalendarIntent(BaseModel):
    intent: IntentType
    entities: CalendarEntities
    confidence: float = Field(ge=0, le=1)
    clarification_needed: str | None = None

    @field_validator("clarification_needed", mode="before")
    @classmethod
    def blank_clarification(cls, v):
        return _blank_to_none(v)

    @property
    def needs_clarification(self) -> bool:
        """Low confidence counts as a clarification even without a message."""
        return bool(self.clarification_needed) or self.confidence < CONFIDENCE_THRESHOLD


# ---------------------------------------------------------------------------
# Tool definition
# ---------------------------------------------------------------------------

TOOL_NAME = "parse_calendar_intent"
TOOL_DESCRIPTION = "Parse a natural language message and extract calendar intent with entities"

INTENT_TOOL_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "intent": {
            "type": "string",
            "enum": [
                "create_event", "query_events", "update_event", "delete_event",
                "greeting", "help", "unclear",
            ],
            "description": "The primary intent of the user message",
        },
        "entities": {
            "type": "object",
            "description": "Extracted calendar entities",
            "properties": {
                "title": {"type": "string", "description": "Event title"},
                "date": {"type": "string", "description": "Event date (or range start) in YYYY-MM-DD format"},
                "date_end": {"type": "string", "description": "Inclusive last day of a date range, YYYY-MM-DD"},
                "time": {"type": "string", "description": "Start time in HH:MM 24-hour format"},
                "end_time": {"type": "string", "description": "Explicit end time in HH:MM 24-hour format"},
                "duration_minutes": {"type": "integer", "description": "Event duration in minutes"},
                "all_day": {"type": "boolean", "description": "True for all-day events (vacations, birthdays)"},
                "event_search_query": {
                    "type": "string",
                    "description": "Words identifying an existing event to update or delete",
                },
                "recurrence": {
                    "type": "object",
                    "description": "Only for repeating events",
                    "properties": {
                        "frequency": {"type": "string", "enum": ["DAILY", "WEEKLY", "MONTHLY"]},
                        "day_of_week": {"type": "string", "enum": ["MO", "TU", "WE", "TH", "FR", "SA", "SU"]},
                        "end_date": {"type": "string", "description": "Last day of the series, YYYY-MM-DD"},
                    },
                    "required": ["frequency"],
                },
            },
        },
        "confidence": {"type": "number", "description": "Confidence score between 0 and 1"},
        "clarification_needed": {
            "type": "string",
            "description": "Short German question when confidence < 0.7 or details are missing",
        },
    },
    "required": ["intent", "entities", "confidence"],
}


# ---------------------------------------------------------------------------
# System prompt for LLM
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are a helpful family calendar assistant. Family members write to you in \
German (sometimes English) to manage their shared calendar.

Your job: classify each message and extract structured entities. Always answer \
by calling the parse_calendar_intent tool.

## Intents
- create_event: add a new event
- query_events: see what is on the calendar
- update_event: change an existing event (time, date, title)
- delete_event: remove an existing event
- greeting: hello / hallo / moin
- help: the user asks what you can do
- unclear: intent cannot be determined

## Entities
- title: short event title, in the user's words ("Zahnarzt", "Fußball Training")
- date: YYYY-MM-DD. Resolve relative dates ("morgen", "übermorgen", \
"nächsten Montag", "am Wochenende" = next Saturday) from the current date \
given at the top of the user message.
- date_end: inclusive last day for ranges ("vom 3. bis 7. Juli", "diese Woche").
- time: HH:MM 24h. "morgens" → 09:00, "mittags" → 12:00, "nachmittags" → 14:00, \
"abends" → 18:00.
- end_time: HH:MM when the user gives an explicit end ("von 14 bis 16 Uhr").
- duration_minutes: only when the user states a duration.
- all_day: true for all-day events (Urlaub, Geburtstag, Ferien) with no time.
- recurrence: for repeating events. frequency DAILY ("jeden Tag"), WEEKLY \
("jeden Dienstag" → day_of_week "TU"), MONTHLY ("jeden Monat"). end_date only \
when the user names one ("bis Ende Juni").
- event_search_query: for update_event and delete_event, the words that \
identify the existing event ("Zahnarzt"). For update_event put the NEW \
values into date/time/title.

## Confidence
1.0 completely clear, 0.9 minor assumptions, 0.8 some interpretation, \
0.7 missing key details, 0.6 or below unclear. When confidence < 0.7 or an \
event intent lacks required details, set clarification_needed to one short, \
friendly German question asking for exactly one missing piece.

## Examples
"Zahnarzt morgen um 15 Uhr" → create_event {title: "Zahnarzt", date: <tomorrow>, time: "15:00"}, 0.95
"Was steht Freitag an?" → query_events {date: <friday>}, 1.0
"Was haben wir diese Woche?" → query_events {date: <today>, date_end: <sunday>}, 0.95
"Urlaub vom 3. bis 7. Juli" → create_event {title: "Urlaub", date: "…-07-03", date_end: "…-07-07", all_day: true}, 0.95
"Jeden Dienstag 17 Uhr Fußball" → create_event {title: "Fußball", time: "17:00", recurrence: {frequency: "WEEKLY", day_of_week: "TU"}}, 0.9
"Verschieb den Zahnarzt auf 16 Uhr" → update_event {event_search_query: "Zahnarzt", time: "16:00"}, 0.85
"Lösch das Meeting am Mittwoch" → delete_event {event_search_query: "Meeting", date: <wednesday>}, 0.8
"Trag was für Mama ein" → create_event {title: "Termin für Mama"}, 0.5, clarification_needed: "Wann soll ich das eintragen?"
"Hallo!" → greeting {}, 1.0

## Rules
- Never invent details that are not in the message or the conversation.
- Use the previous turns only to fill in context the user refers to.
- Dates always YYYY-MM-DD, times always HH:MM, durations in minutes.
"""


def _date_context(now: datetime, tz: str) -> str:
    today = now.strftime(DATE_FORMAT)
    return (
        f"[Aktuelles Datum/Uhrzeit: {today} {now.strftime(TIME_FORMAT)}, "
        f"{format_day_name(today)}, Zeitzone {tz}]"
    )


def _build_messages(text: str, history: list[HistoryEntry], now: datetime, tz: str) -> list[dict]:
    recent = list(history)[-MAX_HISTORY:]
    # Providers expect the conversation to open with a user turn.
    while recent and recent[0].role != "user":
        recent.pop(0)
    messages = [{"role": entry.role, "content": entry.content} for entry in recent]
    messages.append({"role": "user", "content": f"{_date_context(now, tz)}\n\n{text}"})
    return messages


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def extract_intent(
    text: str,
    history: list[HistoryEntry] | None = None,
    now: datetime | None = None,
    tz: str | None = None,
) -> CalendarIntent:
    """Extract a validated CalendarIntent from *text*.

    Raises IntentExtractionError when the provider fails, returns no tool
    call, or returns arguments that do not validate.
    """
    if tz is None:
        from famcal.config import settings
        tz = settings.TIMEZONE
    now = now or now_in(tz)
    messages = _build_messages(text, history or [], now, tz)

    try:
        raw = await complete_structured(
            system=_SYSTEM_PROMPT,
            messages=messages,
            tool_name=TOOL_NAME,
            tool_description=TOOL_DESCRIPTION,
            schema=INTENT_TOOL_SCHEMA,
        )
    except Exception as exc:
        logger.error("LLM call failed during intent extraction: %s", exc)
        raise IntentExtractionError("Intent extraction failed") from exc

    if raw is None:
        logger.error("LLM response contained no %s tool call", TOOL_NAME)
        raise IntentExtractionError(f"No {TOOL_NAME} tool call in LLM response")

    logger.debug("LLM tool input: %s", raw)
    try:
        intent = CalendarIntent.model_validate(raw)
    except ValidationError as exc:
        logger.error("Intent validation failed: %s (raw: %s)", exc, raw)
        raise IntentExtractionError("Invalid intent structure from LLM") from exc

    logger.info(
        "Intent extracted: %s (confidence %.2f%s)",
        intent.intent, intent.confidence,
        ", clarification" if intent.clarification_needed else "",
    )
    return intent
