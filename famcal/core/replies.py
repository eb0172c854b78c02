"""
Family Calendar Assistant — Reply texts.

Every user-facing sentence lives here (German, casual du-form), together
with the command detector and the small keyword classifier that answers
an open sub-state without another LLM round-trip.
"""

from __future__ import annotations

import re
from enum import Enum

from famcal.core.dates import (
    format_day_month,
    format_day_name,
    format_dd_mm,
    format_dd_mm_yyyy,
    format_time,
    parse_date,
)
from famcal.core.parser import CalendarIntent
from famcal.data.models import AWAITING_CONFLICT_CONFIRMATION, AWAITING_DELETE_SCOPE
from famcal.ports.calendar_port import CalendarErrorKind, CalendarEvent, Recurrence

# ---------------------------------------------------------------------------
# Fixed sentences
# ---------------------------------------------------------------------------

HELP_TEXT = (
    "So kann ich dir helfen:\n\n"
    "📅 Termine ansehen: \"Was steht morgen an?\"\n"
    "➕ Termin eintragen: \"Zahnarzt am Freitag um 15 Uhr\"\n"
    "🔁 Serien: \"Jeden Dienstag 17 Uhr Fußball\"\n"
    "🏖️ Ganztägig: \"Urlaub vom 3. bis 7. Juli\"\n"
    "✏️ Ändern: \"Verschieb den Zahnarzt auf 16 Uhr\"\n"
    "🗑️ Löschen: \"Lösch das Training am Mittwoch\"\n\n"
    "Mit \"abbrechen\" fängst du jederzeit von vorne an."
)

CANCELLED = "Alles klar, was kann ich für dich tun?"
NOT_UNDERSTOOD = (
    "Das hab ich nicht ganz verstanden. "
    "Schreib mir einfach, was du mit dem Kalender machen möchtest!"
)
WHICH_TO_UPDATE = "Das hab ich nicht ganz verstanden. Welchen Termin möchtest du ändern?"
WHICH_TO_DELETE = "Das hab ich nicht ganz verstanden. Welchen Termin möchtest du löschen?"
ASK_TIME = "Zu welcher Uhrzeit soll ich das eintragen?"
ASK_DATE = "An welchem Tag soll ich das eintragen?"
ASK_END_TIME = "Die Endzeit liegt vor der Startzeit. Bis wann geht der Termin?"
NO_MATCH = "Ich finde keinen passenden Termin."
CONFLICT_DECLINED = "Alles klar, Termin wurde nicht erstellt."
DELETE_SCOPE_QUESTION = (
    "Das ist ein wiederkehrender Termin. Nur dieses Mal oder alle zukünftigen löschen?\n"
    "1) Nur dieses Mal\n"
    "2) Alle zukünftigen"
)
DELETE_SCOPE_REASK = "Bitte wähl 1 für nur diesen Termin oder 2 für alle zukünftigen."
DELETED_THIS_ONLY = "Erledigt! Nur dieser Termin wurde gelöscht."

GENERIC_ERROR = "Entschuldigung, da ist was schiefgelaufen. Probier's nochmal."
EXTRACTION_FAILED = "Das hab ich gerade nicht verarbeiten können. Probier's bitte nochmal."
UNKNOWN_SENDER = (
    "Entschuldigung, ich bin ein privater Familienbot und kann nur mit "
    "registrierten Familienmitgliedern kommunizieren."
)
TEXT_ONLY = "Ich kann leider nur Textnachrichten verarbeiten."

DEFAULT_TITLE = "Termin"

_CALENDAR_ERRORS = {
    CalendarErrorKind.PERMISSION_DENIED:
        "Zugriff auf den Kalender verweigert. Bitte prüf die Freigabe-Einstellungen.",
    CalendarErrorKind.RATE_LIMITED: "Zu viele Anfragen, probier's gleich nochmal.",
    CalendarErrorKind.NOT_FOUND: "Den Termin gibt's nicht mehr.",
    CalendarErrorKind.API_ERROR: "Fehler beim Kalender-Zugriff. Probier's nochmal.",
}

_WEEKDAYS = {
    "MO": "Montag", "TU": "Dienstag", "WE": "Mittwoch", "TH": "Donnerstag",
    "FR": "Freitag", "SA": "Samstag", "SU": "Sonntag",
}


def calendar_error_message(kind: CalendarErrorKind) -> str:
    return _CALENDAR_ERRORS.get(kind, _CALENDAR_ERRORS[CalendarErrorKind.API_ERROR])


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

_HELP_COMMANDS = {"hilfe", "help", "?"}
_CANCEL_COMMANDS = {"abbrechen", "cancel", "reset"}


def detect_command(text: str) -> str | None:
    """Return "help" / "cancel" for an exact (trimmed, case-insensitive) keyword."""
    normalized = text.strip().lower()
    if normalized in _HELP_COMMANDS:
        return "help"
    if normalized in _CANCEL_COMMANDS:
        return "cancel"
    return None


# ---------------------------------------------------------------------------
# Sub-state reply classifier
# ---------------------------------------------------------------------------


class ReplyKind(Enum):
    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    THIS_ONLY = "this_only"
    ALL_FUTURE = "all_future"
    UNKNOWN = "unknown"


_AFFIRMATIVE = {
    "ja", "jo", "jap", "jep", "jawohl", "ok", "okay", "klar", "trotzdem",
    "mach", "machs", "gerne", "gern", "passt", "sicher", "yes", "yep", "sure",
}
_NEGATIVE = {"nein", "nee", "ne", "nö", "nicht", "no", "nope", "stopp", "stop", "lass"}
_THIS_ONLY = {"1", "dieses", "diesen", "diese", "nur", "einmal", "einzeln"}
_ALL_FUTURE = {"2", "alle", "zukünftige", "zukünftigen", "serie", "immer"}

_WORD_RE = re.compile(r"\w+")


def classify_reply(text: str, awaiting: str | None) -> ReplyKind:
    """Classify a reply to an open question by keyword over the raw words.

    Conflict confirmations: a negative word wins over an affirmative one
    ("ja, lieber doch nicht" is a no). Delete-scope questions: a reply
    naming both options is ambiguous.
    """
    words = set(_WORD_RE.findall(text.lower()))

    if awaiting == AWAITING_CONFLICT_CONFIRMATION:
        if words & _NEGATIVE:
            return ReplyKind.NEGATIVE
        if words & _AFFIRMATIVE:
            return ReplyKind.AFFIRMATIVE
        return ReplyKind.UNKNOWN

    if awaiting == AWAITING_DELETE_SCOPE:
        this_only = bool(words & _THIS_ONLY)
        all_future = bool(words & _ALL_FUTURE)
        if this_only and not all_future:
            return ReplyKind.THIS_ONLY
        if all_future and not this_only:
            return ReplyKind.ALL_FUTURE
        return ReplyKind.UNKNOWN

    return ReplyKind.UNKNOWN


def requires_clarification(intent: CalendarIntent, fallback: str) -> str | None:
    """The clarification reply for a low-confidence intent, else None."""
    if intent.needs_clarification:
        return intent.clarification_needed or fallback
    return None


# ---------------------------------------------------------------------------
# Formatted replies
# ---------------------------------------------------------------------------


def greeting(name: str | None) -> str:
    hello = f"Hey {name}!" if name else "Hey!"
    return f"{hello} Ich bin dein Familienkalender-Bot. Schreib mir einfach, was du wissen oder eintragen willst!"


def _event_line(event: CalendarEvent, tz: str) -> str:
    if event.is_all_day:
        return event.summary
    return f"{format_time(event.start, tz)} - {event.summary}"


def day_overview(day: str, events: list[CalendarEvent], tz: str) -> str:
    if not events:
        return f"{format_day_name(day)} ist frei!"
    return " | ".join(_event_line(ev, tz) for ev in events)


def range_overview(days: list[tuple[str, list[CalendarEvent]]], tz: str) -> str:
    lines = []
    for day, events in days:
        if events:
            lines.append(f"{format_day_name(day)}: " + " | ".join(_event_line(ev, tz) for ev in events))
        else:
            lines.append(f"{format_day_name(day)}: frei")
    return "\n".join(lines)


def created_all_day(title: str, start_date: str, last_date: str) -> str:
    span = format_day_month(start_date)
    if last_date != start_date:
        span += f" bis {format_day_month(last_date)}"
    return f"Klar, hab ich eingetragen! {title}, {span} (ganztägig)"


def created_event(title: str, day: str, event: CalendarEvent, tz: str) -> str:
    return (
        f"Klar, hab ich eingetragen! {title}, {format_day_name(day)} "
        f"{format_time(event.start, tz)}-{format_time(event.end, tz)}"
    )


def recurrence_pattern(recurrence: Recurrence) -> str:
    if recurrence.frequency == "DAILY":
        return "täglich"
    if recurrence.frequency == "WEEKLY":
        day = _WEEKDAYS.get(recurrence.day_of_week or "")
        return f"jeden {day}" if day else "wöchentlich"
    return "monatlich"


def created_recurring(
    title: str,
    recurrence: Recurrence,
    event: CalendarEvent,
    next_dates: list[str],
    tz: str,
) -> str:
    message = (
        f"{title} {recurrence_pattern(recurrence)} um {format_time(event.start, tz)} erstellt. "
        f"Nächste: {', '.join(next_dates)}"
    )
    if recurrence.end_date:
        message += f" Endet: {format_dd_mm_yyyy(recurrence.end_date)}"
    return message


def conflict_prompt(conflicts: list[CalendarEvent], tz: str) -> str:
    listed = ", ".join(f"{ev.summary} um {format_time(ev.start, tz)} Uhr" for ev in conflicts)
    return f"Achtung: Überschneidung mit {listed}. Trotzdem erstellen?"


def candidate_list(candidates: list[CalendarEvent], tz: str) -> str:
    options = []
    for index, ev in enumerate(candidates, start=1):
        when = "ganztägig" if ev.is_all_day else format_time(ev.start, tz)
        options.append(f"{index}) {ev.summary} {when}")
    return "Welchen meinst du?\n" + "\n".join(options)


def updated(event: CalendarEvent, tz: str) -> str:
    day = event.local_date(tz)
    if event.is_all_day:
        return f"Geändert: {event.summary} jetzt {format_day_name(day)} ganztägig"
    return f"Geändert: {event.summary} jetzt {format_day_name(day)} {format_time(event.start, tz)}"


def deleted(event: CalendarEvent, tz: str) -> str:
    return f"Erledigt! {event.summary} am {format_day_name(event.local_date(tz))} wurde gelöscht."


def deleted_all_future(instance_date: str) -> str:
    return f"Alle zukünftigen Termine ab {format_dd_mm(parse_date(instance_date))}. gelöscht."
