"""
Family Calendar Assistant — Date & Time Utilities.

Pure helpers for converting between local wall-clock values
(YYYY-MM-DD + HH:MM + IANA timezone name) and absolute instants, plus the
German formatting used in replies.

Instants are always built with a ZoneInfo tzinfo (never a bare UTC offset)
so recurring series stay correct across daylight-saving transitions.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

# Locale is fixed to German, like the reply templates.
_DAY_NAMES = [
    "Montag", "Dienstag", "Mittwoch", "Donnerstag", "Freitag", "Samstag", "Sonntag",
]
_DAY_SHORT = ["Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"]
_MONTH_SHORT = [
    "Jan", "Feb", "März", "Apr", "Mai", "Juni",
    "Juli", "Aug", "Sept", "Okt", "Nov", "Dez",
]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string."""
    return datetime.strptime(value, DATE_FORMAT).date()


def parse_time(value: str) -> time:
    """Parse an HH:MM (24h) string."""
    return datetime.strptime(value, TIME_FORMAT).time()


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 datetime as returned by the calendar backend."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def time_to_minutes(value: str) -> int:
    """Convert 'HH:MM' to minutes since midnight."""
    parsed = parse_time(value)
    return parsed.hour * 60 + parsed.minute


def minutes_between(start_time: str, end_time: str) -> int:
    """Minute-of-day difference end - start.

    No midnight handling: an end before the start yields a negative number
    and callers decide what that means.
    """
    return time_to_minutes(end_time) - time_to_minutes(start_time)


# ---------------------------------------------------------------------------
# Local wall-clock ↔ instant
# ---------------------------------------------------------------------------


def now_in(tz: str) -> datetime:
    return datetime.now(ZoneInfo(tz))


def today(tz: str, now: datetime | None = None) -> str:
    """Today's date in *tz* as YYYY-MM-DD."""
    current = (now or now_in(tz)).astimezone(ZoneInfo(tz))
    return current.strftime(DATE_FORMAT)


def add_days(value: str, days: int) -> str:
    return (parse_date(value) + timedelta(days=days)).strftime(DATE_FORMAT)


def resolve_implicit_date(event_time: str, tz: str, now: datetime | None = None) -> str:
    """Pick the date for a time given without a date.

    Today if *event_time* is still ahead of now in *tz*, otherwise tomorrow.
    """
    current = (now or now_in(tz)).astimezone(ZoneInfo(tz))
    candidate = combine(current.strftime(DATE_FORMAT), event_time, tz)
    if current < candidate:
        return current.strftime(DATE_FORMAT)
    return (current.date() + timedelta(days=1)).strftime(DATE_FORMAT)


def combine(day: str, event_time: str, tz: str) -> datetime:
    """Build an aware instant from local date + time in the named timezone."""
    return datetime.combine(parse_date(day), parse_time(event_time), tzinfo=ZoneInfo(tz))


def add_duration(instant: datetime, minutes: int) -> datetime:
    """Add elapsed minutes, keeping the instant's named timezone."""
    shifted = instant.astimezone(timezone.utc) + timedelta(minutes=minutes)
    return shifted.astimezone(instant.tzinfo)


def end_of_day_utc(day: str, tz: str) -> datetime:
    """Last second of *day* in *tz*, expressed in UTC."""
    local = datetime.combine(parse_date(day), time(23, 59, 59), tzinfo=ZoneInfo(tz))
    return local.astimezone(timezone.utc)


def date_range(start: str, end: str) -> list[str]:
    """Inclusive list of YYYY-MM-DD days from *start* to *end*."""
    first, last = parse_date(start), parse_date(end)
    days: list[str] = []
    current = first
    while current <= last:
        days.append(current.strftime(DATE_FORMAT))
        current += timedelta(days=1)
    return days


def local_date(iso_value: str, tz: str) -> str:
    """Local calendar day of an ISO datetime (or pass-through for a date)."""
    if "T" not in iso_value:
        return iso_value
    return parse_instant(iso_value).astimezone(ZoneInfo(tz)).strftime(DATE_FORMAT)


# ---------------------------------------------------------------------------
# German formatting
# ---------------------------------------------------------------------------


def format_time(iso_value: str, tz: str) -> str:
    """'2026-10-19T10:00:00+02:00' → '10:00' (in *tz*)."""
    return parse_instant(iso_value).astimezone(ZoneInfo(tz)).strftime(TIME_FORMAT)


def format_day_name(day: str) -> str:
    """'2026-10-19' → 'Montag'."""
    return _DAY_NAMES[parse_date(day).weekday()]


def format_short_date(day: str) -> str:
    """'2026-10-19' → 'Mo, 19. Okt'."""
    parsed = parse_date(day)
    return f"{_DAY_SHORT[parsed.weekday()]}, {parsed.day}. {_MONTH_SHORT[parsed.month - 1]}"


def format_day_month(day: str) -> str:
    """'2026-10-19' → '19. Okt'."""
    parsed = parse_date(day)
    return f"{parsed.day}. {_MONTH_SHORT[parsed.month - 1]}"


def format_dd_mm(value: datetime | date) -> str:
    return value.strftime("%d.%m")


def format_dd_mm_yyyy(day: str) -> str:
    return parse_date(day).strftime("%d.%m.%Y")
