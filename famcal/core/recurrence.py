"""
Family Calendar Assistant — Recurrence Rules.

RRULE formatting for the calendar backend, forward-only weekday
correction for weekly series, occurrence previews and series trimming.
Only DAILY / WEEKLY / MONTHLY rules are supported.
"""

from __future__ import annotations

import re
from datetime import datetime
from itertools import islice

from dateutil.rrule import rrulestr

from famcal.core.dates import (
    add_days,
    combine,
    end_of_day_utc,
    parse_date,
)

FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY")
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"
_UNTIL_RE = re.compile(r"UNTIL=[^;]+")
_COUNT_RE = re.compile(r";?COUNT=\d+")


def format_until(day: str, tz: str) -> str:
    """End of *day* in *tz*, as an RFC 5545 UTC UNTIL value."""
    return end_of_day_utc(day, tz).strftime(_UNTIL_FORMAT)


def format_rrule(
    frequency: str,
    day_of_week: str | None = None,
    end_date: str | None = None,
    tz: str = "UTC",
) -> str:
    """Build an RRULE line, e.g. 'RRULE:FREQ=WEEKLY;BYDAY=TU;UNTIL=20261231T225959Z'.

    *end_date* is the last valid local day; it becomes the end of that day
    converted to UTC. Encoding the bare date would cut the last occurrence
    for timezones west of UTC.
    """
    if frequency not in FREQUENCIES:
        raise ValueError(f"Unsupported frequency: {frequency!r}")

    parts = [f"FREQ={frequency}"]
    if frequency == "WEEKLY" and day_of_week:
        parts.append(f"BYDAY={day_of_week}")
    if end_date:
        parts.append(f"UNTIL={format_until(end_date, tz)}")
    return "RRULE:" + ";".join(parts)


def weekly_start_date(day: str, day_of_week: str | None) -> str:
    """First occurrence of a weekly series on *day_of_week*.

    Rounds forward to the next matching weekday, never back; a date that
    already falls on that weekday is kept.
    """
    if not day_of_week or day_of_week not in WEEKDAY_CODES:
        return day
    target = WEEKDAY_CODES.index(day_of_week)
    current = parse_date(day).weekday()
    return add_days(day, (target - current) % 7)


def next_occurrences(
    start_date: str,
    start_time: str,
    frequency: str,
    count: int,
    tz: str,
    day_of_week: str | None = None,
    end_date: str | None = None,
) -> list[datetime]:
    """First *count* occurrences of the series, at most up to *end_date*.

    Expands the same RRULE that is sent to the calendar, so months without
    the start day are skipped exactly as the backend skips them.
    """
    rule = format_rrule(frequency, day_of_week, end_date, tz)
    start = combine(start_date, start_time, tz)
    return list(islice(rrulestr(rule, dtstart=start), count))


def trim_rrule(rule: str, cutover_date: str, tz: str) -> str:
    """Rewrite *rule* so the series ends on the eve of *cutover_date*.

    Replaces an existing UNTIL (or appends one); every other component is
    kept. A COUNT limit is dropped because RFC 5545 forbids COUNT and
    UNTIL together.
    """
    until = f"UNTIL={format_until(add_days(cutover_date, -1), tz)}"
    if _UNTIL_RE.search(rule):
        return _UNTIL_RE.sub(until, rule)
    rule = _COUNT_RE.sub("", rule)
    return f"{rule};{until}"
