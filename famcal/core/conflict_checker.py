"""
Family Calendar Assistant — Event Conflict Checker.

Overlap rule used before creating an event: an existing *timed* event on
the same local day conflicts when its interval strictly overlaps the new
one. All-day events never conflict (product decision).
"""

from __future__ import annotations

import logging
from datetime import datetime

from famcal.ports.calendar_port import CalendarEvent

logger = logging.getLogger(__name__)


def overlaps(
    existing_start: datetime,
    existing_end: datetime,
    new_start: datetime,
    new_end: datetime,
) -> bool:
    """Strict half-open overlap; touching intervals do not conflict."""
    return existing_start < new_end and existing_end > new_start


def filter_conflicts(
    events: list[CalendarEvent],
    new_start: datetime,
    new_end: datetime,
    tz: str,
    exclude_event_id: str | None = None,
) -> list[CalendarEvent]:
    """Return the timed events from *events* that overlap [new_start, new_end).

    Args:
        events: Events of the new event's local day (series expanded).
        new_start: Aware start of the proposed event.
        new_end: Aware end of the proposed event.
        tz: Calendar timezone used to read the existing events.
        exclude_event_id: Event ID to skip (self-exclusion on reschedule).
    """
    conflicting: list[CalendarEvent] = []
    for ev in events:
        if ev.is_all_day:
            continue
        if exclude_event_id and ev.id == exclude_event_id:
            continue
        if overlaps(ev.start_datetime(tz), ev.end_datetime(tz), new_start, new_end):
            conflicting.append(ev)

    if conflicting:
        logger.info(
            "Found %d conflict(s) for %s–%s",
            len(conflicting), new_start.isoformat(), new_end.isoformat(),
        )
    return conflicting
