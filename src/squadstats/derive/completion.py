"""Decide whether an event is finished and may count toward totals."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Optional


logger = logging.getLogger(__name__)


def parse_end_time(value: Optional[str]) -> Optional[time]:
    """Parse ``HH:MM`` or ``HH:MM:SS``; blank or unparsable values yield ``None``."""

    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    logger.warning("Ignoring unparsable event end time %r", value)
    return None


def is_eligible(
    event_date: date | datetime,
    end_time: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Return True once the event is chronologically finished.

    Past days are eligible; today's events need an end time that has already
    elapsed; future events and today's events without an end time are not.
    """

    now = now or datetime.now()
    if isinstance(event_date, datetime):
        event_date = event_date.date()
    today = now.date()
    if event_date < today:
        return True
    if event_date > today:
        return False
    finish = parse_end_time(end_time)
    if finish is None:
        return False
    naive_now = now.replace(tzinfo=None)
    return naive_now > datetime.combine(event_date, finish)
