"""Decide whether an OSM ``opening_hours`` value is open at lunch."""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Callable, Optional

from opening_hours import OpeningHours

logger = logging.getLogger(__name__)

LUNCH_TIME = time(12, 0, 1)

OpeningHoursGate = Callable[[str], bool]


def lunch_reference_time(now: Optional[datetime] = None) -> datetime:
    """Return today's lunch moment, moved to Monday when today is a weekend day."""

    now = now or datetime.now()
    at_lunch = datetime.combine(now.date(), LUNCH_TIME)
    weekday = at_lunch.weekday()
    if weekday == 5:
        return at_lunch + timedelta(days=2)
    if weekday == 6:
        return at_lunch + timedelta(days=1)
    return at_lunch


def is_open_at_lunch(pattern: str, *, now: Optional[datetime] = None) -> bool:
    """Return True if *pattern* is open at the lunch reference time.

    Patterns that fail to parse count as closed.
    """

    try:
        hours = OpeningHours(pattern)
        return bool(hours.is_open(lunch_reference_time(now)))
    except Exception as exc:
        logger.debug("Could not evaluate opening hours %r: %s", pattern, exc)
        return False


def gate_at(now: datetime) -> OpeningHoursGate:
    """Return a gate pinned to the lunch moment of *now*."""

    def gate(pattern: str) -> bool:
        return is_open_at_lunch(pattern, now=now)

    return gate
