"""
Time-window status rules.

Statuses are derived from the wall clock every time they are needed and
are never written back to storage.
"""

from __future__ import annotations

import dataclasses
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Literal, TypeVar

from utils.config import EXPIRING_SOON_DAYS

EventStatus = Literal["upcoming", "ongoing", "completed"]
SubscriptionStatus = Literal["active", "expiring_soon", "expired"]

_ONE_DAY = timedelta(days=1)

E = TypeVar("E")


def classify_event(now: datetime, start: datetime, end: datetime) -> EventStatus:
    # both ends of the window count as ongoing
    if now < start:
        return "upcoming"
    if now <= end:
        return "ongoing"
    return "completed"


def days_remaining(now: datetime, end: datetime) -> int:
    """Whole days left until ``end``, rounded up (negative once past)."""
    return math.ceil((end - now) / _ONE_DAY)


def classify_days(days: int, soon_days: int = EXPIRING_SOON_DAYS) -> SubscriptionStatus:
    if days < 0:
        return "expired"
    if days <= soon_days:
        return "expiring_soon"
    return "active"


def classify_subscription(
    now: datetime, end: datetime, soon_days: int = EXPIRING_SOON_DAYS
) -> SubscriptionStatus:
    return classify_days(days_remaining(now, end), soon_days)


def classify(
    now: datetime, start: datetime, end: datetime, subscription: bool = False
) -> str:
    """
    Single entry point for both windows.

    Events are classified against ``[start, end]``; subscriptions only look
    at the days left until ``end``.
    """
    if subscription:
        return classify_subscription(now, end)
    return classify_event(now, start, end)


def with_event_statuses(events: Iterable[E], now: datetime) -> List[E]:
    """Return a new list of events with ``status`` recomputed for ``now``."""
    return [
        dataclasses.replace(
            ev, status=classify_event(now, ev.start_time, ev.end_time)
        )
        for ev in events
    ]
