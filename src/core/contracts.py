# contract windows for subscription products
import calendar
from datetime import datetime
from typing import Dict, Optional

from utils.errors import ValidationFailed

# duration key -> length in months, None means no end date
CONTRACT_DURATIONS: Dict[str, Optional[int]] = {
    "1-month": 1,
    "3-months": 3,
    "6-months": 6,
    "1-year": 12,
    "lifetime": None,
}

DURATION_LABELS = {
    "1-month": "1 month",
    "3-months": "3 months",
    "6-months": "6 months",
    "1-year": "1 year",
    "lifetime": "Lifetime",
}


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's end."""
    month_idx = moment.month - 1 + months
    year = moment.year + month_idx // 12
    month = month_idx % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def contract_end(start: datetime, duration: str) -> Optional[datetime]:
    if duration not in CONTRACT_DURATIONS:
        raise ValidationFailed(f"Unknown contract duration: {duration!r}")
    months = CONTRACT_DURATIONS[duration]
    if months is None:
        return None
    return add_months(start, months)
