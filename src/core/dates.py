"""Date helpers for billing periods."""
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(value: datetime, months: int = 1) -> datetime:
    """Calendar-month arithmetic; Jan 31 + 1 month is Feb 28/29."""
    return value + relativedelta(months=months)
