"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from typing import Union

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def add_months(anchor: date, months: int) -> date:
    """Calendar month arithmetic from a fixed anchor; Jan 31 + 1 -> Feb 28/29"""
    return anchor + relativedelta(months=months)
