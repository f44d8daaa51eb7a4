from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime


def local_now() -> datetime:
    """Current wall-clock time in the configured zone, stored naive."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def to_local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    tz = ZoneInfo(get_settings().timezone)
    return moment.astimezone(tz).replace(tzinfo=None)


def month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def add_months(moment: datetime, months: int) -> datetime:
    index = moment.month - 1 + months
    year = moment.year + index // 12
    month = index % 12 + 1
    day = min(moment.day, _days_in_month(year, month))
    return moment.replace(year=year, month=month, day=day)


def month_end(moment: datetime) -> datetime:
    return add_months(month_start(moment), 1)


def year_start(moment: datetime) -> datetime:
    return moment.replace(
        month=1, day=1, hour=0, minute=0, second=0, microsecond=0
    )


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        following = date(year + 1, 1, 1)
    else:
        following = date(year, month + 1, 1)
    return (following - date(year, month, 1)).days


def resolve_flow_period(period: str, *, now: Optional[datetime] = None) -> Period:
    """Window used by the income-vs-expense series.

    ``week`` is the trailing seven days, ``month`` and ``year`` start at the
    calendar boundary. All windows end at ``now``.
    """
    now = now or local_now()
    if period == "week":
        return Period("week", now - timedelta(days=7), now)
    if period == "month":
        return Period("month", month_start(now), now)
    if period == "year":
        return Period("year", year_start(now), now)
    raise ValueError(f"Unsupported period: {period}")


def resolve_range(period: str, *, now: Optional[datetime] = None) -> Period:
    now = now or local_now()
    if period == "7days":
        start = now - timedelta(days=7)
    elif period == "1month":
        start = month_start(now)
    elif period == "3months":
        start = add_months(now, -3)
    elif period == "6months":
        start = add_months(now, -6)
    elif period == "1year":
        start = year_start(now)
    else:
        raise ValueError(f"Unsupported period: {period}")
    return Period(period, start, now)


def parse_bound(value: Optional[str], *, end: bool = False) -> Optional[datetime]:
    """Parse a window bound from a query string.

    A bare ``YYYY-MM-DD`` covers the whole day: as a start it means midnight,
    as an end it means the last instant of that day. Anything longer is read
    as an ISO-8601 timestamp and converted to local time.
    """
    if value is None or not value.strip():
        return None
    value = value.strip()
    if len(value) == 10:
        day = date.fromisoformat(value)
        return datetime.combine(day, time.max if end else time.min)
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return to_local_naive(datetime.fromisoformat(value))
