from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from enum import Enum

WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def parse(cls, value: Granularity | str) -> Granularity:
        """Accept a member, its value, or the dashboard timeframe alias (daily, weekly, ...)."""
        if isinstance(value, Granularity):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid granularity: {value!r}")
        normalized = value.strip().lower()
        resolved = _ALIASES.get(normalized)
        if resolved is None:
            raise ValueError(f"Invalid granularity: {value!r}")
        return resolved


_ALIASES = {
    "day": Granularity.DAY,
    "daily": Granularity.DAY,
    "week": Granularity.WEEK,
    "weekly": Granularity.WEEK,
    "month": Granularity.MONTH,
    "monthly": Granularity.MONTH,
    "year": Granularity.YEAR,
    "yearly": Granularity.YEAR,
}


def iso_week(value: date | datetime) -> tuple[int, int]:
    day = _as_date(value)
    # The Thursday of the week decides which year the week belongs to.
    thursday = day + timedelta(days=3 - day.weekday())
    year_start = date(thursday.year, 1, 1)
    week = (thursday - year_start).days // 7 + 1
    return thursday.year, week


def week_start(value: date | datetime) -> date:
    day = _as_date(value)
    return day - timedelta(days=day.weekday())


def week_key(iso_year: int, week: int) -> str:
    return f"{iso_year}-W{week:02d}"


def month_key(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def bucket_key(timestamp: date | datetime, granularity: Granularity | str) -> str:
    resolved = Granularity.parse(granularity)
    day = _as_date(timestamp)
    if resolved is Granularity.DAY:
        return day.isoformat()
    if resolved is Granularity.WEEK:
        return week_key(*iso_week(day))
    if resolved is Granularity.MONTH:
        return month_key(day.year, day.month)
    return str(day.year)


def weekday_index(timestamp: date | datetime) -> int:
    """Monday is 0, Sunday is 6, whatever the calendar date."""
    return _as_date(timestamp).weekday()


def weekday_label(timestamp: date | datetime) -> str:
    return WEEKDAY_LABELS[weekday_index(timestamp)]


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def localize(value: datetime, tz: tzinfo | None) -> datetime:
    """Convert an aware timestamp to ``tz`` (system local when None); naive timestamps are taken as already local."""
    if value.tzinfo is None:
        return value
    return value.astimezone(tz)
