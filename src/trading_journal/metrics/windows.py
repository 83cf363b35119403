from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from trading_journal.metrics.calendar import (
    WEEKDAY_LABELS,
    Granularity,
    bucket_key,
    iso_week,
    month_key,
    week_key,
    week_start,
)

WINDOW_SIZES: dict[Granularity, int] = {
    Granularity.DAY: 7,
    Granularity.WEEK: 8,
    Granularity.MONTH: 12,
    Granularity.YEAR: 5,
}


@dataclass(frozen=True)
class BucketSpec:
    key: str
    label: str
    start: date


def canonical_buckets(granularity: Granularity | str, now: date | datetime) -> list[BucketSpec]:
    """Trailing window of bucket descriptors ending at the bucket holding ``now``, oldest first.

    The length depends only on the granularity (see ``WINDOW_SIZES``), so charts
    keep a stable x-axis whatever data exists.
    """
    resolved = Granularity.parse(granularity)
    today = now.date() if isinstance(now, datetime) else now
    size = WINDOW_SIZES[resolved]

    if resolved is Granularity.DAY:
        return [_day_bucket(today - timedelta(days=offset)) for offset in range(size - 1, -1, -1)]
    if resolved is Granularity.WEEK:
        monday = week_start(today)
        return [_week_bucket(monday - timedelta(weeks=offset)) for offset in range(size - 1, -1, -1)]
    if resolved is Granularity.MONTH:
        return [_month_bucket(*_shift_month(today.year, today.month, -offset)) for offset in range(size - 1, -1, -1)]
    return [_year_bucket(today.year - offset) for offset in range(size - 1, -1, -1)]


def weekday_buckets() -> list[BucketSpec]:
    # Not anchored to a date; the start of 2024-01-01 (a Monday) only orders the entries.
    anchor = date(2024, 1, 1)
    return [
        BucketSpec(key=str(idx), label=label, start=anchor + timedelta(days=idx))
        for idx, label in enumerate(WEEKDAY_LABELS)
    ]


def _day_bucket(day: date) -> BucketSpec:
    return BucketSpec(key=bucket_key(day, Granularity.DAY), label=WEEKDAY_LABELS[day.weekday()], start=day)


def _week_bucket(monday: date) -> BucketSpec:
    key = week_key(*iso_week(monday))
    return BucketSpec(key=key, label=key, start=monday)


def _month_bucket(year: int, month: int) -> BucketSpec:
    key = month_key(year, month)
    return BucketSpec(key=key, label=key, start=date(year, month, 1))


def _year_bucket(year: int) -> BucketSpec:
    return BucketSpec(key=str(year), label=str(year), start=date(year, 1, 1))


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1
