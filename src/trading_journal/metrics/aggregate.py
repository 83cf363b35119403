from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Callable, Iterable

from trading_journal.metrics.calendar import Granularity, bucket_key, localize, weekday_index
from trading_journal.metrics.windows import BucketSpec, canonical_buckets, weekday_buckets
from trading_journal.models import TradeRecord

_NUMBER_PREFIX = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class BucketTotals:
    label: str
    key: str
    start: date
    target: float
    profit: float
    loss: float
    net: float
    win_count: int
    total_count: int

    @property
    def win_rate(self) -> float:
        if not self.total_count:
            return 0.0
        return self.win_count / self.total_count * 100.0

    def to_dict(self) -> dict[str, float | int | str]:
        return {
            "name": self.label,
            "key": self.key,
            "start": self.start.isoformat(),
            "target": self.target,
            "profit": self.profit,
            "loss": self.loss,
            "net": self.net,
            "win_count": self.win_count,
            "total_count": self.total_count,
            "win_rate": self.win_rate,
        }


@dataclass
class _Accumulator:
    target: float = 0.0
    profit: float = 0.0
    loss: float = 0.0
    net: float = 0.0
    win_count: int = 0
    total_count: int = 0

    def add(self, record: TradeRecord) -> None:
        self.target += parse_target(record.target)
        if record.is_profit:
            self.profit += record.amount
            self.win_count += 1
        else:
            self.loss += record.amount
        self.net += record.signed_amount
        self.total_count += 1


def aggregate(
    records: Iterable[TradeRecord],
    granularity: Granularity | str,
    now: datetime,
    *,
    tz: tzinfo | None = None,
) -> list[BucketTotals]:
    resolved = Granularity.parse(granularity)
    totals = _fold(records, lambda ts: bucket_key(ts, resolved), tz)
    return _reindex(canonical_buckets(resolved, localize(now, tz)), totals)


def aggregate_by_weekday(
    records: Iterable[TradeRecord],
    *,
    tz: tzinfo | None = None,
) -> list[BucketTotals]:
    totals = _fold(records, lambda ts: str(weekday_index(ts)), tz)
    return _reindex(weekday_buckets(), totals)


def parse_target(value: object) -> float:
    """Leading numeric prefix of the target text ("120 TP" -> 120.0), else 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        match = _NUMBER_PREFIX.match(str(value).strip())
        if not match:
            return 0.0
        parsed = float(match.group(0))
    if not math.isfinite(parsed):
        return 0.0
    return parsed


def _fold(
    records: Iterable[TradeRecord],
    key_for: Callable[[datetime], str],
    tz: tzinfo | None,
) -> dict[str, _Accumulator]:
    buckets: dict[str, _Accumulator] = {}
    for record in records:
        key = key_for(localize(record.timestamp, tz))
        buckets.setdefault(key, _Accumulator()).add(record)
    return buckets


def _reindex(buckets: list[BucketSpec], totals: dict[str, _Accumulator]) -> list[BucketTotals]:
    rows: list[BucketTotals] = []
    for bucket in buckets:
        acc = totals.get(bucket.key) or _Accumulator()
        rows.append(
            BucketTotals(
                label=bucket.label,
                key=bucket.key,
                start=bucket.start,
                target=acc.target,
                profit=acc.profit,
                loss=acc.loss,
                net=acc.net,
                win_count=acc.win_count,
                total_count=acc.total_count,
            )
        )
    return rows
