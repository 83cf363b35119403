from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Iterable

from trading_journal.metrics.calendar import Granularity, bucket_key, localize
from trading_journal.models import TradeRecord


@dataclass(frozen=True)
class SummaryStats:
    total_profit: float
    total_loss: float
    win_rate: float
    trade_count: int

    @property
    def net_pnl(self) -> float:
        return self.total_profit - self.total_loss

    def to_dict(self) -> dict[str, float | int]:
        return {
            "totalProfit": self.total_profit,
            "totalLoss": self.total_loss,
            "winRate": self.win_rate,
            "tradeCount": self.trade_count,
            "netPnl": self.net_pnl,
        }


def summarize(records: Iterable[TradeRecord]) -> SummaryStats:
    record_list = list(records)
    total_profit = sum(record.amount for record in record_list if record.is_profit)
    total_loss = sum(record.amount for record in record_list if not record.is_profit)
    wins = sum(1 for record in record_list if record.is_profit)

    win_rate = 0.0
    if record_list:
        win_rate = 100.0 * wins / len(record_list)

    return SummaryStats(
        total_profit=float(total_profit),
        total_loss=float(total_loss),
        win_rate=win_rate,
        trade_count=len(record_list),
    )


def filter_period(
    records: Iterable[TradeRecord],
    granularity: Granularity | str,
    now: datetime,
    *,
    tz: tzinfo | None = None,
) -> list[TradeRecord]:
    """Records in the same day, ISO week, month or year as ``now``."""
    resolved = Granularity.parse(granularity)
    current = bucket_key(localize(now, tz), resolved)
    return [
        record
        for record in records
        if bucket_key(localize(record.timestamp, tz), resolved) == current
    ]
