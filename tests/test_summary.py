from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import FIXED_NOW, make_record
from trading_journal.metrics.summary import filter_period, summarize


def test_summarize_win_rate_and_totals():
    records = [
        make_record(10, "profit", FIXED_NOW),
        make_record(20, "profit", FIXED_NOW),
        make_record(30, "profit", FIXED_NOW),
        make_record(12.5, "loss", FIXED_NOW),
    ]
    stats = summarize(records)
    assert stats.win_rate == 75.0
    assert stats.total_profit == 60
    assert stats.total_loss == 12.5
    assert stats.trade_count == 4
    assert stats.net_pnl == 47.5


def test_summarize_empty_is_all_zero():
    stats = summarize([])
    assert (stats.total_profit, stats.total_loss, stats.win_rate, stats.trade_count) == (0, 0, 0, 0)


def test_summary_dict_uses_dashboard_keys():
    payload = summarize([make_record(5, "profit", FIXED_NOW)]).to_dict()
    assert payload == {
        "totalProfit": 5.0,
        "totalLoss": 0.0,
        "winRate": 100.0,
        "tradeCount": 1,
        "netPnl": 5.0,
    }


@pytest.mark.parametrize(
    "granularity,inside,outside",
    [
        ("daily", datetime(2024, 3, 14, 0, 5, tzinfo=timezone.utc), datetime(2024, 3, 13, 23, 55, tzinfo=timezone.utc)),
        ("weekly", datetime(2024, 3, 11, 0, 0, tzinfo=timezone.utc), datetime(2024, 3, 10, 23, 0, tzinfo=timezone.utc)),
        ("monthly", datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc), datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)),
        ("yearly", datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc), datetime(2023, 12, 31, 23, 0, tzinfo=timezone.utc)),
    ],
)
def test_filter_period_keeps_current_bucket(granularity, inside, outside):
    kept = make_record(1, "profit", inside)
    dropped = make_record(1, "loss", outside)
    assert filter_period([kept, dropped], granularity, FIXED_NOW, tz=timezone.utc) == [kept]


def test_filter_period_uses_reporting_timezone():
    plus_nine = timezone(timedelta(hours=9))
    # 2024-03-13 20:00 UTC is already 2024-03-14 in UTC+9.
    record = make_record(3, "profit", datetime(2024, 3, 13, 20, 0, tzinfo=timezone.utc))
    assert filter_period([record], "daily", FIXED_NOW, tz=timezone.utc) == []
    assert filter_period([record], "daily", FIXED_NOW, tz=plus_nine) == [record]


def test_filter_then_summarize_ignores_other_periods():
    records = [
        make_record(50, "profit", datetime(2024, 3, 14, 9, 0, tzinfo=timezone.utc)),
        make_record(20, "loss", datetime(2024, 3, 14, 10, 0, tzinfo=timezone.utc)),
        make_record(999, "profit", datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)),
    ]
    stats = summarize(filter_period(records, "daily", FIXED_NOW, tz=timezone.utc))
    assert stats.trade_count == 2
    assert stats.win_rate == 50.0
    assert stats.net_pnl == 30
