from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from trading_journal.config.app_config import AppConfig, ReportingSettings, load_app_config
from trading_journal.models import TradeKind, TradeRecord

FIXED_NOW = datetime(2024, 3, 14, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


def make_record(
    amount: float,
    kind: TradeKind | str,
    timestamp: datetime,
    *,
    target: str = "0",
    owner_id: str = "owner-1",
    notes: str | None = None,
) -> TradeRecord:
    return TradeRecord(
        id=f"t{next(_ids)}",
        owner_id=owner_id,
        amount=amount,
        kind=TradeKind(kind),
        target=target,
        timestamp=timestamp,
        notes=notes,
    )


@pytest.fixture
def record_factory() -> Callable[..., TradeRecord]:
    return make_record


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    config = load_app_config(
        tmp_path / "app.toml",
        env={
            "TRADING_JOURNAL_DB": str(tmp_path / "journal.sqlite"),
            "JWT_SECRET": "test-secret",
        },
    )
    return replace(
        config,
        auth=replace(config.auth, bcrypt_rounds=4),
        reporting=ReportingSettings(timezone="UTC"),
    )
