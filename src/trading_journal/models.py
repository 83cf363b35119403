from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TradeKind(str, Enum):
    PROFIT = "profit"
    LOSS = "loss"


@dataclass
class TradeRecord:
    id: str
    owner_id: str
    amount: float
    kind: TradeKind
    target: str
    timestamp: datetime
    notes: str | None = None

    @property
    def is_profit(self) -> bool:
        return self.kind is TradeKind.PROFIT

    @property
    def signed_amount(self) -> float:
        return self.amount if self.is_profit else -self.amount


@dataclass
class User:
    id: str
    username: str
    password_hash: str
    email: str | None
    name: str | None
    created_at: datetime
    updated_at: datetime
