from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from trading_journal.models import TradeKind, TradeRecord, User


def connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


def load_trades(conn: sqlite3.Connection, *, owner_id: str) -> list[TradeRecord]:
    rows = conn.execute(
        "SELECT * FROM trades WHERE owner_id = ? ORDER BY timestamp DESC, trade_id",
        (owner_id,),
    ).fetchall()
    return [_trade_from_row(row) for row in rows]


def load_trade(conn: sqlite3.Connection, trade_id: str, *, owner_id: str) -> TradeRecord | None:
    row = conn.execute(
        "SELECT * FROM trades WHERE trade_id = ? AND owner_id = ?",
        (trade_id, owner_id),
    ).fetchone()
    if row is None:
        return None
    return _trade_from_row(row)


def load_user(conn: sqlite3.Connection, user_id: str) -> User | None:
    return _fetch_user(conn, "user_id", user_id)


def find_user_by_username(conn: sqlite3.Connection, username: str) -> User | None:
    return _fetch_user(conn, "username", username)


def find_user_by_email(conn: sqlite3.Connection, email: str) -> User | None:
    return _fetch_user(conn, "email", email)


def _fetch_user(conn: sqlite3.Connection, column: str, value: str) -> User | None:
    row = conn.execute(f"SELECT * FROM users WHERE {column} = ?", (value,)).fetchone()
    if row is None:
        return None
    return User(
        id=row["user_id"],
        username=row["username"],
        password_hash=row["password_hash"],
        email=row["email"],
        name=row["name"],
        created_at=_parse_iso(row["created_at"]),
        updated_at=_parse_iso(row["updated_at"]),
    )


def _trade_from_row(row: sqlite3.Row) -> TradeRecord:
    return TradeRecord(
        id=row["trade_id"],
        owner_id=row["owner_id"],
        amount=float(row["amount"]),
        kind=TradeKind(row["kind"]),
        target=row["target"] or "",
        timestamp=_parse_iso(row["timestamp"]),
        notes=row["notes"],
    )


def _parse_iso(value: str | None) -> datetime:
    if value is None:
        raise ValueError("Missing timestamp")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
