from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from trading_journal.models import TradeKind, TradeRecord, User
from trading_journal.storage import sqlite_reader

logger = logging.getLogger(__name__)

_EDITABLE_TRADE_FIELDS = ("amount", "kind", "target", "timestamp", "notes")


class DuplicateUserError(ValueError):
    def __init__(self, field: str) -> None:
        super().__init__(f"{field.capitalize()} already exists")
        self.field = field


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            username TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            email TEXT UNIQUE,
            name TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS trades (
            trade_id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
            amount REAL NOT NULL CHECK (amount >= 0),
            kind TEXT NOT NULL CHECK (kind IN ('profit', 'loss')),
            target TEXT NOT NULL DEFAULT '',
            timestamp TEXT NOT NULL,
            notes TEXT
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_trades_owner_time ON trades (owner_id, timestamp)")
    conn.commit()


def insert_trade(
    conn: sqlite3.Connection,
    *,
    owner_id: str,
    amount: float,
    kind: TradeKind,
    target: str,
    timestamp: datetime,
    notes: str | None = None,
) -> TradeRecord:
    record = TradeRecord(
        id=_new_id(),
        owner_id=owner_id,
        amount=float(amount),
        kind=TradeKind(kind),
        target=target,
        timestamp=_to_utc(timestamp),
        notes=notes,
    )
    conn.execute(
        """
        INSERT INTO trades (trade_id, owner_id, amount, kind, target, timestamp, notes)
        VALUES (:trade_id, :owner_id, :amount, :kind, :target, :timestamp, :notes)
        """,
        {
            "trade_id": record.id,
            "owner_id": record.owner_id,
            "amount": record.amount,
            "kind": record.kind.value,
            "target": record.target,
            "timestamp": record.timestamp.isoformat(),
            "notes": record.notes,
        },
    )
    conn.commit()
    return record


def update_trade(
    conn: sqlite3.Connection,
    trade_id: str,
    *,
    owner_id: str,
    changes: Mapping[str, Any],
) -> TradeRecord | None:
    """Apply ``changes`` to a trade the owner holds; None when no such trade exists."""
    unknown = set(changes) - set(_EDITABLE_TRADE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    assignments: list[str] = []
    params: dict[str, Any] = {"trade_id": trade_id, "owner_id": owner_id}
    for field in _EDITABLE_TRADE_FIELDS:
        if field not in changes:
            continue
        assignments.append(f"{field} = :{field}")
        params[field] = _column_value(field, changes[field])

    if assignments:
        cursor = conn.execute(
            f"UPDATE trades SET {', '.join(assignments)} WHERE trade_id = :trade_id AND owner_id = :owner_id",
            params,
        )
        conn.commit()
        if cursor.rowcount == 0:
            return None
    return sqlite_reader.load_trade(conn, trade_id, owner_id=owner_id)


def delete_trade(conn: sqlite3.Connection, trade_id: str, *, owner_id: str) -> bool:
    cursor = conn.execute(
        "DELETE FROM trades WHERE trade_id = ? AND owner_id = ?",
        (trade_id, owner_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def insert_user(
    conn: sqlite3.Connection,
    *,
    username: str,
    password_hash: str,
    email: str | None = None,
    name: str | None = None,
    now: datetime | None = None,
) -> User:
    if sqlite_reader.find_user_by_username(conn, username) is not None:
        raise DuplicateUserError("username")
    if email and sqlite_reader.find_user_by_email(conn, email) is not None:
        raise DuplicateUserError("email")

    created_at = _to_utc(now or datetime.now(timezone.utc))
    user = User(
        id=_new_id(),
        username=username,
        password_hash=password_hash,
        email=email or None,
        name=name,
        created_at=created_at,
        updated_at=created_at,
    )
    try:
        conn.execute(
            """
            INSERT INTO users (user_id, username, password_hash, email, name, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user.id,
                user.username,
                user.password_hash,
                user.email,
                user.name,
                user.created_at.isoformat(),
                user.updated_at.isoformat(),
            ),
        )
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        field = "email" if "email" in str(exc) else "username"
        raise DuplicateUserError(field) from exc
    conn.commit()
    logger.info("Registered user %s", user.id)
    return user


def update_profile(
    conn: sqlite3.Connection,
    user_id: str,
    *,
    name: str | None = None,
    email: str | None = None,
    now: datetime | None = None,
) -> bool:
    if email:
        existing = sqlite_reader.find_user_by_email(conn, email)
        if existing is not None and existing.id != user_id:
            raise DuplicateUserError("email")

    assignments = ["updated_at = :updated_at"]
    params: dict[str, Any] = {
        "user_id": user_id,
        "updated_at": _to_utc(now or datetime.now(timezone.utc)).isoformat(),
    }
    if name is not None:
        assignments.append("name = :name")
        params["name"] = name
    if email is not None:
        assignments.append("email = :email")
        params["email"] = email or None

    cursor = conn.execute(
        f"UPDATE users SET {', '.join(assignments)} WHERE user_id = :user_id",
        params,
    )
    conn.commit()
    return cursor.rowcount > 0


def update_password_hash(
    conn: sqlite3.Connection,
    user_id: str,
    password_hash: str,
    *,
    now: datetime | None = None,
) -> bool:
    cursor = conn.execute(
        "UPDATE users SET password_hash = ?, updated_at = ? WHERE user_id = ?",
        (password_hash, _to_utc(now or datetime.now(timezone.utc)).isoformat(), user_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def _column_value(field: str, value: Any) -> Any:
    if field == "kind":
        return TradeKind(value).value
    if field == "timestamp":
        return _to_utc(value).isoformat()
    if field == "amount":
        return float(value)
    return value


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex
