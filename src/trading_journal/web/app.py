from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, tzinfo
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from trading_journal.auth import (
    Identity,
    InvalidTokenError,
    TokenExpiredError,
    decode_token,
    hash_password,
    issue_token,
    verify_password,
)
from trading_journal.config.app_config import AppConfig, load_app_config
from trading_journal.metrics.aggregate import aggregate, aggregate_by_weekday
from trading_journal.metrics.calendar import Granularity, bucket_key
from trading_journal.metrics.summary import filter_period, summarize
from trading_journal.models import TradeKind, TradeRecord
from trading_journal.storage import sqlite_reader, sqlite_store
from trading_journal.storage.sqlite_store import DuplicateUserError

APP_NAME = "Trading Journal"
APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)

_INITIALIZED_DBS: set[Path] = set()


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return load_app_config()


def get_now(config: AppConfig = Depends(get_config)) -> datetime:
    tz = config.reporting.resolve_tz()
    if tz is None:
        return datetime.now().astimezone()
    return datetime.now(tz)


def get_db(config: AppConfig = Depends(get_config)) -> Iterator[sqlite3.Connection]:
    db_path = config.app.db_path
    conn = sqlite_store.connect(db_path)
    try:
        if db_path not in _INITIALIZED_DBS:
            sqlite_store.init_db(conn)
            _INITIALIZED_DBS.add(db_path)
        yield conn
    finally:
        conn.close()


def current_identity(request: Request, config: AppConfig = Depends(get_config)) -> Identity:
    header = request.headers.get("Authorization")
    if not header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token provided")
    parts = header.split(" ")
    token = parts[1].strip() if len(parts) > 1 else ""
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token format")
    try:
        return decode_token(config.auth, token)
    except TokenExpiredError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except InvalidTokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")


class TradeCreate(BaseModel):
    amount: float = Field(..., ge=0, allow_inf_nan=False)
    type: TradeKind
    target: str = ""
    notes: str | None = None
    date: datetime | None = None


class TradeUpdate(BaseModel):
    amount: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    type: TradeKind | None = None
    target: str | None = None
    notes: str | None = None
    date: datetime | None = None


class RegisterRequest(BaseModel):
    username: str | None = None
    password: str | None = None
    email: str | None = None
    name: str | None = None


class LoginRequest(BaseModel):
    username: str | None = None
    password: str | None = None


class ProfileUpdate(BaseModel):
    name: str | None = None
    email: str | None = None


class PasswordChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(default="", alias="currentPassword")
    new_password: str = Field(default="", alias="newPassword")


_startup_config = get_config()

app = FastAPI(title=APP_NAME, version=APP_VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_startup_config.cors.allowed_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=86400,
)

if _startup_config.auth.uses_dev_secret:
    logger.warning("JWT_SECRET is not set; using the development signing secret.")


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/api/health")
def health_check() -> dict[str, str]:
    return {"status": "healthy", "app": APP_NAME, "version": APP_VERSION}


@app.post("/api/register")
def register(
    body: RegisterRequest,
    config: AppConfig = Depends(get_config),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    username = (body.username or "").strip()
    if not username or not body.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and password required")

    password_hash = hash_password(body.password, rounds=config.auth.bcrypt_rounds)
    try:
        user = sqlite_store.insert_user(
            conn,
            username=username,
            password_hash=password_hash,
            email=_blank_to_none(body.email),
            name=body.name,
        )
    except DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    token = issue_token(config.auth, user_id=user.id, username=user.username)
    return {"token": token, "username": user.username, "email": user.email, "name": user.name}


@app.post("/api/login")
def login(
    body: LoginRequest,
    config: AppConfig = Depends(get_config),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    username = (body.username or "").strip()
    if not username or not body.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and password required")

    user = sqlite_reader.find_user_by_username(conn, username)
    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = issue_token(config.auth, user_id=user.id, username=user.username)
    return {"token": token, "username": user.username}


@app.put("/api/settings/profile")
def update_profile(
    body: ProfileUpdate,
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, str]:
    try:
        updated = sqlite_store.update_profile(conn, identity.user_id, name=body.name, email=body.email)
    except DuplicateUserError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is already in use")
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {"message": "Profile updated successfully"}


@app.put("/api/settings/password")
def update_password(
    body: PasswordChange,
    config: AppConfig = Depends(get_config),
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, str]:
    user = sqlite_reader.load_user(conn, identity.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    if not body.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New password required")

    new_hash = hash_password(body.new_password, rounds=config.auth.bcrypt_rounds)
    sqlite_store.update_password_hash(conn, user.id, new_hash)
    return {"message": "Password updated successfully"}


@app.get("/api/trades")
def list_trades(
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    records = sqlite_reader.load_trades(conn, owner_id=identity.user_id)
    return [_trade_payload(record) for record in records]


@app.post("/api/trades")
def create_trade(
    body: TradeCreate,
    config: AppConfig = Depends(get_config),
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    timestamp = _aware(body.date, config.reporting.resolve_tz()) if body.date else now
    record = sqlite_store.insert_trade(
        conn,
        owner_id=identity.user_id,
        amount=body.amount,
        kind=body.type,
        target=body.target,
        timestamp=timestamp,
        notes=body.notes,
    )
    return _trade_payload(record)


@app.put("/api/trades/{trade_id}")
def edit_trade(
    trade_id: str,
    body: TradeUpdate,
    config: AppConfig = Depends(get_config),
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    changes = _trade_changes(body, config.reporting.resolve_tz())
    record = sqlite_store.update_trade(conn, trade_id, owner_id=identity.user_id, changes=changes)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade not found.")
    return _trade_payload(record)


@app.delete("/api/trades/{trade_id}")
def remove_trade(
    trade_id: str,
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, bool]:
    if not sqlite_store.delete_trade(conn, trade_id, owner_id=identity.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade not found.")
    return {"success": True}


@app.get("/api/summary")
def summary_api(
    timeframe: str = "daily",
    config: AppConfig = Depends(get_config),
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    granularity = _granularity(timeframe)
    tz = config.reporting.resolve_tz()
    records = sqlite_reader.load_trades(conn, owner_id=identity.user_id)
    period_records = filter_period(records, granularity, now, tz=tz)
    return {
        "timeframe": granularity.value,
        "period": bucket_key(now, granularity),
        "stats": summarize(period_records).to_dict(),
        "weekday": [bucket.to_dict() for bucket in aggregate_by_weekday(period_records, tz=tz)],
    }


@app.get("/api/performance")
def performance_api(
    timeframe: str = "daily",
    config: AppConfig = Depends(get_config),
    identity: Identity = Depends(current_identity),
    conn: sqlite3.Connection = Depends(get_db),
    now: datetime = Depends(get_now),
) -> dict[str, Any]:
    granularity = _granularity(timeframe)
    records = sqlite_reader.load_trades(conn, owner_id=identity.user_id)
    buckets = aggregate(records, granularity, now, tz=config.reporting.resolve_tz())
    return {
        "timeframe": granularity.value,
        "buckets": [bucket.to_dict() for bucket in buckets],
    }


def _granularity(value: str) -> Granularity:
    try:
        return Granularity.parse(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="timeframe must be one of daily, weekly, monthly, yearly",
        )


def _trade_changes(body: TradeUpdate, tz: tzinfo | None) -> dict[str, Any]:
    provided = body.model_dump(exclude_unset=True)
    changes: dict[str, Any] = {}
    if provided.get("amount") is not None:
        changes["amount"] = provided["amount"]
    if provided.get("type") is not None:
        changes["kind"] = provided["type"]
    if provided.get("target") is not None:
        changes["target"] = provided["target"]
    if provided.get("date") is not None:
        changes["timestamp"] = _aware(provided["date"], tz)
    if "notes" in provided:
        changes["notes"] = provided["notes"]
    return changes


def _trade_payload(record: TradeRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "amount": record.amount,
        "type": record.kind.value,
        "target": record.target,
        "notes": record.notes,
        "date": record.timestamp.isoformat(),
    }


def _aware(value: datetime, tz: tzinfo | None) -> datetime:
    if value.tzinfo is not None:
        return value
    if tz is None:
        return value.astimezone()
    return value.replace(tzinfo=tz)


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def main() -> None:
    import uvicorn

    from trading_journal.logs import configure_logging

    app_config = load_app_config()
    configure_logging(app_config.app.log_level)
    uvicorn.run(
        "trading_journal.web.app:app",
        host=app_config.app.host,
        port=app_config.app.port,
        reload=app_config.app.reload,
    )


if __name__ == "__main__":
    main()
