from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from trading_journal.config.app_config import AuthSettings

logger = logging.getLogger(__name__)

BCRYPT_MAX_BYTES = 72


class AuthError(Exception):
    pass


class TokenExpiredError(AuthError):
    pass


class InvalidTokenError(AuthError):
    pass


@dataclass(frozen=True)
class Identity:
    user_id: str
    username: str
    expires_at: datetime


def hash_password(password: str, *, rounds: int = 10) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def issue_token(
    settings: AuthSettings,
    *,
    user_id: str,
    username: str,
    now: datetime | None = None,
) -> str:
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "username": username,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.token_ttl_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.algorithm)


def decode_token(settings: AuthSettings, token: str) -> Identity:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise InvalidTokenError(str(exc)) from exc

    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise InvalidTokenError("Token has no subject")
    return Identity(
        user_id=user_id,
        username=str(claims.get("username") or ""),
        expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc),
    )


def _password_bytes(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes; newer releases raise instead of truncating.
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]
