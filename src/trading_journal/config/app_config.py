from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("config/app.toml")
CONFIG_ENV_VAR = "TRADING_JOURNAL_CONFIG"
DEV_JWT_SECRET = "secret"


@dataclass(frozen=True)
class AppSettings:
    db_path: Path
    host: str
    port: int
    reload: bool
    env_path: Path
    log_level: str


@dataclass(frozen=True)
class AuthSettings:
    jwt_secret: str
    algorithm: str
    token_ttl_days: int
    bcrypt_rounds: int

    @property
    def uses_dev_secret(self) -> bool:
        return self.jwt_secret == DEV_JWT_SECRET


@dataclass(frozen=True)
class CorsSettings:
    allowed_origins: list[str]


@dataclass(frozen=True)
class ReportingSettings:
    timezone: str

    def resolve_tz(self) -> tzinfo | None:
        """None means the server's local timezone."""
        name = self.timezone.strip()
        if not name or name.lower() == "local":
            return None
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown reporting timezone: {self.timezone}") from exc


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    auth: AuthSettings
    cors: CorsSettings
    reporting: ReportingSettings


def load_dotenv(path: Path) -> dict[str, str]:
    env: dict[str, str] = {}
    if not path.exists():
        return env

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip().strip("\"").strip("'")
    return env


def load_app_config(path: Path | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    config_path = path or Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    app_raw = _section(raw, "app")
    auth_raw = _section(raw, "auth")
    cors_raw = _section(raw, "cors")
    reporting_raw = _section(raw, "reporting")

    env_path = Path(app_raw.get("env_path", ".env"))
    merged_env: dict[str, str] = dict(load_dotenv(env_path))
    merged_env.update(os.environ if env is None else env)

    app = AppSettings(
        db_path=Path(merged_env.get("TRADING_JOURNAL_DB") or app_raw.get("db_path", "data/trading_journal.sqlite")),
        host=str(app_raw.get("host", "127.0.0.1")),
        port=_int_or_default(merged_env.get("PORT"), int(app_raw.get("port", 4000))),
        reload=bool(app_raw.get("reload", False)),
        env_path=env_path,
        log_level=str(merged_env.get("LOG_LEVEL") or app_raw.get("log_level", "INFO")).upper(),
    )

    auth = AuthSettings(
        jwt_secret=str(merged_env.get("JWT_SECRET") or DEV_JWT_SECRET),
        algorithm=str(auth_raw.get("algorithm", "HS256")),
        token_ttl_days=int(auth_raw.get("token_ttl_days", 7)),
        bcrypt_rounds=int(auth_raw.get("bcrypt_rounds", 10)),
    )

    cors = CorsSettings(
        allowed_origins=_str_list(cors_raw.get("allowed_origins")) or _default_allowed_origins(),
    )

    reporting = ReportingSettings(
        timezone=str(reporting_raw.get("timezone", "local")).strip() or "local",
    )
    reporting.resolve_tz()

    return AppConfig(app=app, auth=auth, cors=cors, reporting=reporting)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _int_or_default(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def _default_allowed_origins() -> list[str]:
    return ["http://localhost:5173"]
