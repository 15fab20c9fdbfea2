from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Values from a local .env never override the real environment
load_dotenv(override=False)


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tasks.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - JWT_SECRET: HMAC secret used to sign bearer tokens
    - JWT_EXPIRES_DAYS: token lifetime in days (default: 7)
    - BCRYPT_ROUNDS: bcrypt cost factor (default: 10)
    - APP_TIMEZONE: IANA zone used for calendar math (month filters, reminder window). Default 'UTC'
    - ENABLE_REMINDERS: 'true' to run the daily reminder sweep in the background (default: true)
    - REMINDER_HOUR / REMINDER_MINUTE: wall-clock trigger time in APP_TIMEZONE (default: 09:00)
    - REMINDER_RUN_ON_STARTUP: also run one sweep when the app starts (default: false)
    - SMTP_HOST, SMTP_PORT, SMTP_USERNAME, SMTP_PASSWORD, SMTP_USE_TLS, SMTP_TIMEOUT_SECONDS:
      outbound mail transport. Without SMTP_HOST emails are only logged.
    - EMAIL_FROM: sender address for outgoing mail
    - CLIENT_URL: base URL of the web client, used in password reset links
    - RESET_TOKEN_TTL_MINUTES: lifetime of password reset tokens (default: 60)
    - LOG_LEVEL: root log level (default: INFO)
    - LOG_FILE: optional path of a log file
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    jwt_secret: str
    jwt_expires_days: int
    bcrypt_rounds: int
    timezone: str
    enable_reminders: bool
    reminder_hour: int
    reminder_minute: int
    reminder_run_on_startup: bool
    smtp_host: Optional[str]
    smtp_port: int
    smtp_username: Optional[str]
    smtp_password: Optional[str]
    smtp_use_tls: bool
    smtp_timeout_seconds: float
    email_from: str
    client_url: str
    reset_token_ttl_minutes: int
    log_level: str
    log_file: Optional[str]

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


_DEV_JWT_SECRET = "dev-only-jwt-secret-change-me-0123456789abcdef"


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: str, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    if not (minimum <= parsed <= maximum):
        return default
    return parsed


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        # Star will be handled in main via allow_origins=["*"]
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


def _parse_timezone(value: str) -> str:
    name = value.strip()
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return "UTC"
    return name


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/tasks.db").strip(),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        jwt_secret=_get_env("JWT_SECRET", _DEV_JWT_SECRET),
        jwt_expires_days=_parse_int(_get_env("JWT_EXPIRES_DAYS", "7"), 7, 1, 365),
        bcrypt_rounds=_parse_int(_get_env("BCRYPT_ROUNDS", "10"), 10, 4, 31),
        timezone=_parse_timezone(_get_env("APP_TIMEZONE", "UTC")),
        enable_reminders=_parse_bool(_get_env("ENABLE_REMINDERS", "true"), True),
        reminder_hour=_parse_int(_get_env("REMINDER_HOUR", "9"), 9, 0, 23),
        reminder_minute=_parse_int(_get_env("REMINDER_MINUTE", "0"), 0, 0, 59),
        reminder_run_on_startup=_parse_bool(_get_env("REMINDER_RUN_ON_STARTUP", "false"), False),
        smtp_host=_optional_env("SMTP_HOST"),
        smtp_port=_parse_int(_get_env("SMTP_PORT", "587"), 587, 1, 65535),
        smtp_username=_optional_env("SMTP_USERNAME"),
        smtp_password=_optional_env("SMTP_PASSWORD"),
        smtp_use_tls=_parse_bool(_get_env("SMTP_USE_TLS", "true"), True),
        smtp_timeout_seconds=_parse_float(_get_env("SMTP_TIMEOUT_SECONDS", "5"), 5.0),
        email_from=_get_env("EMAIL_FROM", "no-reply@task-manager.local").strip(),
        client_url=_get_env("CLIENT_URL", "http://localhost:3000").strip().rstrip("/"),
        reset_token_ttl_minutes=_parse_int(_get_env("RESET_TOKEN_TTL_MINUTES", "60"), 60, 1, 24 * 60),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        log_file=_optional_env("LOG_FILE"),
    )


def uses_default_jwt_secret(settings: Settings) -> bool:
    return settings.jwt_secret == _DEV_JWT_SECRET
