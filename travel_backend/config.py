"""Configuration helpers for the credit ledger and its database."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
import math
import os


@dataclass(frozen=True)
class LedgerConfig:
    """Configuration for credit purchases, grants and identity resolution."""

    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    webhook_tolerance_seconds: int
    welcome_bonus_credits: int
    starting_credits: int
    credits_per_plan: int
    currency: str
    app_base_url: str
    admin_api_token: Optional[str]
    identity_jwt_key: Optional[str]
    identity_jwt_algorithms: Tuple[str, ...]
    identity_jwt_audience: Optional[str]
    identity_jwt_issuer: Optional[str]
    session_cookie_name: str


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the PostgreSQL connection pool."""

    host: str
    port: int
    dbname: str
    user: str
    password: str
    connect_timeout: int
    statement_timeout_ms: int
    pool_min: int
    pool_max: int
    auto_migrate: bool

    def connect_kwargs(self) -> dict:
        options = f"-c statement_timeout={self.statement_timeout_ms}" if self.statement_timeout_ms else None
        kwargs = dict(
            host=self.host,
            port=self.port,
            dbname=self.dbname,
            user=self.user,
            password=self.password,
            connect_timeout=self.connect_timeout,
        )
        if options:
            kwargs["options"] = options
        return kwargs


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int, name: str) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _to_non_negative_int(value: Optional[str], *, default: int, name: str) -> int:
    parsed = _to_int(value, default=default, name=name)
    if parsed < 0:
        raise ValueError(f"{name} must be non-negative")
    return parsed


def _parse_connect_timeout(raw_value: Optional[str]) -> int:
    if raw_value is None or raw_value.strip() == "":
        return 5
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def load_ledger_config(env: Optional[Mapping[str, str]] = None) -> LedgerConfig:
    """Load :class:`LedgerConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    algorithms = tuple(
        part.strip()
        for part in (env_mapping.get("IDENTITY_JWT_ALGORITHMS") or "HS256").split(",")
        if part.strip()
    ) or ("HS256",)

    return LedgerConfig(
        stripe_secret_key=_optional(env_mapping.get("STRIPE_SECRET_KEY")),
        stripe_webhook_secret=_optional(env_mapping.get("STRIPE_WEBHOOK_SECRET")),
        webhook_tolerance_seconds=_to_non_negative_int(
            env_mapping.get("STRIPE_WEBHOOK_TOLERANCE"), default=300, name="STRIPE_WEBHOOK_TOLERANCE"
        ),
        welcome_bonus_credits=_to_non_negative_int(
            env_mapping.get("WELCOME_BONUS_CREDITS"), default=100, name="WELCOME_BONUS_CREDITS"
        ),
        starting_credits=_to_non_negative_int(
            env_mapping.get("STARTING_CREDITS"), default=100, name="STARTING_CREDITS"
        ),
        credits_per_plan=max(
            1, _to_int(env_mapping.get("CREDITS_PER_PLAN"), default=100, name="CREDITS_PER_PLAN")
        ),
        currency=(env_mapping.get("CHECKOUT_CURRENCY") or "usd").strip().lower() or "usd",
        app_base_url=(env_mapping.get("APP_BASE_URL") or "http://localhost:3000").rstrip("/"),
        admin_api_token=_optional(env_mapping.get("ADMIN_API_TOKEN")),
        identity_jwt_key=_optional(env_mapping.get("IDENTITY_JWT_KEY")),
        identity_jwt_algorithms=algorithms,
        identity_jwt_audience=_optional(env_mapping.get("IDENTITY_JWT_AUDIENCE")),
        identity_jwt_issuer=_optional(env_mapping.get("IDENTITY_JWT_ISSUER")),
        session_cookie_name=(env_mapping.get("SESSION_COOKIE_NAME") or "__session").strip() or "__session",
    )


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    """Load :class:`DatabaseConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    pool_min = max(1, _to_int(env_mapping.get("DB_POOL_MIN"), default=1, name="DB_POOL_MIN"))
    pool_max = _to_int(env_mapping.get("DB_POOL_MAX"), default=10, name="DB_POOL_MAX")
    if pool_max < pool_min:
        raise ValueError("DB_POOL_MAX must be greater than or equal to DB_POOL_MIN")

    return DatabaseConfig(
        host=env_mapping.get("DB_HOST", "127.0.0.1"),
        port=_to_int(env_mapping.get("DB_PORT"), default=5432, name="DB_PORT"),
        dbname=env_mapping.get("DB_NAME", "travel_planner"),
        user=env_mapping.get("DB_USER", "travel_user"),
        password=env_mapping.get("DB_PASSWORD", "travel_pass"),
        connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT")),
        statement_timeout_ms=_to_non_negative_int(
            env_mapping.get("DB_STATEMENT_TIMEOUT_MS"), default=5000, name="DB_STATEMENT_TIMEOUT_MS"
        ),
        pool_min=pool_min,
        pool_max=pool_max,
        auto_migrate=_to_bool(env_mapping.get("DB_AUTO_MIGRATE"), default=False),
    )


__all__ = ["DatabaseConfig", "LedgerConfig", "load_database_config", "load_ledger_config"]
