"""
Environment-driven settings.

Everything here is read once at process start and frozen afterwards.
Database variables keep the names the deployment already provides
(`VITE_AZURE_DB_*`); missing ones disable the database without stopping
the HTTP service.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .errors import ConfigMissing

REQUIRED_DB_VARS = (
    "VITE_AZURE_DB_HOST",
    "VITE_AZURE_DB_NAME",
    "VITE_AZURE_DB_USER",
    "VITE_AZURE_DB_PASSWORD",
)

DEFAULT_PORT = 8080
DEFAULT_DB_PORT = 5432
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


def _env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, "").strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    delay_s: float = 5.0


@dataclass(frozen=True)
class ConnectionConfig:
    host: str
    database: str
    user: str
    password: str = field(repr=False)
    port: int = DEFAULT_DB_PORT
    # asyncpg sslmode; "require" encrypts without verifying the server certificate.
    ssl_mode: str = "require"
    pool_max: int = 20
    idle_timeout_s: float = 30.0
    connect_timeout_s: float = 30.0
    acquire_timeout_s: float = 30.0
    statement_timeout_s: float = 30.0
    keepalive_interval_s: float = 30.0
    tcp_keepalive_idle_s: int = 10

    def describe(self) -> str:
        """Host/db/user for log lines; never includes the password."""
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


def missing_db_vars() -> list[str]:
    return [name for name in REQUIRED_DB_VARS if not os.environ.get(name, "").strip()]


def load_connection_config() -> ConnectionConfig:
    """
    Build the connection config from env or raise ConfigMissing.
    """
    missing = missing_db_vars()
    if missing:
        raise ConfigMissing(missing)

    return ConnectionConfig(
        host=_env_str("VITE_AZURE_DB_HOST"),
        database=_env_str("VITE_AZURE_DB_NAME"),
        user=_env_str("VITE_AZURE_DB_USER"),
        password=os.environ["VITE_AZURE_DB_PASSWORD"],
        port=_env_int("DB_PORT", DEFAULT_DB_PORT),
        ssl_mode=_env_str("DB_SSL_MODE", "require"),
        pool_max=max(1, _env_int("DB_POOL_MAX", 20)),
        idle_timeout_s=_env_float("DB_IDLE_TIMEOUT_S", 30.0),
        connect_timeout_s=_env_float("DB_CONNECT_TIMEOUT_S", 30.0),
        acquire_timeout_s=_env_float("DB_ACQUIRE_TIMEOUT_S", 30.0),
        statement_timeout_s=_env_float("DB_STATEMENT_TIMEOUT_S", 30.0),
        keepalive_interval_s=_env_float("DB_KEEPALIVE_INTERVAL_S", 30.0),
        tcp_keepalive_idle_s=_env_int("DB_TCP_KEEPALIVE_IDLE_S", 10),
    )


@dataclass(frozen=True)
class ServiceSettings:
    port: int = DEFAULT_PORT
    host: str = "0.0.0.0"
    app_env: str = "development"
    static_dir: str = "dist"
    shutdown_timeout_s: float = 10.0
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS


def load_service_settings() -> ServiceSettings:
    raw_origins = _env_str("CORS_ORIGINS")
    origins = tuple(o.strip() for o in raw_origins.split(",") if o.strip()) if raw_origins else DEFAULT_CORS_ORIGINS
    return ServiceSettings(
        port=_env_int("PORT", DEFAULT_PORT),
        host=_env_str("HOST", "0.0.0.0"),
        app_env=_env_str("APP_ENV", "development"),
        static_dir=_env_str("STATIC_DIR", "dist"),
        shutdown_timeout_s=_env_float("DB_SHUTDOWN_TIMEOUT_S", 10.0),
        cors_origins=origins,
    )
