# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Database configuration dataclass with environment loading.

DbConfig holds connection, pool and transcoding settings. It can be built
directly or from environment variables via DbConfig.from_env().

Usage:
    config = DbConfig(host="db.local", database="shop", retry_count=5)
    db = SqlDb(config=config)

    # or, from DB_HOST / DB_USER / DB_PASSWORD / DB_NAME / ...
    db = SqlDb(config=DbConfig.from_env())
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any


def _read_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value == "true":
        return True
    if value == "false":
        return False
    return default


def _read_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = env.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid number value for {key}: {value}") from None


def _read_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = env.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid number value for {key}: {value}") from None


@dataclass
class DbConfig:
    """Connection, pool, retry and transcoding settings.

    Attributes:
        url: Optional connection string ("mysql://...", "sqlite:/path").
            Parts present in the URL override host/port/user/password/database.
        host: MySQL server host.
        port: MySQL server port.
        user: Login user.
        password: Login password.
        database: Default schema. None leaves it unselected.
        connection_limit: Maximum pooled connections.
        queue_limit: Maximum callers waiting for a connection (0 = unlimited).
        wait_for_connections: If False, a full pool fails immediately.
        acquire_timeout: Seconds to wait for a free connection.
        retry_count: Acquisition retries on transient errors.
        retry_delay: Base delay in seconds for exponential backoff.
        idle_timeout: Seconds after which an idle pooled connection is destroyed.
        sweep_interval: Seconds between idle sweeps (0 disables the sweeper).
        cast_boolean: Return TINYINT(1) columns as bool.
        decimal_numbers: Return DECIMAL columns as float.
        parse_json: Parse JSON-looking strings when mapping rows to objects.
        utc_dates: Write and read datetimes as UTC.
        print_query: Log every generated statement at INFO level.
    """

    url: str | None = None
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str | None = None
    connection_limit: int = 10
    queue_limit: int = 0
    wait_for_connections: bool = True
    acquire_timeout: float = 10.0
    retry_count: int = 3
    retry_delay: float = 0.1
    idle_timeout: float = 60.0
    sweep_interval: float = 30.0
    cast_boolean: bool = False
    decimal_numbers: bool = False
    parse_json: bool = True
    utc_dates: bool = True
    print_query: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DbConfig:
        """Build a configuration from environment variables.

        Boolean variables accept only "true"/"false"; anything else keeps the
        default. Numeric variables that do not parse raise ValueError.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            url=env.get("DB_URL"),
            host=env.get("DB_HOST", defaults.host),
            port=_read_int(env, "DB_PORT", defaults.port),
            user=env.get("DB_USER", defaults.user),
            password=env.get("DB_PASSWORD", defaults.password),
            database=env.get("DB_NAME") or None,
            connection_limit=_read_int(env, "DB_CONNECTION_LIMIT", defaults.connection_limit),
            queue_limit=_read_int(env, "DB_QUEUE_LIMIT", defaults.queue_limit),
            wait_for_connections=_read_bool(
                env, "DB_WAIT_FOR_CONNECTIONS", defaults.wait_for_connections
            ),
            acquire_timeout=_read_float(env, "DB_ACQUIRE_TIMEOUT", defaults.acquire_timeout),
            retry_count=_read_int(env, "DB_RETRY_COUNT", defaults.retry_count),
            retry_delay=_read_float(env, "DB_RETRY_DELAY", defaults.retry_delay),
            idle_timeout=_read_float(env, "DB_IDLE_TIMEOUT", defaults.idle_timeout),
            sweep_interval=_read_float(env, "DB_SWEEP_INTERVAL", defaults.sweep_interval),
            cast_boolean=_read_bool(env, "CASTED_BOOLEAN", defaults.cast_boolean),
            decimal_numbers=_read_bool(env, "DB_DECIMAL_NUMBERS", defaults.decimal_numbers),
            parse_json=_read_bool(env, "DB_PARSE_JSON", defaults.parse_json),
            utc_dates=_read_bool(env, "DB_UTC_DATES", defaults.utc_dates),
            print_query=_read_bool(env, "DB_PRINT_QUERY", defaults.print_query),
        )

    def describe(self) -> dict[str, Any]:
        """Return settings for diagnostics with the password masked."""
        data = asdict(self)
        if data["password"]:
            data["password"] = "***"
        if data["url"] and "@" in data["url"]:
            scheme, _, rest = data["url"].partition("://")
            creds, _, host = rest.rpartition("@")
            user = creds.split(":", 1)[0]
            data["url"] = f"{scheme}://{user}:***@{host}"
        return data


__all__ = ["DbConfig"]
