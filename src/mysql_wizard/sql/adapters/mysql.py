# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""MySQL/MariaDB async adapter using aiomysql with connection pooling.

Uses connection-per-call model: acquire() gets a connection from the pool,
release() returns it. The pool runs in autocommit mode; transactions are
opened explicitly with begin().

Pool is initialized lazily on first acquire(). A background task sweeps
idle-too-long or already closed connections out of the free list.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import aiomysql
import pymysql
from pymysql.constants import CLIENT, FIELD_TYPE

from ...errors import ConnectionLostError, PoolExhaustionError, QueryError
from .base import DbAdapter, ExecResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ...config import DbConfig

logger = logging.getLogger(__name__)

# Server gone away, lost connection during query, lost connection to
# server, connection closed by administrator.
CONNECTION_LOST_CODES = frozenset({2006, 2013, 2055, 4031})
# Lock wait timeout exceeded, deadlock found.
LOCK_CONTENTION_CODES = frozenset({1205, 1213})


def _error_code(exc: BaseException) -> int | None:
    if exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return None


def _error_message(exc: BaseException) -> str:
    if len(exc.args) > 1:
        return str(exc.args[1])
    return str(exc)


class MysqlAdapter(DbAdapter):
    """MySQL async adapter with connection pooling.

    Uses %s placeholders and backtick quoting. Connections come from an
    aiomysql pool sized by config.connection_limit.
    """

    name = "mysql"
    placeholder = "%s"
    quote_char = "`"
    supports_default_keyword = True
    unbounded_limit = "18446744073709551615"

    def __init__(self, config: DbConfig | None = None) -> None:
        super().__init__(config)
        self._pool: aiomysql.Pool | None = None
        self._pool_lock = asyncio.Lock()
        self._sweeper: asyncio.Task[None] | None = None
        self._waiting = 0

    # -------------------------------------------------------------------------
    # Pool lifecycle
    # -------------------------------------------------------------------------

    async def _ensure_pool(self) -> aiomysql.Pool:
        """Create the pool on first use."""
        if self._pool is not None:
            return self._pool
        async with self._pool_lock:
            if self._pool is None:
                cfg = self.config
                self._pool = await aiomysql.create_pool(
                    host=cfg.host,
                    port=cfg.port,
                    user=cfg.user,
                    password=cfg.password,
                    db=cfg.database,
                    minsize=0,
                    maxsize=cfg.connection_limit,
                    autocommit=True,
                    # UPDATE reports matched rows, not only changed ones
                    client_flag=CLIENT.FOUND_ROWS,
                    charset="utf8mb4",
                    connect_timeout=cfg.acquire_timeout,
                    # checked on acquire; the sweeper also closes idle ones in the background
                    pool_recycle=int(cfg.idle_timeout) if cfg.idle_timeout > 0 else -1,
                )
                logger.debug(
                    "Created MySQL pool for %s:%s (max %s connections)",
                    cfg.host,
                    cfg.port,
                    cfg.connection_limit,
                )
                if cfg.sweep_interval > 0:
                    self._sweeper = asyncio.create_task(self._sweep_loop())
        return self._pool

    async def acquire(self) -> aiomysql.Connection:
        """Acquire connection from pool, bounded by queue limit and timeout."""
        pool = await self._ensure_pool()
        cfg = self.config
        if pool.freesize == 0 and pool.size >= pool.maxsize:
            if not cfg.wait_for_connections:
                raise PoolExhaustionError("Connection pool is full")
            if cfg.queue_limit and self._waiting >= cfg.queue_limit:
                raise PoolExhaustionError(
                    f"Connection queue limit reached ({cfg.queue_limit} waiting)"
                )
        self._waiting += 1
        try:
            return await asyncio.wait_for(pool.acquire(), timeout=cfg.acquire_timeout)
        except asyncio.TimeoutError:
            raise PoolExhaustionError(
                f"No connection available after {cfg.acquire_timeout}s"
            ) from None
        except pymysql.err.OperationalError as e:
            if _error_code(e) in CONNECTION_LOST_CODES:
                raise ConnectionLostError(_error_message(e)) from e
            raise
        finally:
            self._waiting -= 1

    async def release(self, conn: aiomysql.Connection) -> None:
        """Return connection to pool."""
        if self._pool is not None:
            await self._pool.release(conn)

    async def destroy(self, conn: aiomysql.Connection) -> None:
        """Close connection; the pool drops closed connections on release."""
        conn.close()
        if self._pool is not None:
            await self._pool.release(conn)

    async def ping(self, conn: aiomysql.Connection) -> bool:
        """Liveness probe without reconnecting."""
        try:
            await conn.ping(reconnect=False)
        except (pymysql.err.MySQLError, OSError) as e:
            logger.debug("Ping failed: %s", e)
            return False
        return True

    async def shutdown(self) -> None:
        """Stop the sweeper and close the pool."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        if self._pool is not None:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval)
            self.sweep_idle()

    def sweep_idle(self, now: float | None = None) -> int:
        """Destroy free connections idle longer than idle_timeout or already closed.

        Returns:
            Number of connections destroyed.
        """
        pool = self._pool
        if pool is None:
            return 0
        if now is None:
            now = asyncio.get_running_loop().time()
        destroyed = 0
        # aiomysql keeps idle connections in Pool._free
        for conn in list(pool._free):
            if conn.closed or now - conn.last_usage > self.config.idle_timeout:
                pool._free.remove(conn)
                conn.close()
                destroyed += 1
        if destroyed:
            logger.debug("Idle sweep destroyed %d connection(s)", destroyed)
        return destroyed

    def pool_status(self) -> dict[str, Any]:
        """Return pool occupancy snapshot."""
        pool = self._pool
        if pool is None:
            return {"initialized": False, "waiting": self._waiting}
        return {
            "initialized": True,
            "size": pool.size,
            "free": pool.freesize,
            "used": pool.size - pool.freesize,
            "max": pool.maxsize,
            "waiting": self._waiting,
        }

    # -------------------------------------------------------------------------
    # Transactions and statements
    # -------------------------------------------------------------------------

    def _wrap_error(
        self, exc: pymysql.err.MySQLError, sql: str | None, params: Any
    ) -> Exception:
        code = _error_code(exc)
        message = _error_message(exc)
        if code in CONNECTION_LOST_CODES:
            return ConnectionLostError(message)
        return QueryError(
            message,
            sql=sql,
            params=params,
            code=code,
            state=getattr(exc, "sqlstate", None),
            lock_contention=code in LOCK_CONTENTION_CODES,
        )

    async def begin(self, conn: aiomysql.Connection) -> None:
        try:
            await conn.begin()
        except pymysql.err.MySQLError as e:
            raise self._wrap_error(e, "BEGIN", None) from e

    async def commit(self, conn: aiomysql.Connection) -> None:
        try:
            await conn.commit()
        except pymysql.err.MySQLError as e:
            raise self._wrap_error(e, "COMMIT", None) from e

    async def rollback(self, conn: aiomysql.Connection) -> None:
        try:
            await conn.rollback()
        except pymysql.err.MySQLError as e:
            raise self._wrap_error(e, "ROLLBACK", None) from e

    async def execute(
        self, conn: aiomysql.Connection, query: str, params: Sequence[Any] | None = None
    ) -> ExecResult:
        """Execute statement, return affected row count and first insert id."""
        async with conn.cursor() as cur:
            try:
                await cur.execute(query, tuple(params) if params else None)
            except pymysql.err.MySQLError as e:
                raise self._wrap_error(e, query, params) from e
            return ExecResult(cur.rowcount, cur.lastrowid or 0)

    async def fetch_all(
        self, conn: aiomysql.Connection, query: str, params: Sequence[Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        async with conn.cursor(aiomysql.DictCursor) as cur:
            try:
                await cur.execute(query, tuple(params) if params else None)
                rows = await cur.fetchall()
            except pymysql.err.MySQLError as e:
                raise self._wrap_error(e, query, params) from e
            return [self._normalize_row(row, cur.description) for row in rows]

    def _normalize_row(self, row: dict[str, Any], description: Any) -> dict[str, Any]:
        """Apply the boolean and decimal casting toggles."""
        cfg = self.config
        if not (cfg.cast_boolean or cfg.decimal_numbers):
            return row
        if cfg.cast_boolean and description:
            for desc in description:
                name, type_code, _, length = desc[0], desc[1], desc[2], desc[3]
                if type_code == FIELD_TYPE.TINY and length == 1 and row.get(name) is not None:
                    row[name] = row[name] == 1
        if cfg.decimal_numbers:
            for key, value in row.items():
                if isinstance(value, Decimal):
                    row[key] = float(value)
        return row

    # -------------------------------------------------------------------------
    # JSON operators
    # -------------------------------------------------------------------------

    def json_contains(self, column: str, values: Sequence[Any]) -> tuple[str, list[Any]]:
        return f"JSON_CONTAINS({column}, JSON_ARRAY({self.placeholders(len(values))}))", list(values)

    def json_overlaps(self, column: str, values: Sequence[Any]) -> tuple[str, list[Any]]:
        return f"JSON_OVERLAPS({column}, JSON_ARRAY({self.placeholders(len(values))}))", list(values)

    def json_path_like(self, column: str, path: str, pattern: str) -> tuple[str, list[Any]]:
        sql = f"CAST(JSON_UNQUOTE(JSON_EXTRACT({column}, %s)) AS CHAR) LIKE %s"
        return sql, [path, pattern]
