# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite async adapter using aiosqlite with per-request connections.

Serves local development and the test suite. Value normalization is left
to the Transcoder, so rows come back exactly as SQLite stores them.
"""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

import aiosqlite

from ...errors import QueryError
from .base import DbAdapter, ExecResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ...config import DbConfig


class SqliteAdapter(DbAdapter):
    """SQLite async adapter with per-request connections.

    Uses ? placeholders natively. Each acquire() opens a new connection in
    autocommit mode, release() closes it. Transactions are opened with an
    explicit BEGIN.

    SQLite has no DEFAULT keyword inside VALUES, so insert builders omit
    auto-set columns instead.
    """

    name = "sqlite"
    placeholder = "?"
    quote_char = '"'
    supports_default_keyword = False
    unbounded_limit = "-1"

    def __init__(self, db_path: str, config: DbConfig | None = None):
        super().__init__(config)
        self.db_path = db_path or ":memory:"

    def describe(self) -> dict[str, Any]:
        return {"dialect": self.name, "path": self.db_path}

    def _wrap_error(self, exc: sqlite3.Error, sql: str | None, params: Any) -> QueryError:
        message = str(exc)
        return QueryError(
            message,
            sql=sql,
            params=params,
            code=getattr(exc, "sqlite_errorcode", None),
            state=getattr(exc, "sqlite_errorname", None),
            lock_contention="database is locked" in message,
        )

    async def acquire(self) -> aiosqlite.Connection:
        """Open new connection for request."""
        return await aiosqlite.connect(self.db_path, isolation_level=None)

    async def release(self, conn: aiosqlite.Connection) -> None:
        """Close connection."""
        await conn.close()

    async def destroy(self, conn: aiosqlite.Connection) -> None:
        """Close connection (nothing is pooled)."""
        await conn.close()

    async def ping(self, conn: aiosqlite.Connection) -> bool:
        try:
            await conn.execute("SELECT 1")
        except (sqlite3.Error, ValueError):
            # aiosqlite raises ValueError on a closed connection
            return False
        return True

    async def shutdown(self) -> None:
        """No-op for SQLite (no pool to close)."""
        pass

    async def begin(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.execute("BEGIN")
        except sqlite3.Error as e:
            raise self._wrap_error(e, "BEGIN", None) from e

    async def commit(self, conn: aiosqlite.Connection) -> None:
        """Commit transaction on connection."""
        if conn.in_transaction:
            try:
                await conn.execute("COMMIT")
            except sqlite3.Error as e:
                raise self._wrap_error(e, "COMMIT", None) from e

    async def rollback(self, conn: aiosqlite.Connection) -> None:
        """Rollback transaction on connection."""
        if conn.in_transaction:
            try:
                await conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                raise self._wrap_error(e, "ROLLBACK", None) from e

    async def execute(
        self, conn: aiosqlite.Connection, query: str, params: Sequence[Any] | None = None
    ) -> ExecResult:
        """Execute query, return affected row count and first insert id."""
        try:
            cursor = await conn.execute(query, tuple(params or ()))
        except sqlite3.Error as e:
            raise self._wrap_error(e, query, params) from e
        affected = max(cursor.rowcount, 0)
        insert_id = 0
        if affected and cursor.lastrowid and query.lstrip()[:6].upper() == "INSERT":
            # lastrowid is the LAST row of a multi-row insert
            insert_id = cursor.lastrowid - affected + 1
        await cursor.close()
        return ExecResult(affected, insert_id)

    async def fetch_all(
        self, conn: aiosqlite.Connection, query: str, params: Sequence[Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        try:
            async with conn.execute(query, tuple(params or ())) as cursor:
                rows = await cursor.fetchall()
                cols = [c[0] for c in cursor.description]
        except sqlite3.Error as e:
            raise self._wrap_error(e, query, params) from e
        return [dict(zip(cols, row, strict=True)) for row in rows]

    # -------------------------------------------------------------------------
    # JSON operators (json1 extension)
    # -------------------------------------------------------------------------

    def json_contains(self, column: str, values: Sequence[Any]) -> tuple[str, list[Any]]:
        distinct = list(dict.fromkeys(values))
        sql = (
            f"(SELECT COUNT(DISTINCT json_each.value) FROM json_each({column}) "
            f"WHERE json_each.value IN ({self.placeholders(len(distinct))})) = {len(distinct)}"
        )
        return sql, distinct

    def json_overlaps(self, column: str, values: Sequence[Any]) -> tuple[str, list[Any]]:
        sql = (
            f"EXISTS (SELECT 1 FROM json_each({column}) "
            f"WHERE json_each.value IN ({self.placeholders(len(values))}))"
        )
        return sql, list(values)

    def json_path_like(self, column: str, path: str, pattern: str) -> tuple[str, list[Any]]:
        return f"CAST(json_extract({column}, ?) AS TEXT) LIKE ?", [path, pattern]
