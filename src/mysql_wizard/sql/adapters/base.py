# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Base adapter class for async database drivers with dialect SQL helpers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, NamedTuple

from ...config import DbConfig

if TYPE_CHECKING:
    from collections.abc import Sequence


class ExecResult(NamedTuple):
    """Outcome of a write statement.

    insert_id is the id assigned to the FIRST row of a multi-row INSERT,
    0 when the statement generated none.
    """

    affected_rows: int
    insert_id: int = 0


class DbAdapter(ABC):
    """Abstract base class for async database adapters.

    Provides the driver boundary used by the Handler and the query builders:
    - Connection management (acquire, release, destroy, ping, shutdown)
    - Transaction control (begin, commit, rollback on a connection)
    - Statement execution (execute, fetch_all) with positional parameters
    - Dialect helpers (identifier quoting, placeholders, JSON operators)

    Connection model:
    - acquire(): Returns a connection (from pool or a new handle)
    - release(conn): Returns connection to pool or closes it
    - destroy(conn): Closes a dead connection and drops it from the pool
    - shutdown(): Closes the pool (application shutdown only)

    Driver errors raised while running statements are wrapped into
    QueryError (or ConnectionLostError when the socket died).
    """

    name: str = "generic"
    placeholder: str = "?"
    quote_char: str = '"'
    supports_default_keyword: bool = True
    unbounded_limit: str = "18446744073709551615"

    def __init__(self, config: DbConfig | None = None) -> None:
        self.config = config or DbConfig()

    @abstractmethod
    async def acquire(self) -> Any:
        """Acquire a connection.

        Raises:
            PoolExhaustionError: No connection available in time.
            ConnectionLostError: The server dropped the connection.
        """
        ...

    @abstractmethod
    async def release(self, conn: Any) -> None:
        """Release a healthy connection."""
        ...

    @abstractmethod
    async def destroy(self, conn: Any) -> None:
        """Close a connection and make sure the pool never hands it out again."""
        ...

    @abstractmethod
    async def ping(self, conn: Any) -> bool:
        """Return True if the connection answers, False if it is dead."""
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Close connection pool (application shutdown)."""
        ...

    # -------------------------------------------------------------------------
    # Connection-bound operations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def begin(self, conn: Any) -> None:
        """Start a transaction on connection."""
        ...

    @abstractmethod
    async def commit(self, conn: Any) -> None:
        """Commit transaction on connection."""
        ...

    @abstractmethod
    async def rollback(self, conn: Any) -> None:
        """Rollback transaction on connection."""
        ...

    @abstractmethod
    async def execute(
        self, conn: Any, query: str, params: Sequence[Any] | None = None
    ) -> ExecResult:
        """Execute a write statement, return affected rows and first insert id."""
        ...

    @abstractmethod
    async def fetch_all(
        self, conn: Any, query: str, params: Sequence[Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute a query, return all rows as dicts keyed by column label."""
        ...

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def pool_status(self) -> dict[str, Any]:
        """Return a snapshot of pool occupancy (empty for unpooled adapters)."""
        return {}

    def describe(self) -> dict[str, Any]:
        """Return connection settings for diagnostics, password masked."""
        return {"dialect": self.name, **self.config.describe()}

    # -------------------------------------------------------------------------
    # SQL Helpers
    # -------------------------------------------------------------------------

    def _sql_name(self, name: str) -> str:
        """Return quoted SQL identifier for column/table name."""
        q = self.quote_char
        return f"{q}{name.replace(q, q + q)}{q}"

    def _placeholder(self) -> str:
        """Return placeholder for one positional parameter."""
        return self.placeholder

    def placeholders(self, count: int) -> str:
        """Return ``count`` comma separated placeholders."""
        return ", ".join(self.placeholder for _ in range(count))

    def qualified_name(self, table: str, column: str) -> str:
        """Return ``table.column`` with both parts quoted."""
        return f"{self._sql_name(table)}.{self._sql_name(column)}"

    @abstractmethod
    def json_contains(self, column: str, values: Sequence[Any]) -> tuple[str, list[Any]]:
        """SQL testing that JSON array ``column`` contains every value."""
        ...

    @abstractmethod
    def json_overlaps(self, column: str, values: Sequence[Any]) -> tuple[str, list[Any]]:
        """SQL testing that JSON array ``column`` shares at least one value."""
        ...

    @abstractmethod
    def json_path_like(self, column: str, path: str, pattern: str) -> tuple[str, list[Any]]:
        """SQL matching the text at JSON ``path`` of ``column`` against a LIKE pattern."""
        ...
