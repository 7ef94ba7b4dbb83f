# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Connection/transaction handler with acquisition retry and guaranteed release.

run() lifecycle:
    acquire (retry with exponential backoff on PoolExhaustionError and
    ConnectionLostError, ping before hand-out) → BEGIN (if use_transaction)
    → callback(conn) → COMMIT, or ROLLBACK on failure (if rollback_if_error)
    → release (always; dead connections are destroyed instead).

Usage:
    handler = Handler(adapter)

    async def work(conn):
        await adapter.execute(conn, "UPDATE t SET n = n + 1 WHERE id = %s", [1])
        return await adapter.fetch_all(conn, "SELECT n FROM t WHERE id = %s", [1])

    rows = await handler.run(work)

    async with handler.transaction() as conn:
        await repo.insert([...], connection=conn)
        await repo.update([...], connection=conn)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from ..errors import ConnectionLostError, PoolError, PoolExhaustionError, QueryError
from .types import HandlerOptions

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from .adapters.base import DbAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (PoolExhaustionError, ConnectionLostError)


class Handler:
    """Acquires connections from one adapter and runs callbacks on them.

    Args:
        adapter: Driver adapter owning the pool.
        retry_count: Acquisition retries after the first attempt.
            Defaults to adapter.config.retry_count.
        retry_delay: Base backoff delay in seconds, doubled on every retry.
            Defaults to adapter.config.retry_delay.
    """

    def __init__(
        self,
        adapter: DbAdapter,
        retry_count: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        self.adapter = adapter
        config = adapter.config
        self.retry_count = config.retry_count if retry_count is None else retry_count
        self.retry_delay = config.retry_delay if retry_delay is None else retry_delay

    # -------------------------------------------------------------------------
    # Acquisition
    # -------------------------------------------------------------------------

    async def acquire(self) -> Any:
        """Acquire a live connection.

        Transient errors and connections failing the ping are retried up to
        retry_count times with delay retry_delay * 2**attempt.

        Raises:
            PoolExhaustionError, ConnectionLostError: Retries exhausted.
            PoolError: Non-transient acquisition failure (original chained).
        """
        last_error: PoolError | None = None
        for attempt in range(self.retry_count + 1):
            if attempt:
                delay = self.retry_delay * 2 ** (attempt - 1)
                logger.debug(
                    "Retrying connection acquisition in %.3fs (attempt %d/%d): %s",
                    delay,
                    attempt + 1,
                    self.retry_count + 1,
                    last_error,
                )
                await asyncio.sleep(delay)
            try:
                conn = await self.adapter.acquire()
            except TRANSIENT_ERRORS as e:
                last_error = e
                continue
            except Exception as e:
                self._log_acquire_failure(e)
                raise PoolError() from e

            if await self.adapter.ping(conn):
                return conn
            logger.warning("Discarding connection that failed the liveness check")
            await self.adapter.destroy(conn)
            last_error = ConnectionLostError("Connection failed liveness check")

        error = last_error or PoolError()
        self._log_acquire_failure(error)
        raise error

    def _log_acquire_failure(self, error: BaseException) -> None:
        logger.error("Failed to get database connection: %s", error)
        logger.error("Connection config: %s", self.adapter.describe())
        logger.error("Pool status: %s", self.adapter.pool_status())
        cause = error.__cause__ or error
        code = getattr(cause, "code", None)
        if code is None and cause.args and isinstance(cause.args[0], int):
            code = cause.args[0]
        logger.error(
            "Driver error: code=%s message=%s state=%s",
            code,
            getattr(cause, "message", None) or str(cause),
            getattr(cause, "state", None) or getattr(cause, "sqlstate", None),
        )

    async def _dispose(self, conn: Any, error: BaseException | None) -> None:
        if isinstance(error, ConnectionLostError):
            await self.adapter.destroy(conn)
        else:
            await self.adapter.release(conn)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def run(
        self,
        callback: Callable[[Any], Awaitable[T]],
        options: HandlerOptions | None = None,
    ) -> T | None:
        """Run callback on a fresh connection.

        Returns:
            The callback result, or None when the operation failed and
            options.throw_error is False.
        """
        options = options or HandlerOptions()
        try:
            conn = await self.acquire()
        except PoolError:
            if options.throw_error:
                raise
            return None

        failure: BaseException | None = None
        try:
            if options.use_transaction:
                await self.adapter.begin(conn)
            result = await callback(conn)
            if options.use_transaction:
                await self.adapter.commit(conn)
            return result
        except Exception as e:
            failure = e
            if options.use_transaction and options.rollback_if_error:
                await self._rollback_quietly(conn, e)
            if options.print_sql_error:
                log_query_error(e)
            if options.throw_error:
                raise
            return None
        finally:
            await self._dispose(conn, failure)

    async def _rollback_quietly(self, conn: Any, cause: BaseException) -> None:
        """Rollback without masking the original error."""
        if isinstance(cause, ConnectionLostError):
            return
        try:
            await self.adapter.rollback(conn)
        except Exception as e:
            logger.error("Rollback failed after %s: %s", type(cause).__name__, e)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Any]:
        """Context manager yielding a connection inside a transaction.

        COMMIT on normal exit, ROLLBACK when the block raises. The connection
        is always released. Pass it as ``connection=`` to repository calls
        so they join the transaction.
        """
        conn = await self.acquire()
        failure: BaseException | None = None
        try:
            await self.adapter.begin(conn)
            yield conn
            await self.adapter.commit(conn)
        except Exception as e:
            failure = e
            await self._rollback_quietly(conn, e)
            raise
        finally:
            await self._dispose(conn, failure)


def log_statement(sql: str, params: Any, print_query: bool = False) -> None:
    """Log a generated statement, at INFO when print_query is set."""
    level = logging.INFO if print_query else logging.DEBUG
    if logger.isEnabledFor(level):
        logger.log(level, "Query: %s | params=%r", sql, list(params or ()))


def log_query_error(error: BaseException) -> None:
    """Log a failed operation with its SQL diagnostics.

    Deadlocks and lock wait timeouts are expected under contention and are
    logged at WARNING, everything else at ERROR.
    """
    if isinstance(error, QueryError):
        level = logging.WARNING if error.lock_contention else logging.ERROR
        logger.log(
            level,
            "SQL error: %s\nSQL: %s\nMessage: %s\nState: %s\nError number: %s",
            error,
            error.sql,
            error.message,
            error.state,
            error.code,
        )
        return
    logger.error("Database operation failed: %s: %s", type(error).__name__, error)


__all__ = ["Handler", "TRANSIENT_ERRORS", "log_statement", "log_query_error"]
