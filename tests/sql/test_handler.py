# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for sql.handler module - acquisition retry, transactions, release."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from mysql_wizard import DbConfig
from mysql_wizard.errors import ConnectionLostError, PoolError, PoolExhaustionError, QueryError
from mysql_wizard.sql import handler as handler_module
from mysql_wizard.sql.handler import Handler, log_query_error, log_statement
from mysql_wizard.sql.types import HandlerOptions

HANDLER_LOGGER = "mysql_wizard.sql.handler"


def make_adapter(**overrides):
    """Adapter double whose async methods are AsyncMocks."""
    adapter = MagicMock()
    adapter.config = DbConfig(**{"retry_count": 3, "retry_delay": 0.1, **overrides})
    for name in ("acquire", "release", "destroy", "ping", "begin", "commit", "rollback"):
        setattr(adapter, name, AsyncMock())
    adapter.acquire.return_value = "conn"
    adapter.ping.return_value = True
    adapter.describe.return_value = {"dialect": "mysql", "host": "db", "password": "***"}
    adapter.pool_status.return_value = {"size": 10, "free": 0}
    return adapter


@pytest.fixture
def adapter():
    return make_adapter()


@pytest.fixture
def sleep(monkeypatch):
    """Replace the handler's asyncio with one whose sleep records delays."""
    fake = SimpleNamespace(sleep=AsyncMock())
    monkeypatch.setattr(handler_module, "asyncio", fake)
    return fake.sleep


class TestRun:
    """Tests for Handler.run() lifecycle."""

    async def test_success_commits_and_releases(self, adapter):
        callback = AsyncMock(return_value=42)
        result = await Handler(adapter).run(callback)

        assert result == 42
        callback.assert_awaited_once_with("conn")
        adapter.begin.assert_awaited_once_with("conn")
        adapter.commit.assert_awaited_once_with("conn")
        adapter.rollback.assert_not_awaited()
        adapter.release.assert_awaited_once_with("conn")

    async def test_without_transaction(self, adapter):
        await Handler(adapter).run(AsyncMock(return_value=[]), HandlerOptions(use_transaction=False))

        adapter.begin.assert_not_awaited()
        adapter.commit.assert_not_awaited()
        adapter.release.assert_awaited_once_with("conn")

    async def test_failure_rolls_back_and_raises(self, adapter):
        error = QueryError("Duplicate entry", sql="INSERT ...", code=1062)
        callback = AsyncMock(side_effect=error)

        with pytest.raises(QueryError) as exc_info:
            await Handler(adapter).run(callback)

        assert exc_info.value is error
        adapter.commit.assert_not_awaited()
        adapter.rollback.assert_awaited_once_with("conn")
        adapter.release.assert_awaited_once_with("conn")

    async def test_failure_without_throw_returns_none(self, adapter):
        callback = AsyncMock(side_effect=QueryError("bad"))
        result = await Handler(adapter).run(callback, HandlerOptions(throw_error=False))

        assert result is None
        adapter.rollback.assert_awaited_once()
        adapter.release.assert_awaited_once()

    async def test_rollback_can_be_disabled(self, adapter):
        callback = AsyncMock(side_effect=QueryError("bad"))
        options = HandlerOptions(rollback_if_error=False, throw_error=False)
        await Handler(adapter).run(callback, options)

        adapter.rollback.assert_not_awaited()

    async def test_failing_rollback_does_not_mask_error(self, adapter, caplog):
        caplog.set_level(logging.ERROR, logger=HANDLER_LOGGER)
        adapter.rollback.side_effect = RuntimeError("socket closed")
        callback = AsyncMock(side_effect=QueryError("bad"))

        with pytest.raises(QueryError):
            await Handler(adapter).run(callback)

        assert "Rollback failed after QueryError" in caplog.text
        adapter.release.assert_awaited_once()

    async def test_connection_lost_destroys_without_rollback(self, adapter):
        callback = AsyncMock(side_effect=ConnectionLostError("gone away"))

        with pytest.raises(ConnectionLostError):
            await Handler(adapter).run(callback)

        adapter.rollback.assert_not_awaited()
        adapter.destroy.assert_awaited_once_with("conn")
        adapter.release.assert_not_awaited()

    async def test_acquire_failure_without_throw_returns_none(self, adapter, sleep):
        adapter.acquire.side_effect = PoolExhaustionError("full")
        callback = AsyncMock()

        result = await Handler(adapter).run(callback, HandlerOptions(throw_error=False))

        assert result is None
        callback.assert_not_awaited()

    async def test_commit_failure_rolls_back(self, adapter):
        adapter.commit.side_effect = QueryError("commit failed")

        with pytest.raises(QueryError, match="commit failed"):
            await Handler(adapter).run(AsyncMock(return_value=1))

        adapter.rollback.assert_awaited_once()


class TestErrorLogging:
    """Tests for SQL error diagnostics."""

    async def test_query_error_logged_with_diagnostics(self, adapter, caplog):
        caplog.set_level(logging.ERROR, logger=HANDLER_LOGGER)
        error = QueryError("Unknown column", sql="SELECT nope", code=1054, state="42S22")

        with pytest.raises(QueryError):
            await Handler(adapter).run(AsyncMock(side_effect=error))

        record = next(r for r in caplog.records if "SQL error" in r.getMessage())
        assert record.levelno == logging.ERROR
        message = record.getMessage()
        assert "SQL: SELECT nope" in message
        assert "State: 42S22" in message
        assert "Error number: 1054" in message

    async def test_lock_contention_logged_as_warning(self, adapter, caplog):
        caplog.set_level(logging.WARNING, logger=HANDLER_LOGGER)
        error = QueryError("Deadlock found", code=1213, lock_contention=True)

        with pytest.raises(QueryError):
            await Handler(adapter).run(AsyncMock(side_effect=error))

        levels = [r.levelno for r in caplog.records if "SQL error" in r.getMessage()]
        assert levels == [logging.WARNING]

    async def test_print_sql_error_disabled(self, adapter, caplog):
        caplog.set_level(logging.DEBUG, logger=HANDLER_LOGGER)
        options = HandlerOptions(print_sql_error=False, throw_error=False)
        await Handler(adapter).run(AsyncMock(side_effect=QueryError("bad")), options)

        assert "SQL error" not in caplog.text

    def test_other_errors_logged_generically(self, caplog):
        caplog.set_level(logging.ERROR, logger=HANDLER_LOGGER)
        log_query_error(RuntimeError("boom"))
        assert "Database operation failed: RuntimeError: boom" in caplog.text

    def test_log_statement_levels(self, caplog):
        caplog.set_level(logging.DEBUG, logger=HANDLER_LOGGER)
        log_statement("SELECT 1", None)
        log_statement("SELECT %s", (2,), print_query=True)

        assert [r.levelno for r in caplog.records] == [logging.DEBUG, logging.INFO]
        assert "Query: SELECT %s | params=[2]" in caplog.records[1].getMessage()


class TestAcquire:
    """Tests for acquisition retry with exponential backoff."""

    async def test_retries_transient_errors(self, adapter, sleep):
        adapter.acquire.side_effect = [
            PoolExhaustionError("full"),
            ConnectionLostError("gone"),
            "conn",
        ]

        conn = await Handler(adapter).acquire()

        assert conn == "conn"
        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.2]

    async def test_exhausted_retries_raise_last_error(self, adapter, sleep, caplog):
        caplog.set_level(logging.ERROR, logger=HANDLER_LOGGER)
        adapter.acquire.side_effect = PoolExhaustionError("full")

        with pytest.raises(PoolExhaustionError, match="full"):
            await Handler(adapter).acquire()

        assert adapter.acquire.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.2, 0.4]
        assert "Failed to get database connection: full" in caplog.text
        assert "Pool status: {'size': 10, 'free': 0}" in caplog.text

    async def test_retry_count_override(self, adapter, sleep):
        adapter.acquire.side_effect = PoolExhaustionError("full")

        with pytest.raises(PoolExhaustionError):
            await Handler(adapter, retry_count=0).acquire()

        assert adapter.acquire.await_count == 1
        sleep.assert_not_awaited()

    async def test_no_attempt_raises_pool_error(self, adapter, sleep):
        """A negative retry_count makes no attempt and still raises PoolError."""
        with pytest.raises(PoolError, match="Failed to get database connection"):
            await Handler(adapter, retry_count=-1).acquire()

        adapter.acquire.assert_not_awaited()

    async def test_non_transient_error_wrapped(self, adapter, sleep, caplog):
        caplog.set_level(logging.ERROR, logger=HANDLER_LOGGER)
        cause = OSError(1045, "Access denied for user")
        adapter.acquire.side_effect = cause

        with pytest.raises(PoolError, match="Failed to get database connection") as exc_info:
            await Handler(adapter).acquire()

        assert exc_info.value.__cause__ is cause
        assert adapter.acquire.await_count == 1
        assert "'password': '***'" in caplog.text
        assert "code=1045" in caplog.text

    async def test_dead_connection_destroyed_and_retried(self, adapter, sleep, caplog):
        caplog.set_level(logging.WARNING, logger=HANDLER_LOGGER)
        adapter.acquire.side_effect = ["dead", "live"]
        adapter.ping.side_effect = [False, True]

        conn = await Handler(adapter).acquire()

        assert conn == "live"
        adapter.destroy.assert_awaited_once_with("dead")
        assert "liveness check" in caplog.text

    async def test_always_dead_raises_connection_lost(self, adapter, sleep):
        adapter.ping.return_value = False

        with pytest.raises(ConnectionLostError):
            await Handler(adapter, retry_count=1).acquire()

        assert adapter.destroy.await_count == 2

    def test_defaults_from_config(self):
        handler = Handler(make_adapter(retry_count=7, retry_delay=0.5))
        assert handler.retry_count == 7
        assert handler.retry_delay == 0.5


class TestTransaction:
    """Tests for the transaction() context manager."""

    async def test_commit_on_success(self, adapter):
        async with Handler(adapter).transaction() as conn:
            assert conn == "conn"

        adapter.begin.assert_awaited_once_with("conn")
        adapter.commit.assert_awaited_once_with("conn")
        adapter.rollback.assert_not_awaited()
        adapter.release.assert_awaited_once_with("conn")

    async def test_rollback_on_exception(self, adapter):
        with pytest.raises(ValueError, match="abort"):
            async with Handler(adapter).transaction():
                raise ValueError("abort")

        adapter.commit.assert_not_awaited()
        adapter.rollback.assert_awaited_once_with("conn")
        adapter.release.assert_awaited_once_with("conn")

    async def test_connection_lost_inside_block(self, adapter):
        with pytest.raises(ConnectionLostError):
            async with Handler(adapter).transaction():
                raise ConnectionLostError("gone")

        adapter.rollback.assert_not_awaited()
        adapter.destroy.assert_awaited_once_with("conn")
