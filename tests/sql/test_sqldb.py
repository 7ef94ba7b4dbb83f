# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for sql.sqldb module - SqlDb database manager."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from mysql_wizard import DbConfig, Relation, RepositoryConfig, SqlDb
from mysql_wizard.sql import Handler, MysqlAdapter, SqliteAdapter


class TestSqlDbInit:
    """Tests for SqlDb initialization."""

    def test_init_creates_adapter(self):
        """SqlDb creates adapter from connection string."""
        db = SqlDb(":memory:")
        assert isinstance(db.adapter, SqliteAdapter)
        assert isinstance(db.handler, Handler)
        assert db.repositories == {}

    def test_default_is_mysql(self):
        """Without a connection string the MySQL adapter is built from config."""
        config = DbConfig(host="db.local", sweep_interval=0)
        db = SqlDb(config=config)
        assert isinstance(db.adapter, MysqlAdapter)
        assert db.config is config

    def test_handler_uses_config_retries(self):
        db = SqlDb(":memory:", DbConfig(retry_count=1, retry_delay=0.5))
        assert (db.handler.retry_count, db.handler.retry_delay) == (1, 0.5)

    def test_invalid_connection_string(self):
        with pytest.raises(ValueError, match="Invalid connection string"):
            SqlDb("nonsense")


class TestRepositoryRegistry:
    """Tests for add_repository() / repository()."""

    def test_add_with_kwargs(self):
        db = SqlDb(":memory:")
        repo = db.add_repository(table="users", keys=["id", "name"], auto_set_columns=["id"])
        assert db.repository("users") is repo
        assert repo.name == "users"
        assert repo.config.keys == ("id", "name")

    def test_add_with_config(self):
        db = SqlDb(":memory:")
        config = RepositoryConfig(
            table="novel",
            keys=("id", "title"),
            relations={"chapters": Relation("novel_chapter", "id", "novelId", type="hasMany")},
        )
        repo = db.add_repository(config)
        assert repo.config is config
        assert repo.option.relations["chapters"].type == "hasMany"

    def test_config_and_kwargs_rejected(self):
        db = SqlDb(":memory:")
        with pytest.raises(TypeError):
            db.add_repository(RepositoryConfig(table="a", keys=("id",)), table="b")

    def test_missing_repository(self):
        db = SqlDb(":memory:")
        with pytest.raises(ValueError, match="Repository 'ghost' not registered"):
            db.repository("ghost")

    def test_config_validation(self):
        with pytest.raises(ValueError, match="declares no keys"):
            RepositoryConfig(table="empty", keys=())
        with pytest.raises(ValueError, match="table name is required"):
            RepositoryConfig(table="", keys=("id",))

    def test_print_query_follows_db_config(self):
        db = SqlDb(":memory:", DbConfig(print_query=True))
        assert db.add_repository(table="a", keys=["id"]).option.print_query is True
        assert db.add_repository(table="b", keys=["id"], print_query=False).option.print_query is False

    def test_transcoder_follows_db_config(self):
        db = SqlDb(":memory:", DbConfig(parse_json=False, utc_dates=False))
        transcoder = db.add_repository(table="a", keys=["id"]).option.transcoder
        assert transcoder.parse_json is False
        assert transcoder.utc_dates is False


class TestRawStatements:
    """Tests for execute() / fetch_all() / ping() on SQLite."""

    async def test_execute_and_fetch(self, tmp_path):
        db = SqlDb(str(tmp_path / "raw.db"))
        await db.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT)")

        result = await db.execute("INSERT INTO items (name) VALUES (?), (?)", ["a", "b"])
        rows = await db.fetch_all("SELECT name FROM items WHERE id > ? ORDER BY id", [0])

        assert (result.affected_rows, result.insert_id) == (2, 1)
        assert rows == [{"name": "a"}, {"name": "b"}]
        await db.shutdown()

    async def test_statements_share_transaction(self, tmp_path):
        db = SqlDb(str(tmp_path / "raw.db"))
        await db.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT)")

        with pytest.raises(RuntimeError):
            async with db.transaction() as conn:
                await db.execute("INSERT INTO items (name) VALUES (?)", ["a"], connection=conn)
                assert await db.fetch_all("SELECT * FROM items", connection=conn) != []
                raise RuntimeError("abort")

        assert await db.fetch_all("SELECT * FROM items") == []

    async def test_ping_sqlite(self, tmp_path):
        async with SqlDb(str(tmp_path / "raw.db")) as db:
            assert await db.ping() == {}

    async def test_context_manager_shuts_down(self):
        db = SqlDb(":memory:")
        db.adapter.shutdown = AsyncMock()
        async with db:
            pass
        db.adapter.shutdown.assert_awaited_once()

    async def test_run_delegates_to_handler(self):
        db = SqlDb(":memory:")
        db.handler.run = AsyncMock(return_value="ok")
        callback = AsyncMock()

        assert await db.run(callback) == "ok"
        db.handler.run.assert_awaited_once_with(callback, None)
