# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for the mysql-wizard command line."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from mysql_wizard.cli import main

CLEAN_ENV = {
    "DB_URL": None,
    "DB_HOST": None,
    "DB_PORT": None,
    "DB_PASSWORD": None,
    "DB_PRINT_QUERY": None,
}


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:{tmp_path / 'cli.db'}"


def invoke(runner: CliRunner, *args: str, **env: str):
    return runner.invoke(main, list(args), env={**CLEAN_ENV, **env})


class TestConfigCommand:
    def test_shows_configuration_with_masked_password(self, runner):
        result = invoke(runner, "config", DB_HOST="db.local", DB_PASSWORD="hunter2")

        assert result.exit_code == 0, result.output
        assert "db.local" in result.output
        assert "***" in result.output
        assert "hunter2" not in result.output

    def test_invalid_number_reported(self, runner):
        result = invoke(runner, "config", DB_PORT="abc")

        assert result.exit_code != 0
        assert "Invalid number value for DB_PORT: abc" in result.output

    def test_url_option(self, runner):
        result = invoke(runner, "--url", "sqlite::memory:", "config")

        assert result.exit_code == 0, result.output
        assert "sqlite::memory:" in result.output


class TestPingCommand:
    def test_sqlite_ping(self, runner, db_url):
        result = invoke(runner, "--url", db_url, "ping")

        assert result.exit_code == 0, result.output
        assert "Connection OK" in result.output


class TestQueryCommand:
    def test_write_then_read(self, runner, db_url):
        created = invoke(runner, "--url", db_url, "query", "CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
        inserted = invoke(
            runner, "--url", db_url, "query", "INSERT INTO t (name) VALUES (?), (?)", "-p", "alpha", "-p", "beta"
        )
        selected = invoke(runner, "--url", db_url, "query", "SELECT name FROM t WHERE id = ?", "-p", "2")

        assert created.exit_code == 0, created.output
        assert inserted.exit_code == 0, inserted.output
        assert "2 row(s) affected" in inserted.output
        assert "First insert id: 1" in inserted.output
        assert selected.exit_code == 0, selected.output
        assert "beta" in selected.output
        assert "alpha" not in selected.output

    def test_no_rows(self, runner, db_url):
        invoke(runner, "--url", db_url, "query", "CREATE TABLE t (id INTEGER PRIMARY KEY)")

        result = invoke(runner, "--url", db_url, "query", "select * from t")

        assert result.exit_code == 0, result.output
        assert "No rows." in result.output

    def test_sql_error_reported(self, runner, db_url):
        result = invoke(runner, "--url", db_url, "query", "SELECT * FROM nope")

        assert result.exit_code != 0
        assert "QueryError: no such table: nope" in result.output
