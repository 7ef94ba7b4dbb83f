# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""CLI entry point for mysql-wizard.

Configuration comes from the DB_* environment variables (see DbConfig),
optionally overridden by --url.

Commands:
    config: Show the resolved configuration (password masked)
    ping: Acquire one connection and show pool occupancy
    query: Run a statement and print the rows
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from .config import DbConfig
from .errors import WizardError
from .sql import SqlDb

console = Console()

LOG_FORMAT = "[MySQL Wizard] %(levelname)s %(name)s: %(message)s"

READ_PREFIXES = ("SELECT", "SHOW", "DESCRIBE", "DESC", "EXPLAIN", "WITH", "PRAGMA")


def _load_config(url: str | None, print_query: bool) -> DbConfig:
    try:
        config = DbConfig.from_env()
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    changes: dict[str, Any] = {}
    if url:
        changes["url"] = url
    if print_query:
        changes["print_query"] = True
    # one-shot commands never need the idle sweeper
    changes["sweep_interval"] = 0
    return replace(config, **changes)


def _render_rows(rows: list[dict[str, Any]], title: str | None = None) -> None:
    if not rows:
        console.print("[dim]No rows.[/dim]")
        return
    table = Table(title=title)
    for column in rows[0]:
        table.add_column(str(column))
    for row in rows:
        table.add_row(*("[dim]NULL[/dim]" if v is None else str(v) for v in row.values()))
    console.print(table)


async def _with_db(config: DbConfig, work: Any) -> Any:
    db = SqlDb(config=config)
    try:
        return await work(db)
    finally:
        await db.shutdown()


def _run(config: DbConfig, work: Any) -> Any:
    try:
        return asyncio.run(_with_db(config, work))
    except WizardError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e


@click.group()
@click.version_option(package_name="mysql-wizard")
@click.option("--url", envvar="DB_URL", default=None, help="Connection string (mysql://..., sqlite:/path).")
@click.option("--print-query", is_flag=True, help="Log every statement.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, url: str | None, print_query: bool, verbose: bool) -> None:
    """MySQL Wizard - typed query builder and repository layer for MySQL."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO if print_query else logging.WARNING,
        format=LOG_FORMAT,
    )
    ctx.obj = _load_config(url, print_query)


@main.command("config")
@click.pass_obj
def config_cmd(config: DbConfig) -> None:
    """Show the resolved configuration."""
    table = Table(title="Database Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in config.describe().items():
        table.add_row(key, "[dim]-[/dim]" if value is None else str(value))
    console.print(table)


@main.command("ping")
@click.pass_obj
def ping_cmd(config: DbConfig) -> None:
    """Check that a connection can be acquired."""
    status = _run(config, lambda db: db.ping())
    console.print("[green]Connection OK[/green]")
    if status:
        _render_rows([status], title="Pool Status")


@main.command("query")
@click.argument("sql")
@click.option("--param", "-p", "params", multiple=True, help="Positional parameter (repeatable).")
@click.pass_obj
def query_cmd(config: DbConfig, sql: str, params: tuple[str, ...]) -> None:
    """Run SQL and print the result.

    Reads (SELECT, SHOW, ...) print rows; other statements print the
    affected row count.
    """
    if sql.lstrip().upper().startswith(READ_PREFIXES):
        rows = _run(config, lambda db: db.fetch_all(sql, list(params)))
        _render_rows(rows)
        return
    result = _run(config, lambda db: db.execute(sql, list(params)))
    console.print(f"[green]{result.affected_rows} row(s) affected[/green]")
    if result.insert_id:
        console.print(f"First insert id: {result.insert_id}")


if __name__ == "__main__":
    main()
