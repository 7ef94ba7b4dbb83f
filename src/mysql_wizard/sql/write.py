# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""INSERT / UPDATE / DELETE built from objects and condition dicts.

All statements of one call are compiled up front, then executed in order
on a single connection: the caller's one, or one acquired through the
Handler (inside a transaction by default).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .condition import ConditionCompiler
from .handler import log_statement
from .types import UNSET, CompareQuery, QueryOption, ResultHeader

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Statement = tuple[str, list[Any]]


async def _run(option: QueryOption, callback: Callable[[Any], Awaitable[Any]], connection: Any) -> Any:
    if connection is not None:
        return await callback(connection)
    return await option.handler.run(callback, option.handler_options)


def build_insert(
    option: QueryOption, rows: Sequence[Mapping[str, Any]], force_auto_set: bool = False
) -> Statement | None:
    """Compile a multi-row INSERT; None for an empty batch.

    Auto-set columns are written as DEFAULT (or left out where the dialect
    has no DEFAULT keyword). The first row decides which columns are
    defaulted for the whole batch.
    """
    if not rows:
        return None
    adapter = option.adapter
    transcoder = option.transcoder
    encoded = [transcoder.to_row(row, is_auto_set=not force_auto_set) for row in rows]

    columns = list(transcoder.columns.values())
    defaulted = {column for column in columns if encoded[0][column] is UNSET}
    if adapter.supports_default_keyword:
        written = columns
    else:
        written = [column for column in columns if column not in defaulted]
    if not written:
        raise ValueError(f"Nothing to insert into '{option.table}': every column is auto-set")

    ph = adapter._placeholder()
    values_sql: list[str] = []
    params: list[Any] = []
    for row in encoded:
        slots: list[str] = []
        for column in written:
            if column in defaulted:
                slots.append("DEFAULT")
                continue
            value = row[column]
            slots.append(ph)
            params.append(None if value is UNSET else value)
        values_sql.append(f"({', '.join(slots)})")

    column_sql = ", ".join(adapter._sql_name(column) for column in written)
    sql = f"INSERT INTO {adapter._sql_name(option.table)} ({column_sql}) VALUES {', '.join(values_sql)}"
    return sql, params


async def insert(
    option: QueryOption,
    rows: Iterable[Mapping[str, Any]],
    connection: Any = None,
    force_auto_set: bool = False,
) -> ResultHeader | None:
    """Insert objects in one statement.

    Returns:
        ResultHeader with the affected row count, the first generated id and
        insert_ids assuming the batch received contiguous ids.
    """
    statement = build_insert(option, list(rows), force_auto_set)
    if statement is None:
        return ResultHeader()
    sql, params = statement

    async def callback(conn: Any) -> ResultHeader:
        log_statement(sql, params, option.print_query)
        result = await option.adapter.execute(conn, sql, params)
        insert_ids = []
        if result.insert_id:
            insert_ids = [result.insert_id + i for i in range(result.affected_rows)]
        return ResultHeader(result.affected_rows, result.insert_id, insert_ids)

    return await _run(option, callback, connection)


def build_update(
    option: QueryOption,
    pairs: Iterable[tuple[CompareQuery, Mapping[str, Any]]],
    force_auto_set: bool = False,
) -> list[Statement]:
    """Compile one UPDATE per (condition, payload) pair.

    Only fields present in the payload are written. Pairs with an empty
    payload are skipped.

    Raises:
        ValueError: A condition compiles to nothing (would update every row).
    """
    adapter = option.adapter
    ph = adapter._placeholder()
    statements: list[Statement] = []
    for condition, payload in pairs:
        row = option.transcoder.to_row(payload, is_auto_set=not force_auto_set, partial=True)
        if not row:
            logger.debug("Skipping update on '%s' with empty payload", option.table)
            continue
        cond = ConditionCompiler(adapter, utc_dates=option.transcoder.utc_dates).compile(condition)
        if not cond.sql:
            raise ValueError(
                f"Refusing to update '{option.table}' without a condition: {condition!r}"
            )
        set_sql = ", ".join(f"{adapter._sql_name(column)} = {ph}" for column in row)
        sql = f"UPDATE {adapter._sql_name(option.table)} SET {set_sql}{cond.where()}"
        statements.append((sql, [*row.values(), *cond.params]))
    return statements


def build_delete(option: QueryOption, conditions: Iterable[CompareQuery]) -> list[Statement]:
    """Compile one DELETE per condition.

    Raises:
        ValueError: A condition compiles to nothing (would delete every row).
    """
    adapter = option.adapter
    statements: list[Statement] = []
    for condition in conditions:
        cond = ConditionCompiler(adapter, utc_dates=option.transcoder.utc_dates).compile(condition)
        if not cond.sql:
            raise ValueError(
                f"Refusing to delete from '{option.table}' without a condition: {condition!r}"
            )
        statements.append((f"DELETE FROM {adapter._sql_name(option.table)}{cond.where()}", cond.params))
    return statements


async def _execute_all(
    option: QueryOption, statements: list[Statement], connection: Any
) -> ResultHeader | None:
    if not statements:
        return ResultHeader()

    async def callback(conn: Any) -> ResultHeader:
        affected = 0
        for sql, params in statements:
            log_statement(sql, params, option.print_query)
            result = await option.adapter.execute(conn, sql, params)
            affected += result.affected_rows
        return ResultHeader(affected_rows=affected)

    return await _run(option, callback, connection)


async def update(
    option: QueryOption,
    pairs: Iterable[tuple[CompareQuery, Mapping[str, Any]]],
    connection: Any = None,
    force_auto_set: bool = False,
) -> ResultHeader | None:
    """Run the updates in order; affected rows are summed."""
    return await _execute_all(option, build_update(option, pairs, force_auto_set), connection)


async def delete(
    option: QueryOption,
    conditions: Iterable[CompareQuery],
    connection: Any = None,
) -> ResultHeader | None:
    """Run the deletes in order; affected rows are summed."""
    return await _execute_all(option, build_delete(option, conditions), connection)


__all__ = ["build_insert", "build_update", "build_delete", "insert", "update", "delete"]
