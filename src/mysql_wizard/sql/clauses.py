# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQL clause builders: ORDER BY, LIMIT/OFFSET, JOIN, SELECT list, relation joins.

Each builder takes typed descriptors and returns a SQL fragment that starts
with a space (or is empty), ready to be appended to a statement.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .condition import column_ref
from .transcoder import to_snake
from .types import DIRECTIONS, JoinClause, Relation

if TYPE_CHECKING:
    from .adapters.base import DbAdapter


def is_raw_column(column: str) -> bool:
    """Columns containing "*", "(" or " AS " are SQL fragments, not names."""
    return "*" in column or "(" in column or " AS " in column.upper()


def relation_alias(relation: Relation, column: str) -> str:
    """Alias of a relation column in the SELECT list: ``table__column``."""
    return f"{relation.table}__{to_snake(column)}"


def order_by_clause(
    adapter: DbAdapter,
    order_by: Iterable[Mapping[str, Any]],
    table: str | None = None,
) -> str:
    """Build " ORDER BY a ASC, b DESC" from {column, direction} dicts."""
    parts: list[str] = []
    for item in order_by:
        direction = str(item.get("direction") or "ASC").upper()
        if direction not in DIRECTIONS:
            raise ValueError(f"Order direction '{item.get('direction')}' not supported")
        parts.append(f"{column_ref(adapter, item['column'], table)} {direction}")
    if not parts:
        return ""
    return " ORDER BY " + ", ".join(parts)


def _check_count(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def limit_clause(adapter: DbAdapter, limit: int | None, offset: int | None) -> str:
    """Build " LIMIT n OFFSET m"; absent values emit nothing.

    A bare OFFSET is not valid SQL, so offset without limit uses the
    dialect's unbounded LIMIT.
    """
    sql = ""
    if limit is not None:
        sql += f" LIMIT {_check_count('limit', limit)}"
    if offset is not None:
        if limit is None:
            sql += f" LIMIT {adapter.unbounded_limit}"
        sql += f" OFFSET {_check_count('offset', offset)}"
    return sql


def join_clause(adapter: DbAdapter, joins: Iterable[JoinClause]) -> str:
    """Build " <TYPE> JOIN table ON left = right" for each join."""
    parts = [
        f"{join.type} JOIN {adapter._sql_name(join.table)} ON "
        f"{column_ref(adapter, join.left_column)} = {column_ref(adapter, join.right_column)}"
        for join in joins
    ]
    return "".join(f" {part}" for part in parts)


def select_clause(
    adapter: DbAdapter,
    table: str,
    columns: Sequence[str],
    select_columns: Sequence[str] = (),
    relations: Sequence[Relation] = (),
    qualify: bool = False,
) -> str:
    """Build the column list of a SELECT.

    Args:
        columns: Declared storage columns, used when select_columns is empty.
        select_columns: Explicit columns; dotted names and raw fragments allowed.
        relations: Requested relations. Declared keys are aliased
            ``table__column``, otherwise ``table.*`` is selected.
        qualify: Qualify plain columns with the main table (joins present).
    """
    owner = table if qualify else None
    if select_columns:
        parts = [c if is_raw_column(c) else column_ref(adapter, c, owner) for c in select_columns]
    else:
        parts = [column_ref(adapter, c, owner) for c in columns]

    for relation in relations:
        if relation.keys:
            parts.extend(
                f"{adapter.qualified_name(relation.table, to_snake(key))} AS "
                f"{adapter._sql_name(relation_alias(relation, key))}"
                for key in relation.keys
            )
        else:
            parts.append(f"{adapter._sql_name(relation.table)}.*")
    return ", ".join(parts)


def relation_joins(
    names: Iterable[str],
    relations: Mapping[str, Relation],
    table: str,
) -> list[JoinClause]:
    """Turn requested relation names into join descriptors.

    Join type defaults to LEFT for hasMany and INNER otherwise.

    Raises:
        ValueError: If a name is not registered.
    """
    joins: list[JoinClause] = []
    for name in names:
        relation = relations.get(name)
        if relation is None:
            raise ValueError(f"Relation '{name}' not registered for table '{table}'")
        join_type = relation.join_type or ("LEFT" if relation.type == "hasMany" else "INNER")
        joins.append(
            JoinClause(
                table=relation.table,
                left_column=f"{table}.{relation.local_key}",
                right_column=f"{relation.table}.{relation.foreign_key}",
                type=join_type,
            )
        )
    return joins


__all__ = [
    "is_raw_column",
    "relation_alias",
    "order_by_clause",
    "limit_clause",
    "join_clause",
    "select_clause",
    "relation_joins",
]
