# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Immutable select builders with relation reshaping and aggregates.

Every modifier returns a NEW builder; nothing runs until execute() or
calculate() is awaited. build() returns the compiled (sql, params).

Usage:
    rows = await (
        repo.select({"name": {"operator": "LIKE", "value": "test", "pattern": "starts"}})
        .order_by([{"column": "id", "direction": "DESC"}])
        .limit(2)
        .execute()
    )

    novel = await repo.select_one({"id": 1}).with_relation("chapters").execute()

    totals = await repo.select({"isValid": True}).calculate(
        [{"fn": "COUNT", "alias": "total"}, {"fn": "SUM", "alias": "pages", "column": "pages"}]
    )
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from ..errors import NotFoundError
from .aggregate import Aggregate, aggregate_result, compile_aggregate
from .clauses import (
    join_clause,
    limit_clause,
    order_by_clause,
    relation_joins,
    select_clause,
)
from .condition import CompiledCondition, ConditionCompiler
from .handler import log_statement
from .transcoder import Transcoder, to_camel, to_snake
from .types import UNSET, CompareQuery, JoinClause, QueryOption, Relation, SelectOptions

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


@dataclass(frozen=True)
class _SelectBase:
    option: QueryOption
    condition: CompareQuery | None = None
    options: SelectOptions = SelectOptions()
    connection: Any = field(default=None, compare=False, repr=False)

    # -------------------------------------------------------------------------
    # Modifiers (each returns a new builder)
    # -------------------------------------------------------------------------

    def _derive(self, **changes: Any) -> Any:
        return replace(self, options=replace(self.options, **changes))

    def order_by(self, items: Iterable[Mapping[str, str]]):
        """Replace the ordering with [{"column": ..., "direction": "ASC"|"DESC"}]."""
        return self._derive(order_by=tuple(dict(item) for item in items))

    def limit(self, count: int | None):
        return self._derive(limit=count)

    def offset(self, count: int | None):
        return self._derive(offset=count)

    def join(self, table: str, left_column: str, right_column: str, type: str = "INNER"):
        """Add an explicit join; columns accept the dotted "table.column" form."""
        clause = JoinClause(table, left_column, right_column, type.upper())
        return self._derive(joins=(*self.options.joins, clause))

    def select(self, columns: Iterable[str]):
        """Select explicit columns instead of every declared key."""
        return self._derive(select_columns=tuple(columns))

    def with_relation(self, name: str):
        """Include a registered relation, nested under its name in results."""
        if name not in self.option.relations:
            raise ValueError(f"Relation '{name}' not registered for table '{self.option.table}'")
        if name in self.options.with_relations:
            return self
        return self._derive(with_relations=(*self.options.with_relations, name))

    def or_(self, condition: CompareQuery | Sequence[CompareQuery] | None):
        """Add OR-groups; None or UNSET leaves the builder unchanged."""
        if condition is None or condition is UNSET:
            return self
        groups = (condition,) if isinstance(condition, Mapping) else tuple(condition)
        return self._derive(or_conditions=(*self.options.or_conditions, *groups))

    # -------------------------------------------------------------------------
    # Compilation
    # -------------------------------------------------------------------------

    def _relations(self) -> list[tuple[str, Relation]]:
        return [(name, self.option.relations[name]) for name in self.options.with_relations]

    def _qualifier(self) -> str | None:
        """Main table name when joins make bare columns ambiguous."""
        if self.options.joins or self.options.with_relations:
            return self.option.table
        return None

    def _effective_limit(self) -> int | None:
        return self.options.limit

    def _from_clause(self) -> str:
        adapter = self.option.adapter
        table = self.option.table
        sql = f" FROM {adapter._sql_name(table)}"
        sql += join_clause(
            adapter, relation_joins(self.options.with_relations, self.option.relations, table)
        )
        sql += join_clause(adapter, self.options.joins)
        return sql

    def _condition(self, qualifier: str | None) -> CompiledCondition:
        compiler = ConditionCompiler(
            self.option.adapter, qualifier, self.option.transcoder.utc_dates
        )
        return compiler.compile(self.condition, self.options.or_conditions)

    def build(self) -> tuple[str, list[Any]]:
        """Compile the SELECT statement without running it."""
        adapter = self.option.adapter
        qualifier = self._qualifier()
        columns = select_clause(
            adapter,
            self.option.table,
            list(self.option.transcoder.columns.values()),
            self.options.select_columns,
            [relation for _, relation in self._relations()],
            qualify=qualifier is not None,
        )
        cond = self._condition(qualifier)
        sql = f"SELECT {columns}{self._from_clause()}{cond.where()}"
        sql += order_by_clause(adapter, self.options.order_by, qualifier)
        sql += limit_clause(adapter, self._effective_limit(), self.options.offset)
        return sql, cond.params

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _run(self, callback: Callable[[Any], Awaitable[Any]], connection: Any) -> Any:
        if connection is None:
            connection = self.connection
        if connection is not None:
            return await callback(connection)
        options = replace(self.option.handler_options, use_transaction=False)
        return await self.option.handler.run(callback, options)

    async def _fetch(self, connection: Any = None) -> list[dict[str, Any]] | None:
        sql, params = self.build()

        async def fetch(conn: Any) -> list[dict[str, Any]]:
            log_statement(sql, params, self.option.print_query)
            rows = await self.option.adapter.fetch_all(conn, sql, params)
            return RowMapper(self.option, self.options.select_columns, self._relations()).map(rows)

        return await self._run(fetch, connection)


@dataclass(frozen=True)
class SelectQuery(_SelectBase):
    """Builder returned by Repository.select()."""

    async def execute(self, connection: Any = None) -> list[dict[str, Any]]:
        """Run the query and return mapped objects.

        Args:
            connection: Existing connection to run on (joins its transaction).
        """
        rows = await self._fetch(connection)
        return rows if rows is not None else []

    def build_calculate(self, aggregates: Sequence[Aggregate]) -> tuple[str, list[Any]]:
        """Compile a single-row aggregate SELECT sharing this builder's WHERE."""
        if not aggregates:
            raise ValueError("calculate() requires at least one aggregate")
        adapter = self.option.adapter
        qualifier = self._qualifier()
        parts: list[str] = []
        params: list[Any] = []
        for aggregate in aggregates:
            sql, agg_params = compile_aggregate(
                adapter, aggregate, qualifier, self.option.transcoder.utc_dates
            )
            parts.append(sql)
            params.extend(agg_params)
        cond = self._condition(qualifier)
        sql = f"SELECT {', '.join(parts)}{self._from_clause()}{cond.where()}"
        return sql, params + cond.params

    async def calculate(
        self,
        aggregates: Sequence[Aggregate | Mapping[str, Any]],
        connection: Any = None,
    ) -> dict[str, int | float]:
        """Run aggregates and return {alias: number}; nulls become 0."""
        specs = [Aggregate.coerce(a) for a in aggregates]
        sql, params = self.build_calculate(specs)

        async def fetch(conn: Any) -> dict[str, int | float]:
            log_statement(sql, params, self.option.print_query)
            rows = await self.option.adapter.fetch_all(conn, sql, params)
            return aggregate_result(rows[0] if rows else None, specs)

        result = await self._run(fetch, connection)
        return result if result is not None else aggregate_result(None, specs)


@dataclass(frozen=True)
class SelectOneQuery(_SelectBase):
    """Builder returned by Repository.select_one(); yields one object or None.

    LIMIT 1 is forced, except with a hasMany relation where the parent's
    rows must all be read to collect its children.
    """

    throw_error: bool = False

    def _effective_limit(self) -> int | None:
        if any(relation.type == "hasMany" for _, relation in self._relations()):
            return self.options.limit
        return 1

    async def execute(self, connection: Any = None) -> dict[str, Any] | None:
        """Run the query and return the first mapped object.

        Raises:
            NotFoundError: No row matched and throw_error is set.
        """
        rows = await self._fetch(connection)
        if rows:
            return rows[0]
        if self.throw_error and rows is not None:
            raise NotFoundError(self.option.table, self.condition)
        return None


class RowMapper:
    """Maps flat result rows to objects, nesting requested relations.

    With a hasMany relation, rows are grouped by the serialized parent
    object and distinct child objects are collected in a list. Relations
    with no non-null data in a row map to None (hasOne, belongsTo) or stay
    an empty list (hasMany).
    """

    def __init__(
        self,
        option: QueryOption,
        select_columns: Sequence[str] = (),
        relations: Sequence[tuple[str, Relation]] = (),
    ) -> None:
        self.transcoder = option.transcoder
        self.select_columns = select_columns
        self.relations = list(relations)
        self._prefixes = tuple(f"{relation.table}__" for _, relation in self.relations)
        self._decoders = {
            name: Transcoder(
                relation.keys or (),
                utc_dates=self.transcoder.utc_dates,
                parse_json=self.transcoder.parse_json,
            )
            for name, relation in self.relations
        }

    def map(self, rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        if not self.relations:
            return [self._main_object(row) for row in rows]
        if not any(relation.type == "hasMany" for _, relation in self.relations):
            result = []
            for row in rows:
                obj = self._main_object(row)
                for name, relation in self.relations:
                    obj[name] = self._relation_object(name, relation, row)
                result.append(obj)
            return result
        return self._group(rows)

    def _group(self, rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        parents: dict[str, dict[str, Any]] = {}
        for row in rows:
            obj = self._main_object(row)
            group_key = json.dumps(obj, sort_keys=True, default=str)
            parent = parents.get(group_key)
            if parent is None:
                parent = obj
                for name, relation in self.relations:
                    parent[name] = [] if relation.type == "hasMany" else None
                parents[group_key] = parent
            for name, relation in self.relations:
                child = self._relation_object(name, relation, row)
                if child is None:
                    continue
                if relation.type == "hasMany":
                    if child not in parent[name]:
                        parent[name].append(child)
                elif parent[name] is None:
                    parent[name] = child
        return list(parents.values())

    def _main_object(self, row: Mapping[str, Any]) -> dict[str, Any]:
        obj = self.transcoder.to_object(row)
        if self.select_columns:
            # raw fragments and undeclared columns are passed through
            for name, value in row.items():
                if name in self.transcoder.keys_by_column or name.startswith(self._prefixes):
                    continue
                if "." in name:
                    continue
                obj.setdefault(name, value)
        return obj

    def _relation_object(
        self, name: str, relation: Relation, row: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        decoder = self._decoders[name]
        if relation.keys:
            child = decoder.to_object(row, prefix=f"{relation.table}__")
        else:
            # "table.*": every column that is not a main or aliased column;
            # pymysql labels colliding names "table.column"
            child = {}
            owner = f"{relation.table}."
            for column, value in row.items():
                if column.startswith(owner):
                    column = column[len(owner):]
                elif (
                    column in self.transcoder.keys_by_column
                    or column.startswith(self._prefixes)
                    or "." in column
                ):
                    continue
                child[to_camel(column)] = decoder.decode(to_snake(column), value)
        if not child or all(value is None for value in child.values()):
            return None
        return child


__all__ = ["SelectQuery", "SelectOneQuery", "RowMapper"]
