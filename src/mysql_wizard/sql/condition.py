# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Compile structured condition dicts into parameterized WHERE fragments.

A condition maps field names to values:

    {"id": 5}                                          → id = ?
    {"id": [1, 2]}                                     → id IN (?, ?)
    {"deletedAt": None}                                → deleted_at IS NULL
    {"age": {"operator": ">=", "value": 18}}           → age >= ?
    {"name": {"operator": "LIKE", "value": "ab",
              "pattern": "starts"}}                    → name LIKE 'ab%'
    {"meta": {"operator": "LIKE", "value": {"a": "x"}}} → JSON path LIKE
    {"tags": {"operator": "IN_JSON", "value": [[1, 2]]}} → JSON containment

Entries whose value is UNSET (bare, or an operator dict with UNSET or no
value) are dropped, so callers can spread optional filters into one
condition without branching. None means SQL NULL and is only meaningful
for "=" and "!="; with any other operator the entry is dropped.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, NamedTuple

from .transcoder import encode_param, to_snake
from .types import LIKE_PATTERNS, OPERATORS, UNSET

if TYPE_CHECKING:
    from .adapters.base import DbAdapter


class CompiledCondition(NamedTuple):
    """SQL fragment (without the WHERE keyword) and its bound parameters."""

    sql: str
    params: list[Any]

    def where(self) -> str:
        """Return " WHERE <sql>" or an empty string."""
        return f" WHERE {self.sql}" if self.sql else ""


def column_ref(adapter: DbAdapter, name: str, table: str | None = None) -> str:
    """Quote a field name as a column reference.

    camelCase names are converted to snake_case. Dotted "table.column"
    names keep their own table; "table.*" is passed through with the table
    quoted. Otherwise the column is qualified with ``table`` when given.
    """
    if "." in name:
        owner, _, column = name.rpartition(".")
        if column == "*":
            return f"{adapter._sql_name(owner)}.*"
        return adapter.qualified_name(owner, to_snake(column))
    column = to_snake(name)
    if table:
        return adapter.qualified_name(table, column)
    return adapter._sql_name(column)


def like_value(value: Any, pattern: str) -> str:
    """Wrap a LIKE operand with wildcards according to pattern."""
    if pattern not in LIKE_PATTERNS:
        raise ValueError(f"LIKE pattern '{pattern}' not supported")
    text = str(value)
    if pattern == "starts":
        return f"{text}%"
    if pattern == "ends":
        return f"%{text}"
    if pattern == "exact":
        return text
    return f"%{text}%"


class ConditionCompiler:
    """Compiles conditions and OR-groups for one adapter dialect.

    Args:
        adapter: Supplies identifier quoting, placeholders and JSON operators.
        table: When given, unqualified columns are qualified with it.
        utc_dates: Encode datetimes in UTC, matching how the repository writes them.
    """

    def __init__(
        self, adapter: DbAdapter, table: str | None = None, utc_dates: bool = True
    ) -> None:
        self.adapter = adapter
        self.table = table
        self.utc_dates = utc_dates

    def compile(
        self,
        query: Mapping[str, Any] | None = None,
        or_groups: Sequence[Mapping[str, Any]] | None = None,
    ) -> CompiledCondition:
        """Compile a main condition and OR-groups into one fragment.

        Main entries are AND-ed. Each OR-group is AND-ed internally and
        parenthesized, groups are OR-ed, and the result is AND-ed with the
        main part. Groups that compile to nothing are skipped.
        """
        main_sql, params = self._compile_and(query or {})

        group_parts: list[str] = []
        for group in or_groups or ():
            group_sql, group_params = self._compile_and(group)
            if group_sql:
                group_parts.append(f"({group_sql})")
                params.extend(group_params)
        or_sql = " OR ".join(group_parts)

        if main_sql and or_sql:
            return CompiledCondition(f"({main_sql}) AND ({or_sql})", params)
        return CompiledCondition(main_sql or or_sql, params)

    def _compile_and(self, query: Mapping[str, Any]) -> tuple[str, list[Any]]:
        fragments: list[str] = []
        params: list[Any] = []
        for key, value in query.items():
            compiled = self._compile_entry(key, value)
            if compiled is None:
                continue
            sql, entry_params = compiled
            fragments.append(sql)
            params.extend(entry_params)
        return " AND ".join(fragments), params

    def _compile_entry(self, key: str, value: Any) -> tuple[str, list[Any]] | None:
        if value is UNSET:
            return None
        column = column_ref(self.adapter, key, self.table)
        ph = self.adapter._placeholder()

        if isinstance(value, Mapping) and "operator" in value:
            operator = str(value["operator"]).upper()
            if operator not in OPERATORS:
                raise ValueError(f"Operator '{value['operator']}' not supported")
            operand = value.get("value", UNSET)
            if operand is UNSET:
                return None
            if operand is None:
                if operator == "=":
                    return f"{column} IS NULL", []
                if operator in ("!=", "<>"):
                    return f"{column} IS NOT NULL", []
                return None
            if operator == "IN":
                return self._in(column, operand)
            if operator == "IN_JSON":
                return self._in_json(column, operand)
            if operator == "LIKE":
                return self._like(column, operand, value.get("pattern") or "contains")
            return f"{column} {operator} {ph}", [self._encode(operand)]

        if isinstance(value, (list, tuple)):
            return self._in(column, value)
        if value is None:
            return f"{column} IS NULL", []
        return f"{column} = {ph}", [self._encode(value)]

    def _encode(self, value: Any) -> Any:
        return encode_param(value, self.utc_dates)

    def _in(self, column: str, values: Any) -> tuple[str, list[Any]]:
        if not isinstance(values, (list, tuple, set, frozenset)):
            values = [values]
        items = [self._encode(v) for v in values if v is not UNSET]
        if not items:
            return "1=0", []
        return f"{column} IN ({self.adapter.placeholders(len(items))})", items

    def _in_json(self, column: str, values: Any) -> tuple[str, list[Any]]:
        if not isinstance(values, (list, tuple)):
            values = [values]
        if values and all(isinstance(v, (list, tuple)) for v in values):
            # every sub-array must be fully contained; sub-arrays are OR-ed
            parts: list[str] = []
            params: list[Any] = []
            for group in values:
                items = [self._encode(v) for v in group if v is not UNSET]
                if not items:
                    continue
                sql, group_params = self.adapter.json_contains(column, items)
                parts.append(sql)
                params.extend(group_params)
            if not parts:
                return "1=0", []
            if len(parts) == 1:
                return parts[0], params
            return "(" + " OR ".join(parts) + ")", params

        flat: list[Any] = []
        for v in values:
            if isinstance(v, (list, tuple)):
                flat.extend(v)
            elif v is not UNSET:
                flat.append(v)
        if not flat:
            return "1=0", []
        return self.adapter.json_overlaps(column, [self._encode(v) for v in flat])

    def _like(self, column: str, value: Any, pattern: str) -> tuple[str, list[Any]] | None:
        if value is UNSET or value is None or value == "":
            return None
        if isinstance(value, Mapping):
            parts: list[str] = []
            params: list[Any] = []
            for path_key, operand in value.items():
                if operand is UNSET or operand is None or operand == "":
                    continue
                sql, path_params = self.adapter.json_path_like(
                    column, f"$.{path_key}", like_value(operand, pattern)
                )
                parts.append(sql)
                params.extend(path_params)
            if not parts:
                return None
            return "(" + " OR ".join(parts) + ")", params
        return f"{column} LIKE {self.adapter._placeholder()}", [like_value(value, pattern)]


__all__ = ["CompiledCondition", "ConditionCompiler", "column_ref", "like_value"]
