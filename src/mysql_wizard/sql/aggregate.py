# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Aggregate expressions for SelectQuery.calculate()."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from .condition import ConditionCompiler, column_ref

if TYPE_CHECKING:
    from .adapters.base import DbAdapter

AGGREGATE_FUNCTIONS = frozenset({"SUM", "AVG", "MIN", "MAX", "COUNT"})


@dataclass(frozen=True)
class Aggregate:
    """One aggregate of a calculate() call.

    Attributes:
        fn: SUM, AVG, MIN, MAX or COUNT.
        alias: Key of the value in the result dict.
        column: Aggregated field. COUNT defaults to "*"; others require one.
        case: Optional {"when": condition, "then": x, "else": y}. The
            aggregate then runs over CASE WHEN cond THEN x ELSE y END
            (then defaults to 1, else to 0). COUNT counts matching rows.
        coalesce: Wrap the column in COALESCE(col, 0). Defaults to True for
            SUM and False for the others.
    """

    fn: str
    alias: str
    column: str | None = None
    case: Mapping[str, Any] | None = None
    coalesce: bool | None = None

    def __post_init__(self) -> None:
        fn = str(self.fn).upper()
        if fn not in AGGREGATE_FUNCTIONS:
            raise ValueError(f"Unsupported calculate function: {self.fn}")
        object.__setattr__(self, "fn", fn)
        if fn != "COUNT" and not self.column:
            raise ValueError(f"{fn} aggregate '{self.alias}' requires a column")

    @classmethod
    def coerce(cls, value: Aggregate | Mapping[str, Any]) -> Aggregate:
        """Accept an Aggregate or a dict with the same field names."""
        if isinstance(value, Aggregate):
            return value
        return cls(**value)


def compile_aggregate(
    adapter: DbAdapter,
    aggregate: Aggregate,
    table: str | None = None,
    utc_dates: bool = True,
) -> tuple[str, list[Any]]:
    """Build "<FN>(<expr>) AS alias" and its parameters."""
    fn = aggregate.fn
    alias = adapter._sql_name(aggregate.alias)
    ph = adapter._placeholder()

    when = (aggregate.case or {}).get("when")
    if when:
        cond = ConditionCompiler(adapter, table, utc_dates).compile(when)
        if cond.sql:
            if fn == "COUNT":
                return f"COUNT(CASE WHEN {cond.sql} THEN 1 END) AS {alias}", cond.params
            then = aggregate.case.get("then", 1)
            otherwise = aggregate.case.get("else", 0)
            expr = f"CASE WHEN {cond.sql} THEN {ph} ELSE {ph} END"
            return f"{fn}({expr}) AS {alias}", [*cond.params, then, otherwise]

    column = aggregate.column or "*"
    if fn == "COUNT" and column == "*":
        return f"COUNT(*) AS {alias}", []
    expr = column_ref(adapter, column, table)
    coalesce = aggregate.coalesce if aggregate.coalesce is not None else fn == "SUM"
    if coalesce:
        expr = f"COALESCE({expr}, 0)"
    return f"{fn}({expr}) AS {alias}", []


def _to_number(value: Any) -> int | float:
    if value is None or isinstance(value, bool):
        return int(bool(value))
    if isinstance(value, int):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if number.is_integer() else number


def aggregate_result(
    row: Mapping[str, Any] | None, aggregates: Sequence[Aggregate]
) -> dict[str, int | float]:
    """Map an aggregate row to {alias: number}; null or non-numeric becomes 0."""
    row = row or {}
    return {agg.alias: _to_number(row.get(agg.alias)) for agg in aggregates}


__all__ = ["AGGREGATE_FUNCTIONS", "Aggregate", "compile_aggregate", "aggregate_result"]
