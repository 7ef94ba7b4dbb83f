# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Shared value types: UNSET sentinel, relation/join descriptors, options, results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .adapters.base import DbAdapter
    from .handler import Handler
    from .transcoder import Transcoder


class _Unset:
    """Marker for a value that is absent (as opposed to None / SQL NULL)."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"

    def __reduce__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()

CompareQuery = dict[str, Any]

OPERATORS = frozenset({"=", "!=", "<>", ">", "<", ">=", "<=", "LIKE", "IN", "IN_JSON"})
LIKE_PATTERNS = frozenset({"starts", "ends", "contains", "exact"})
JOIN_TYPES = frozenset({"INNER", "LEFT", "RIGHT", "FULL"})
RELATION_TYPES = frozenset({"hasOne", "hasMany", "belongsTo"})
DIRECTIONS = frozenset({"ASC", "DESC"})


@dataclass(frozen=True)
class Relation:
    """Pre-registered join target used by SelectQuery.with_relation().

    Attributes:
        table: Related table name.
        local_key: Key on the main table (camelCase or snake_case).
        foreign_key: Key on the related table.
        type: "hasOne", "hasMany" or "belongsTo".
        join_type: Explicit JOIN type. Defaults to LEFT for hasMany, INNER otherwise.
        keys: Related columns to select. None selects "table.*".
    """

    table: str
    local_key: str
    foreign_key: str
    type: str = "hasOne"
    join_type: str | None = None
    keys: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.type not in RELATION_TYPES:
            raise ValueError(f"Relation type '{self.type}' not supported")
        if self.join_type is not None and self.join_type not in JOIN_TYPES:
            raise ValueError(f"Join type '{self.join_type}' not supported")
        if self.keys is not None and not isinstance(self.keys, tuple):
            object.__setattr__(self, "keys", tuple(self.keys))

    @classmethod
    def coerce(cls, value: Relation | dict[str, Any]) -> Relation:
        """Accept a Relation or a plain dict with the same field names."""
        if isinstance(value, Relation):
            return value
        return cls(**value)


@dataclass(frozen=True)
class JoinClause:
    table: str
    left_column: str
    right_column: str
    type: str = "INNER"

    def __post_init__(self) -> None:
        if self.type not in JOIN_TYPES:
            raise ValueError(f"Join type '{self.type}' not supported")


@dataclass(frozen=True)
class SelectOptions:
    """Modifiers accumulated by a select builder. Never mutated in place."""

    order_by: tuple[dict[str, str], ...] = ()
    limit: int | None = None
    offset: int | None = None
    joins: tuple[JoinClause, ...] = ()
    select_columns: tuple[str, ...] = ()
    with_relations: tuple[str, ...] = ()
    or_conditions: tuple[CompareQuery, ...] = ()


@dataclass
class ResultHeader:
    """Result of a write operation.

    insert_ids assumes the driver assigned contiguous auto-increment ids to
    a multi-row INSERT (true for MySQL's default lock mode without
    concurrent inserts into the same table).
    """

    affected_rows: int = 0
    insert_id: int = 0
    insert_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class HandlerOptions:
    """Options for Handler.run(). Defaults are the strict ones."""

    use_transaction: bool = True
    throw_error: bool = True
    print_sql_error: bool = True
    rollback_if_error: bool = True


@dataclass(frozen=True)
class QueryOption:
    """Everything a builder needs about one repository, borrowed read-only."""

    table: str
    transcoder: Transcoder
    adapter: DbAdapter
    handler: Handler
    relations: dict[str, Relation] = field(default_factory=dict)
    print_query: bool = False
    handler_options: HandlerOptions = HandlerOptions()


__all__ = [
    "UNSET",
    "CompareQuery",
    "OPERATORS",
    "LIKE_PATTERNS",
    "JOIN_TYPES",
    "RELATION_TYPES",
    "DIRECTIONS",
    "Relation",
    "JoinClause",
    "SelectOptions",
    "ResultHeader",
    "HandlerOptions",
    "QueryOption",
]
