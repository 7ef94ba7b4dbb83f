# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Repository facade binding one table to the query and write builders."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from . import write
from .query import SelectOneQuery, SelectQuery
from .transcoder import Transcoder
from .types import CompareQuery, HandlerOptions, QueryOption, Relation, ResultHeader

if TYPE_CHECKING:
    from .sqldb import SqlDb


@dataclass(frozen=True)
class RepositoryConfig:
    """Declaration of one table.

    Attributes:
        table: Table name.
        keys: Object keys in column order (camelCase or snake_case).
        auto_set_columns: Keys assigned by the database (id, created_at...).
        relations: Named join targets for SelectQuery.with_relation().
        column_kinds: Explicit kinds ("json", "boolean", "date", "text")
            overriding the naming heuristics.
        print_query: Log statements at INFO. None follows DbConfig.print_query.
        handler_options: Transaction and error options for writes.
    """

    table: str
    keys: tuple[str, ...]
    auto_set_columns: tuple[str, ...] = ()
    relations: Mapping[str, Relation] = field(default_factory=dict)
    column_kinds: Mapping[str, str] | None = None
    print_query: bool | None = None
    handler_options: HandlerOptions = HandlerOptions()

    def __post_init__(self) -> None:
        if not self.table:
            raise ValueError("Repository table name is required")
        if not self.keys:
            raise ValueError(f"Repository '{self.table}' declares no keys")
        object.__setattr__(self, "keys", tuple(self.keys))
        object.__setattr__(self, "auto_set_columns", tuple(self.auto_set_columns))
        object.__setattr__(
            self,
            "relations",
            {name: Relation.coerce(rel) for name, rel in (self.relations or {}).items()},
        )


class Repository:
    """Ready-to-use CRUD surface for one table.

    Usage:
        users = db.add_repository(
            table="users",
            keys=["id", "name", "isValid", "meta", "createdAt"],
            auto_set_columns=["id", "createdAt"],
        )
        await users.insert([{"name": "Ann", "isValid": True}])
        ann = await users.select_one({"name": "Ann"}).execute()
        await users.update([({"id": ann["id"]}, {"isValid": False})])
        await users.delete([{"id": ann["id"]}])

    Every method accepts ``connection=`` to join a caller-managed
    transaction (see SqlDb.transaction()).
    """

    def __init__(self, db: SqlDb, config: RepositoryConfig) -> None:
        self.db = db
        self.config = config
        db_config = db.adapter.config
        transcoder = Transcoder(
            config.keys,
            config.auto_set_columns,
            config.column_kinds,
            utc_dates=db_config.utc_dates,
            parse_json=db_config.parse_json,
        )
        print_query = db_config.print_query if config.print_query is None else config.print_query
        self.option = QueryOption(
            table=config.table,
            transcoder=transcoder,
            adapter=db.adapter,
            handler=db.handler,
            relations=dict(config.relations),
            print_query=print_query,
            handler_options=config.handler_options,
        )

    @property
    def name(self) -> str:
        return self.config.table

    def select(self, condition: CompareQuery | None = None, connection: Any = None) -> SelectQuery:
        """Start a select; run it with .execute() or .calculate()."""
        return SelectQuery(self.option, condition, connection=connection)

    def select_one(
        self,
        condition: CompareQuery | None = None,
        connection: Any = None,
        throw_error: bool = False,
    ) -> SelectOneQuery:
        """Start a single-row select; .execute() returns an object or None."""
        return SelectOneQuery(self.option, condition, connection=connection, throw_error=throw_error)

    async def insert(
        self,
        rows: Iterable[Mapping[str, Any]],
        connection: Any = None,
        force_auto_set: bool = False,
    ) -> ResultHeader | None:
        return await write.insert(self.option, rows, connection, force_auto_set)

    async def update(
        self,
        pairs: Iterable[tuple[CompareQuery, Mapping[str, Any]]],
        connection: Any = None,
        force_auto_set: bool = False,
    ) -> ResultHeader | None:
        return await write.update(self.option, pairs, connection, force_auto_set)

    async def delete(
        self,
        conditions: Iterable[CompareQuery],
        connection: Any = None,
    ) -> ResultHeader | None:
        return await write.delete(self.option, conditions, connection)


__all__ = ["RepositoryConfig", "Repository"]
