# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""mysql-wizard: typed query builder and repository layer for MySQL."""

from .config import DbConfig
from .errors import (
    ConnectionLostError,
    NotFoundError,
    PoolError,
    PoolExhaustionError,
    QueryError,
    WizardError,
)
from .sql import (
    UNSET,
    Aggregate,
    HandlerOptions,
    Relation,
    Repository,
    RepositoryConfig,
    ResultHeader,
    SqlDb,
)

__version__ = "0.1.0"

__all__ = [
    "DbConfig",
    "SqlDb",
    "Repository",
    "RepositoryConfig",
    "Relation",
    "Aggregate",
    "HandlerOptions",
    "ResultHeader",
    "UNSET",
    "WizardError",
    "PoolError",
    "PoolExhaustionError",
    "ConnectionLostError",
    "QueryError",
    "NotFoundError",
]
