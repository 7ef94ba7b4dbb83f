# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for mysql-wizard.

Transient errors (PoolExhaustionError, ConnectionLostError) are retried by
the Handler during acquisition; everything else propagates to the caller
after diagnostic logging.
"""

from __future__ import annotations

from typing import Any


class WizardError(Exception):
    """Base class for all mysql-wizard errors."""


class PoolError(WizardError):
    """Raised when a connection cannot be obtained from the pool."""

    def __init__(self, message: str = "Failed to get database connection") -> None:
        super().__init__(message)


class PoolExhaustionError(PoolError):
    """No free connection was available in time (transient)."""


class ConnectionLostError(PoolError):
    """The connection died (server gone away, ping failed, socket closed)."""


class QueryError(WizardError):
    """Driver-reported SQL error with the diagnostic fields of the statement.

    Attributes:
        sql: Statement text that failed.
        params: Bound parameters.
        message: Driver error message.
        code: Driver error number (e.g. 1062 for duplicate key).
        state: SQLSTATE or driver error name, when the driver exposes one.
        lock_contention: True for deadlock / lock wait timeout errors.
    """

    def __init__(
        self,
        message: str,
        sql: str | None = None,
        params: Any = None,
        code: int | str | None = None,
        state: str | None = None,
        lock_contention: bool = False,
    ) -> None:
        self.message = message
        self.sql = sql
        self.params = params
        self.code = code
        self.state = state
        self.lock_contention = lock_contention
        super().__init__(message)

    def diagnostics(self) -> dict[str, Any]:
        """Return the diagnostic fields as a dict (for structured logging)."""
        return {
            "sql": self.sql,
            "message": self.message,
            "state": self.state,
            "code": self.code,
        }


class NotFoundError(WizardError):
    """Raised by select_one(throw_error=True) when no row matches."""

    def __init__(self, table: str, where: dict[str, Any] | None = None) -> None:
        self.table = table
        self.where = where
        if where:
            msg = f"Record not found in '{table}' with where={where!r}"
        else:
            msg = f"Record not found in '{table}'"
        super().__init__(msg)


__all__ = [
    "WizardError",
    "PoolError",
    "PoolExhaustionError",
    "ConnectionLostError",
    "QueryError",
    "NotFoundError",
]
