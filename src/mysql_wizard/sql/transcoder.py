# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bidirectional value/key converter between application objects and storage rows.

Objects are dicts keyed by the declared keys (usually camelCase); rows are
dicts keyed by snake_case column names.

Conversions applied by to_row():
    datetime        → "YYYY-MM-DD HH:MM:SS" (UTC)
    date            → "YYYY-MM-DD"
    dict / list     → JSON text
    boolean column  → 1 / 0 (None → 0)

Conversions applied by to_object():
    boolean column         → bool (tolerant: 1/0/"1"/"0"/True/False/"true"/"false")
    date column            → aware datetime in UTC
    JSON-looking string    → dict / list (also once-escaped JSON strings)

Column kinds are decided by an explicit ``column_kinds`` mapping when given,
otherwise by naming: ``is_`` prefix for booleans, a date suffix
(``_at``, ``_date``, ``_time``, ``date``...) for dates, and value shape
for JSON.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from .types import UNSET

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

BOOLEAN_COLUMN = re.compile(r"^is_")
DATE_COLUMN = re.compile(r"(?:^|_)(?:at|date|datetime|time|timestamp)$")
DATETIME_TEXT = re.compile(r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?$")

COLUMN_KINDS = frozenset({"json", "boolean", "date", "text"})

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")

_TRUE_VALUES = frozenset({1, "1", "true", "TRUE", "True", True})
_FALSE_VALUES = frozenset({0, "0", "false", "FALSE", "False", False, ""})


def to_snake(name: str) -> str:
    """Convert camelCase to snake_case ("isValid" → "is_valid")."""
    return _CAMEL_BOUNDARY.sub(r"\1_\2", name).lower()


def to_camel(name: str) -> str:
    """Convert snake_case to camelCase ("is_valid" → "isValid")."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def parse_bool(value: Any) -> bool | None:
    """Tolerant boolean parser. None stays None, unknown values use truthiness."""
    if value is None:
        return None
    if isinstance(value, bytes):
        # BIT(1) columns arrive as b"\x00" / b"\x01"
        value = value.decode() if len(value) != 1 or value[0] > 1 else value[0]
    if isinstance(value, (str, int, float, Decimal)):
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
    return bool(value)


def format_datetime(value: datetime, utc: bool = True) -> str:
    """Render a datetime as fixed-width text, converting aware values to UTC."""
    if utc and value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(DATETIME_FORMAT)


def parse_datetime(value: Any, utc: bool = True) -> Any:
    """Normalize a stored datetime (object or text) to a datetime.

    With utc=True naive values are taken as UTC and aware values converted
    to UTC. Values that are not datetimes are returned unchanged.
    """
    if isinstance(value, str):
        text = value.strip()
        if not DATETIME_TEXT.match(text):
            return value
        try:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return value
    if not isinstance(value, datetime):
        return value
    if not utc:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_json_text(value: str) -> Any:
    """Parse a string that looks like a JSON object or array.

    Once-escaped JSON (a JSON string whose content is itself JSON) is
    unwrapped. Anything else is returned unchanged.
    """
    text = value.strip()
    if not text or text[0] not in '{["':
        return value
    try:
        parsed = json.loads(text)
    except ValueError:
        return value
    if isinstance(parsed, str):
        inner = parsed.strip()
        if not inner or inner[0] not in "{[":
            return value
        try:
            parsed = json.loads(inner)
        except ValueError:
            return value
    if isinstance(parsed, (dict, list)):
        return parsed
    return value


def encode_param(value: Any, utc: bool = True) -> Any:
    """Encode a bound parameter so it compares equal to what to_row() stores."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, datetime):
        return format_datetime(value, utc)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=_json_default)
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class Transcoder:
    """Key list bound converter between objects and rows.

    Args:
        keys: Declared object keys, in column order.
        auto_set_columns: Keys (or columns) assigned by the database.
        column_kinds: Optional explicit kinds per key or column:
            "json", "boolean", "date" or "text". "text" disables every
            conversion for that column.
        utc_dates: Write and read datetimes as UTC.
        parse_json: Parse JSON-looking strings of undeclared columns.
    """

    def __init__(
        self,
        keys: Iterable[str],
        auto_set_columns: Iterable[str] = (),
        column_kinds: Mapping[str, str] | None = None,
        utc_dates: bool = True,
        parse_json: bool = True,
    ) -> None:
        self.keys: tuple[str, ...] = tuple(keys)
        if len(set(self.keys)) != len(self.keys):
            raise ValueError(f"Duplicate keys in {self.keys!r}")
        self.columns: dict[str, str] = {key: to_snake(key) for key in self.keys}
        self.keys_by_column: dict[str, str] = {col: key for key, col in self.columns.items()}
        self.auto_set_columns: frozenset[str] = frozenset(to_snake(c) for c in auto_set_columns)
        self.utc_dates = utc_dates
        self.parse_json = parse_json

        self.kinds: dict[str, str] = {}
        for name, kind in (column_kinds or {}).items():
            if kind not in COLUMN_KINDS:
                raise ValueError(f"Unknown column kind '{kind}' for '{name}'")
            self.kinds[to_snake(name)] = kind

    # -------------------------------------------------------------------------
    # Column classification
    # -------------------------------------------------------------------------

    def kind_of(self, column: str) -> str | None:
        """Return the declared or inferred kind of a column (None = plain)."""
        kind = self.kinds.get(column)
        if kind is not None:
            return kind
        if BOOLEAN_COLUMN.search(column):
            return "boolean"
        if DATE_COLUMN.search(column):
            return "date"
        return None

    def is_auto_set(self, column: str) -> bool:
        return column in self.auto_set_columns

    # -------------------------------------------------------------------------
    # Object → row
    # -------------------------------------------------------------------------

    def encode(self, column: str, value: Any) -> Any:
        """Encode one value for storage in the given column."""
        kind = self.kind_of(column)
        if kind == "text":
            return value
        if kind == "boolean":
            if value is None:
                return 0
            return 1 if parse_bool(value) else 0
        if kind == "json" and value is not None and not isinstance(value, str):
            return json.dumps(value, ensure_ascii=False, default=_json_default)
        return encode_param(value, self.utc_dates)

    def to_row(
        self,
        obj: Mapping[str, Any],
        is_auto_set: bool = True,
        partial: bool = False,
    ) -> dict[str, Any]:
        """Convert an object to a storage row keyed by column name.

        Args:
            obj: Object keyed by declared keys.
            is_auto_set: Mark auto-set columns UNSET regardless of the object.
            partial: Exclude keys absent from the object (update payloads).
                Otherwise absent keys become None.

        Returns:
            Row dict; auto-set and excluded columns carry UNSET (full rows)
            or are missing (partial rows).
        """
        row: dict[str, Any] = {}
        for key, column in self.columns.items():
            if is_auto_set and column in self.auto_set_columns:
                if not partial:
                    row[column] = UNSET
                continue
            value = obj.get(key, UNSET)
            if value is UNSET and key != column:
                value = obj.get(column, UNSET)
            if value is UNSET:
                if partial:
                    continue
                if column in self.auto_set_columns:
                    row[column] = UNSET
                    continue
                value = None
            row[column] = self.encode(column, value)
        return row

    # -------------------------------------------------------------------------
    # Row → object
    # -------------------------------------------------------------------------

    def decode(self, column: str, value: Any) -> Any:
        """Decode one stored value read from the given column."""
        kind = self.kind_of(column)
        if kind == "text" or value is None:
            return value
        if kind == "boolean":
            return parse_bool(value)
        if kind == "date":
            return parse_datetime(value, self.utc_dates)
        if kind == "json":
            if isinstance(value, (bytes, bytearray)):
                value = value.decode()
            if isinstance(value, str):
                try:
                    return json.loads(value)
                except ValueError:
                    return parse_json_text(value)
            return value
        if self.parse_json and isinstance(value, str):
            return parse_json_text(value)
        return value

    def to_object(self, row: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
        """Convert a storage row to an object keyed by declared keys.

        Args:
            row: Row keyed by column name (or ``prefix + column`` for
                aliased relation columns).
            prefix: Column alias prefix, e.g. "novel_chapter__".
        """
        obj: dict[str, Any] = {}
        for key, column in self.columns.items():
            name = prefix + column
            if name not in row:
                continue
            obj[key] = self.decode(column, row[name])
        return obj


__all__ = [
    "Transcoder",
    "to_snake",
    "to_camel",
    "parse_bool",
    "parse_datetime",
    "parse_json_text",
    "format_datetime",
    "encode_param",
]
