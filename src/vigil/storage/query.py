# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Compile filter mappings into parameterised SQL fragments.

Filters are plain dicts whose keys are ``column`` or ``column__op``::

    {"action": "LOGIN_FAILED", "timestamp__gte": since, "id__in": ids}

Supported operators: ``eq`` (default), ``ne``, ``gt``, ``gte``, ``lt``,
``lte``, ``in``, ``isnull``.  Identifiers are validated against a strict
pattern because they are interpolated into the statement text.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from vigil.core.clock import to_iso

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

_COMPARISONS: dict[str, str] = {
    "eq": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}

Filters = Mapping[str, Any]


def quote_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def encode_value(value: Any) -> Any:
    """Convert a Python value into something SQLite can bind."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, sort_keys=True)
    return value


def compile_where(filters: Filters | None) -> tuple[str, list[Any]]:
    """Return ``(" WHERE ...", params)`` or ``("", [])`` for no filters."""
    if not filters:
        return "", []

    clauses: list[str] = []
    params: list[Any] = []

    for key, value in filters.items():
        column, _, op = key.partition("__")
        op = op or "eq"
        col = quote_identifier(column)

        if op == "in":
            values = list(value)
            if not values:
                clauses.append("0")
                continue
            clauses.append(f"{col} IN ({', '.join('?' for _ in values)})")
            params.extend(encode_value(v) for v in values)
        elif op == "isnull":
            clauses.append(f"{col} IS NULL" if value else f"{col} IS NOT NULL")
        elif op in _COMPARISONS:
            if value is None and op in ("eq", "ne"):
                clauses.append(f"{col} IS NULL" if op == "eq" else f"{col} IS NOT NULL")
                continue
            clauses.append(f"{col} {_COMPARISONS[op]} ?")
            params.append(encode_value(value))
        else:
            raise ValueError(f"Unsupported filter operator: {op!r} in {key!r}")

    return " WHERE " + " AND ".join(clauses), params


def compile_order(order_by: str | Sequence[str] | None) -> str:
    """``"-timestamp"`` sorts descending; several keys may be given."""
    if not order_by:
        return ""
    keys = [order_by] if isinstance(order_by, str) else list(order_by)
    parts = []
    for key in keys:
        if key.startswith("-"):
            parts.append(f"{quote_identifier(key[1:])} DESC")
        else:
            parts.append(f"{quote_identifier(key)} ASC")
    return " ORDER BY " + ", ".join(parts)
