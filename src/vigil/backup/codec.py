# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Versioned JSON-lines dump format.

Line 1 is a header; every following line is one operation::

    {"format": "vigil-dump", "version": 1, "kind": "full", "tables": [...], ...}
    {"op": "truncate", "table": "patients"}
    {"op": "upsert", "table": "patients", "row": {"id": "...", ...}}

Full dumps truncate each table before its upserts, except append-only
tables such as the audit trail, which are merged.  Incremental dumps
contain upserts only, so replaying one any number of times converges on
the same state.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from vigil.core.exceptions import BackupError
from vigil.storage.backend import Mutation
from vigil.storage.schema import dependency_order, is_append_only

DUMP_FORMAT = "vigil-dump"
DUMP_VERSION = 1

DumpKind = Literal["full", "incremental"]
_OPS = frozenset({"truncate", "upsert"})


@dataclass(frozen=True, slots=True)
class DumpHeader:
    kind: DumpKind
    tables: tuple[str, ...]
    created_at: str
    since: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": DUMP_FORMAT,
            "version": DUMP_VERSION,
            "kind": self.kind,
            "tables": list(self.tables),
            "created_at": self.created_at,
            "since": self.since,
        }


@dataclass(frozen=True, slots=True)
class DumpOp:
    op: Literal["truncate", "upsert"]
    table: str
    row: Mapping[str, Any] = field(default_factory=dict)


def encode_dump(header: DumpHeader, rows_by_table: Mapping[str, Iterable[Mapping[str, Any]]]) -> bytes:
    """Serialize *rows_by_table* in the order of ``header.tables``."""
    lines = [json.dumps(header.to_dict(), sort_keys=True)]
    for table in header.tables:
        if header.kind == "full" and not is_append_only(table):
            lines.append(json.dumps({"op": "truncate", "table": table}, sort_keys=True))
        for row in rows_by_table.get(table, ()):
            lines.append(
                json.dumps(
                    {"op": "upsert", "table": table, "row": dict(row)},
                    sort_keys=True,
                    default=str,
                )
            )
    return ("\n".join(lines) + "\n").encode("utf-8")


def decode_dump(data: bytes) -> tuple[DumpHeader, list[DumpOp]]:
    """Parse and validate a dump; raises :class:`BackupError` on any defect."""
    try:
        lines = data.decode("utf-8").splitlines()
    except UnicodeDecodeError as exc:
        raise BackupError("Dump is not valid UTF-8") from exc
    if not lines:
        raise BackupError("Dump is empty")

    try:
        raw_header = json.loads(lines[0])
    except json.JSONDecodeError as exc:
        raise BackupError(f"Invalid dump header: {exc}") from exc
    if not isinstance(raw_header, dict) or raw_header.get("format") != DUMP_FORMAT:
        raise BackupError("Not a vigil dump")
    if raw_header.get("version") != DUMP_VERSION:
        raise BackupError(f"Unsupported dump version: {raw_header.get('version')!r}")
    if raw_header.get("kind") not in ("full", "incremental"):
        raise BackupError(f"Unknown dump kind: {raw_header.get('kind')!r}")

    header = DumpHeader(
        kind=raw_header["kind"],
        tables=tuple(raw_header.get("tables") or ()),
        created_at=str(raw_header.get("created_at", "")),
        since=raw_header.get("since"),
    )

    ops: list[DumpOp] = []
    for lineno, line in enumerate(lines[1:], 2):
        if not line.strip():
            continue
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as exc:
            raise BackupError(f"Invalid dump line {lineno}: {exc}") from exc
        op = raw.get("op") if isinstance(raw, dict) else None
        if op not in _OPS:
            raise BackupError(f"Unknown opcode on line {lineno}: {op!r}")
        if raw.get("table") not in header.tables:
            raise BackupError(f"Line {lineno} references undeclared table {raw.get('table')!r}")
        if op == "truncate" and header.kind != "full":
            raise BackupError(f"Truncate on line {lineno} in an incremental dump")
        row = raw.get("row") or {}
        if op == "upsert" and "id" not in row:
            raise BackupError(f"Upsert on line {lineno} has no id")
        ops.append(DumpOp(op=op, table=raw["table"], row=row))
    return header, ops


def to_mutations(
    header: DumpHeader, ops: list[DumpOp], tables: Iterable[str] | None = None
) -> tuple[list[Mutation], list[str]]:
    """Turn dump operations into one ordered, all-or-nothing batch.

    Truncates run children-first so no parent is emptied while a child
    still points at it; upserts then run parents-first.  Returns the
    mutations and the tables they cover.
    """
    scope = set(header.tables if tables is None else tables) & set(header.tables)
    ordered = dependency_order([t for t in header.tables if t in scope])

    # Older dumps may still carry a truncate for an append-only table.
    truncated = {
        op.table
        for op in ops
        if op.op == "truncate" and op.table in scope and not is_append_only(op.table)
    }
    rows: dict[str, list[Mapping[str, Any]]] = {t: [] for t in ordered}
    for op in ops:
        if op.op == "upsert" and op.table in scope:
            rows[op.table].append(op.row)

    mutations = [
        Mutation(kind="delete", collection=t)
        for t in reversed(ordered)
        if t in truncated
    ]
    mutations.extend(
        Mutation(kind="upsert", collection=t, rows=tuple(rows[t]))
        for t in ordered
        if rows[t]
    )
    return mutations, ordered
