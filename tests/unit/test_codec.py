# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the JSON-lines dump format."""

from __future__ import annotations

import json

import pytest

from vigil.backup.codec import (
    DUMP_FORMAT,
    DumpHeader,
    decode_dump,
    encode_dump,
    to_mutations,
)
from vigil.core.exceptions import BackupError

FULL = DumpHeader(
    kind="full",
    tables=("patients", "medical_records", "integration_logs"),
    created_at="2026-03-10T14:00:00.000000+00:00",
)
ROWS = {
    "patients": [{"id": "p1", "name": "A"}],
    "medical_records": [{"id": "r1", "patient_id": "p1"}],
    "integration_logs": [],
}


def _lines(*objs) -> bytes:
    return ("\n".join(json.dumps(o) for o in objs) + "\n").encode()


HEADER = {"format": DUMP_FORMAT, "version": 1, "kind": "incremental", "tables": ["patients"]}


class TestEncode:
    def test_full_dump_layout(self):
        lines = encode_dump(FULL, ROWS).decode().splitlines()
        header = json.loads(lines[0])
        assert header["format"] == "vigil-dump"
        assert header["version"] == 1
        assert header["since"] is None
        ops = [json.loads(line) for line in lines[1:]]
        assert [(o["op"], o["table"]) for o in ops] == [
            ("truncate", "patients"),
            ("upsert", "patients"),
            ("truncate", "medical_records"),
            ("upsert", "medical_records"),
            ("truncate", "integration_logs"),
        ]

    def test_incremental_has_no_truncates(self):
        header = DumpHeader(
            kind="incremental",
            tables=FULL.tables,
            created_at=FULL.created_at,
            since="2026-03-09T14:00:00.000000+00:00",
        )
        _, ops = decode_dump(encode_dump(header, ROWS))
        assert {op.op for op in ops} == {"upsert"}

    def test_identical_input_identical_bytes(self):
        assert encode_dump(FULL, ROWS) == encode_dump(FULL, ROWS)


class TestDecode:
    @pytest.mark.parametrize(
        "data, message",
        [
            (b"", "empty"),
            (b"\xff\xfe", "UTF-8"),
            (b"not json\n", "header"),
            (_lines({"format": "other"}), "Not a vigil dump"),
            (_lines({**HEADER, "version": 2}), "version"),
            (_lines({**HEADER, "kind": "differential"}), "kind"),
            (_lines(HEADER, {"op": "drop", "table": "patients"}), "opcode"),
            (_lines(HEADER, {"op": "upsert", "table": "users", "row": {"id": "u"}}), "undeclared"),
            (_lines(HEADER, {"op": "truncate", "table": "patients"}), "incremental"),
            (_lines(HEADER, {"op": "upsert", "table": "patients", "row": {"name": "x"}}), "no id"),
            (_lines(HEADER) + b"{broken\n", "line 2"),
        ],
    )
    def test_defects(self, data: bytes, message: str):
        with pytest.raises(BackupError, match=message):
            decode_dump(data)

    def test_blank_lines_ignored(self):
        data = _lines(HEADER) + b"\n" + _lines(
            {"op": "upsert", "table": "patients", "row": {"id": "p1"}}
        )
        header, ops = decode_dump(data)
        assert header.kind == "incremental"
        assert len(ops) == 1


class TestMutations:
    def test_truncates_children_first_then_upserts_parents_first(self):
        header, ops = decode_dump(encode_dump(FULL, ROWS))
        mutations, scope = to_mutations(header, ops)
        assert scope == ["patients", "medical_records", "integration_logs"]
        assert [(m.kind, m.collection) for m in mutations] == [
            ("delete", "integration_logs"),
            ("delete", "medical_records"),
            ("delete", "patients"),
            ("upsert", "patients"),
            ("upsert", "medical_records"),
        ]

    def test_audit_trail_is_merged_not_truncated(self):
        header = DumpHeader(
            kind="full", tables=("patients", "audit_logs"), created_at=FULL.created_at
        )
        rows = {"audit_logs": [{"id": "a1", "action": "LOGIN"}]}
        lines = [json.loads(line) for line in encode_dump(header, rows).decode().splitlines()[1:]]
        assert {"op": "truncate", "table": "audit_logs"} not in lines

        legacy = _lines(
            {**HEADER, "kind": "full", "tables": ["audit_logs"]},
            {"op": "truncate", "table": "audit_logs"},
            {"op": "upsert", "table": "audit_logs", "row": {"id": "a1"}},
        )
        mutations, _ = to_mutations(*decode_dump(legacy))
        assert [(m.kind, m.collection) for m in mutations] == [("upsert", "audit_logs")]

    def test_scope_limits_tables(self):
        header, ops = decode_dump(encode_dump(FULL, ROWS))
        mutations, scope = to_mutations(header, ops, ["patients", "users"])
        assert scope == ["patients"]
        assert [(m.kind, m.collection) for m in mutations] == [
            ("delete", "patients"),
            ("upsert", "patients"),
        ]
