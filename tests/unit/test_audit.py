# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Unit tests for the audit trail: entries, recorder, queries and purges."""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from vigil.audit.events import Actor, AuditEntry, AuditFilter
from vigil.audit.recorder import AuditRecorder
from vigil.core.constants import SYSTEM_ACTOR_ID, AuditAction, ResourceType
from vigil.core.exceptions import StorageError

ALICE = Actor(id="u-alice", email="alice@clinic.example", name="Alice")
BOB = Actor(id="u-bob", email="bob@clinic.example", name="Bob")


def _entry(action: AuditAction = AuditAction.READ, actor: Actor = ALICE, **fields) -> AuditEntry:
    fields.setdefault("resource_type", ResourceType.PATIENT)
    return AuditEntry.by(actor, action=action, **fields)


# ---------------------------------------------------------------------------
# Model tests
# ---------------------------------------------------------------------------


class TestAuditEntry:
    def test_by_copies_actor_fields(self):
        entry = _entry(resource_id="p1")
        assert entry.user_id == "u-alice"
        assert entry.user_email == "alice@clinic.example"
        assert entry.user_name == "Alice"
        assert len(entry.id) == 32

    def test_by_without_actor(self):
        entry = AuditEntry.by(None, action=AuditAction.LOGIN_FAILED, resource_type=ResourceType.AUTH)
        assert entry.user_id is None

    def test_entries_are_immutable(self):
        entry = _entry()
        with pytest.raises(ValidationError):
            entry.success = False  # type: ignore[misc]

    def test_system_actor(self):
        assert Actor.system().id == SYSTEM_ACTOR_ID
        assert Actor(id="x").label == "x"
        assert Actor().label == "anonymous"

    def test_filter_translation(self, clock):
        start = clock()
        filters = AuditFilter(
            action=AuditAction.LOGIN, success=False, start=start, end=start + timedelta(hours=1)
        ).to_filters()
        assert filters == {
            "action": AuditAction.LOGIN,
            "success": False,
            "timestamp__gte": start,
            "timestamp__lt": start + timedelta(hours=1),
        }


# ---------------------------------------------------------------------------
# Recorder tests
# ---------------------------------------------------------------------------


class TestRecord:
    async def test_record_stamps_time_from_clock(self, recorder: AuditRecorder, clock):
        stored = await recorder.record(_entry(resource_id="p1"))
        assert stored is not None
        assert stored.timestamp == clock()

        entries, total = await recorder.query()
        assert total == 1
        assert entries[0].id == stored.id
        assert entries[0].timestamp == clock()
        assert entries[0].resource_id == "p1"

    async def test_json_fields_roundtrip(self, recorder: AuditRecorder):
        await recorder.record(
            _entry(
                action=AuditAction.UPDATE,
                old_values={"name": "A"},
                new_values={"name": "B"},
                metadata={"reason": "typo"},
            )
        )
        (entry,), _ = await recorder.query()
        assert entry.old_values == {"name": "A"}
        assert entry.new_values == {"name": "B"}
        assert entry.metadata == {"reason": "typo"}
        assert entry.success is True

    async def test_store_failure_never_propagates(self, clock):
        store = AsyncMock()
        store.insert.side_effect = StorageError("disk full")
        recorder = AuditRecorder(store, clock=clock)
        assert await recorder.record(_entry()) is None

    async def test_json_mirror(self, store, clock, tmp_path):
        recorder = AuditRecorder(store, clock=clock, log_dir=tmp_path / "audit")
        stored = await recorder.record(_entry(resource_id="p9"))
        log_file = tmp_path / "audit" / f"audit-{clock().strftime('%Y-%m-%d')}.jsonl"
        lines = log_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        data = json.loads(lines[0])
        assert data["id"] == stored.id
        assert data["resource_id"] == "p9"


class TestQuery:
    async def test_newest_first_with_total(self, recorder: AuditRecorder, clock):
        ids = []
        for _ in range(4):
            ids.append((await recorder.record(_entry())).id)
            clock.advance(minutes=1)
        entries, total = await recorder.query(limit=2)
        assert total == 4
        assert [e.id for e in entries] == [ids[3], ids[2]]

        page2, _ = await recorder.query(limit=2, offset=2)
        assert [e.id for e in page2] == [ids[1], ids[0]]

    async def test_filters(self, recorder: AuditRecorder, clock):
        await recorder.record(_entry(AuditAction.LOGIN, ALICE, resource_type=ResourceType.AUTH))
        await recorder.record(_entry(AuditAction.READ, BOB))
        await recorder.record(_entry(AuditAction.EXPORT, ALICE))

        by_user, total = await recorder.query(AuditFilter(user_id="u-alice"))
        assert total == 2
        assert {e.action for e in by_user} == {AuditAction.LOGIN, AuditAction.EXPORT}

        _, reads = await recorder.query(AuditFilter(action=AuditAction.READ))
        assert reads == 1

        _, many = await recorder.query(
            AuditFilter(actions=[AuditAction.READ, AuditAction.EXPORT])
        )
        assert many == 2

    async def test_time_range_start_inclusive_end_exclusive(self, recorder: AuditRecorder, clock):
        t0 = clock()
        await recorder.record(_entry())
        clock.advance(hours=1)
        await recorder.record(_entry())

        assert await recorder.count(AuditFilter(start=t0, end=t0 + timedelta(hours=1))) == 1
        assert await recorder.count(AuditFilter(start=t0 + timedelta(hours=1))) == 1
        assert await recorder.count(AuditFilter(start=t0)) == 2

    async def test_fetch_all_oldest_first(self, recorder: AuditRecorder, clock):
        first = await recorder.record(_entry())
        clock.advance(seconds=5)
        second = await recorder.record(_entry())
        entries = await recorder.fetch_all(AuditFilter(action=AuditAction.READ))
        assert [e.id for e in entries] == [first.id, second.id]

    async def test_distinct_actors(self, recorder: AuditRecorder, clock):
        since = clock()
        await recorder.record(_entry(actor=ALICE))
        await recorder.record(_entry(actor=ALICE))
        await recorder.record(_entry(actor=BOB))
        await recorder.log_auth(AuditAction.LOGIN_FAILED, ip_address="10.0.0.1", success=False)
        assert await recorder.distinct_actors(since) == 2


class TestPurge:
    async def test_purge_older_than(self, recorder: AuditRecorder, clock):
        await recorder.record(_entry())
        clock.advance(days=10)
        recent = await recorder.record(_entry())

        assert await recorder.purge_older_than(5) == 1
        entries, total = await recorder.query()
        assert total == 1
        assert entries[0].id == recent.id

    @pytest.mark.parametrize("days", [0, -1])
    async def test_purge_rejects_non_positive(self, recorder: AuditRecorder, days: int):
        with pytest.raises(ValueError):
            await recorder.purge_older_than(days)


class TestConvenienceRecorders:
    async def test_log_auth_failure(self, recorder: AuditRecorder):
        entry = await recorder.log_auth(
            AuditAction.LOGIN_FAILED,
            actor=Actor(email="mallory@example.com"),
            ip_address="203.0.113.7",
            success=False,
            error_message="bad password",
        )
        assert entry.resource_type == ResourceType.AUTH
        assert entry.success is False
        assert entry.user_email == "mallory@example.com"

    async def test_log_sensitive_access(self, recorder: AuditRecorder):
        entry = await recorder.log_sensitive_access(
            ALICE, ResourceType.MEDICAL_RECORD, "rec-1", fields=["diagnosis"]
        )
        assert entry.action == AuditAction.SENSITIVE_DATA_ACCESS
        assert entry.metadata == {"fields": ["diagnosis"]}

    async def test_log_export(self, recorder: AuditRecorder):
        entry = await recorder.log_export(ALICE, ResourceType.PATIENT, record_count=120)
        assert entry.action == AuditAction.EXPORT
        assert entry.metadata["record_count"] == 120
        assert entry.metadata["format"] == "json"
