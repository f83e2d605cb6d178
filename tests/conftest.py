# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared test fixtures and configuration."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from vigil.audit.recorder import AuditRecorder
from vigil.crypto.cipher import CipherService
from vigil.storage.database import open_store
from vigil.storage.sqlite_backend import SQLiteDataStore

TEST_SECRET = "test-secret-do-not-use-in-production"
FAST_ITERATIONS = 1_000


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 10, 14, 0, tzinfo=UTC))


@pytest.fixture
async def store():
    """In-memory database with all migrations applied."""
    data_store = await open_store(":memory:")
    yield data_store
    await data_store.close()


@pytest.fixture
def recorder(store: SQLiteDataStore, clock: FrozenClock) -> AuditRecorder:
    return AuditRecorder(store, clock=clock)


@pytest.fixture
def cipher() -> CipherService:
    return CipherService(
        TEST_SECRET,
        kdf_iterations=FAST_ITERATIONS,
        hash_iterations=FAST_ITERATIONS,
    )


class Seeder:
    """Inserts minimal valid entity rows with controllable timestamps."""

    def __init__(self, store: SQLiteDataStore) -> None:
        self.store = store
        self._seq = 0

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq:04d}"

    async def patient(self, created_at: datetime, **fields) -> dict:
        row = {
            "id": self._next_id("pat"),
            "cpf": "12345678909",
            "name": "Maria Silva",
            "email": "maria@example.com",
            "phone": "11987654321",
            "address": {"street": "Rua A", "city": "Sao Paulo"},
            "emergency_contact": {"name": "Joao", "phone": "11911112222"},
            "created_at": created_at,
            "updated_at": created_at,
        }
        row.update(fields)
        await self.store.insert("patients", [row])
        return row

    async def medical_record(
        self, patient_id: str, created_at: datetime, **fields
    ) -> dict:
        row = {
            "id": self._next_id("rec"),
            "patient_id": patient_id,
            "doctor_id": "doc-1",
            "consultation_date": created_at,
            "chief_complaint": "Dor de cabeca",
            "anamnesis": "Historico detalhado",
            "physical_exam": {"bp": "120/80"},
            "diagnosis": "Enxaqueca",
            "prescription": "Repouso",
            "vital_signs": {"hr": 72},
            "created_at": created_at,
            "updated_at": created_at,
        }
        row.update(fields)
        await self.store.insert("medical_records", [row])
        return row

    async def appointment(self, patient_id: str, created_at: datetime, **fields) -> dict:
        row = {
            "id": self._next_id("apt"),
            "patient_id": patient_id,
            "doctor_id": "doc-1",
            "scheduled_at": created_at,
            "notes": "Retorno",
            "value": 250.0,
            "created_at": created_at,
            "updated_at": created_at,
        }
        row.update(fields)
        await self.store.insert("appointments", [row])
        return row

    async def invoice(self, appointment_id: str, created_at: datetime, **fields) -> dict:
        row = {
            "id": self._next_id("inv"),
            "appointment_id": appointment_id,
            "number": f"NF-{self._seq}",
            "amount": 250.0,
            "created_at": created_at,
            "updated_at": created_at,
        }
        row.update(fields)
        await self.store.insert("invoices", [row])
        return row

    async def attachment(self, record_id: str, created_at: datetime, **fields) -> dict:
        row = {
            "id": self._next_id("att"),
            "record_id": record_id,
            "filename": "exam.pdf",
            "file_path": "/uploads/exam.pdf",
            "created_at": created_at,
            "updated_at": created_at,
        }
        row.update(fields)
        await self.store.insert("attachments", [row])
        return row

    async def integration_log(self, created_at: datetime, **fields) -> dict:
        row = {
            "id": self._next_id("int"),
            "integration": "whatsapp",
            "operation": "send",
            "status": "ok",
            "payload": {"to": "11987654321"},
            "created_at": created_at,
            "updated_at": created_at,
        }
        row.update(fields)
        await self.store.insert("integration_logs", [row])
        return row


@pytest.fixture
def seed(store: SQLiteDataStore) -> Seeder:
    return Seeder(store)
