# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Versioned database migration system for the vigil database.

Applied versions are tracked in a ``schema_migrations`` table.  Each
migration is idempotent and runs inside its own transaction.  Foreign keys
are declared ``DEFERRABLE INITIALLY DEFERRED`` so that multi-statement
restores are validated at commit time rather than per statement.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Migration registry infrastructure
# ---------------------------------------------------------------------------

MigrationFunc = Callable[[aiosqlite.Connection], Coroutine[Any, Any, None]]


@dataclass(frozen=True, slots=True)
class Migration:
    """A single database migration."""

    version: int
    name: str
    func: MigrationFunc


# Ordered list of all migrations.  New migrations are appended here.
_MIGRATIONS: list[Migration] = []


def _register(version: int, name: str) -> Callable[[MigrationFunc], MigrationFunc]:
    """Decorator that registers a migration function."""

    def decorator(fn: MigrationFunc) -> MigrationFunc:
        _MIGRATIONS.append(Migration(version=version, name=name, func=fn))
        return fn

    return decorator


_CREATE_SCHEMA_MIGRATIONS = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


async def _ensure_migrations_table(db: aiosqlite.Connection) -> None:
    await db.execute(_CREATE_SCHEMA_MIGRATIONS)


async def get_current_version(db: aiosqlite.Connection) -> int:
    """Return the highest applied migration version, or 0 if none."""
    await _ensure_migrations_table(db)
    cursor = await db.execute(
        "SELECT COALESCE(MAX(version), 0) FROM schema_migrations"
    )
    row = await cursor.fetchone()
    return int(row[0]) if row else 0


async def get_pending_migrations(db: aiosqlite.Connection) -> list[Migration]:
    """Return migrations that have not yet been applied."""
    current = await get_current_version(db)
    return [m for m in _MIGRATIONS if m.version > current]


async def run_migrations(db: aiosqlite.Connection) -> list[Migration]:
    """Run all pending migrations in order and return those applied."""
    await _ensure_migrations_table(db)

    current = await get_current_version(db)
    applied: list[Migration] = []

    for migration in _MIGRATIONS:
        if migration.version <= current:
            continue

        logger.info(
            "Applying migration %03d: %s", migration.version, migration.name
        )

        await db.execute("BEGIN")
        try:
            await migration.func(db)
            await db.execute(
                "INSERT OR IGNORE INTO schema_migrations (version, name) VALUES (?, ?)",
                (migration.version, migration.name),
            )
            await db.execute("COMMIT")
        except BaseException:
            await db.execute("ROLLBACK")
            raise

        applied.append(migration)
        logger.info("Migration %03d applied successfully.", migration.version)

    return applied


# =========================================================================
# Migration 001 -- Entity tables owned by the surrounding application
# =========================================================================

_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    name TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'receptionist',
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CREATE_PATIENTS = """
CREATE TABLE IF NOT EXISTS patients (
    id TEXT PRIMARY KEY,
    cpf TEXT,
    name TEXT NOT NULL,
    birth_date TEXT,
    phone TEXT,
    email TEXT,
    address TEXT,
    insurance_info TEXT,
    emergency_contact TEXT,
    anonymized_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CREATE_MEDICAL_RECORDS = """
CREATE TABLE IF NOT EXISTS medical_records (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL
        REFERENCES patients(id) DEFERRABLE INITIALLY DEFERRED,
    doctor_id TEXT,
    consultation_date TEXT NOT NULL,
    chief_complaint TEXT,
    anamnesis TEXT,
    physical_exam TEXT,
    diagnosis TEXT,
    prescription TEXT,
    vital_signs TEXT,
    follow_up_date TEXT,
    anonymized_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CREATE_APPOINTMENTS = """
CREATE TABLE IF NOT EXISTS appointments (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL
        REFERENCES patients(id) DEFERRABLE INITIALLY DEFERRED,
    doctor_id TEXT,
    scheduled_at TEXT NOT NULL,
    duration_minutes INTEGER DEFAULT 30,
    status TEXT NOT NULL DEFAULT 'scheduled',
    notes TEXT,
    value REAL,
    payment_status TEXT NOT NULL DEFAULT 'pending',
    anonymized_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CREATE_ATTACHMENTS = """
CREATE TABLE IF NOT EXISTS attachments (
    id TEXT PRIMARY KEY,
    record_id TEXT NOT NULL
        REFERENCES medical_records(id) DEFERRABLE INITIALLY DEFERRED,
    filename TEXT NOT NULL,
    file_path TEXT NOT NULL,
    mime_type TEXT,
    file_size INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CREATE_INVOICES = """
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    appointment_id TEXT NOT NULL
        REFERENCES appointments(id) DEFERRABLE INITIALLY DEFERRED,
    number TEXT,
    amount REAL,
    status TEXT NOT NULL DEFAULT 'pending',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_CREATE_INTEGRATION_LOGS = """
CREATE TABLE IF NOT EXISTS integration_logs (
    id TEXT PRIMARY KEY,
    integration TEXT NOT NULL,
    operation TEXT,
    status TEXT,
    payload TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_INDEXES_001 = [
    "CREATE INDEX IF NOT EXISTS idx_patients_created_at ON patients(created_at);",
    "CREATE INDEX IF NOT EXISTS idx_medical_records_patient ON medical_records(patient_id);",
    "CREATE INDEX IF NOT EXISTS idx_medical_records_created_at ON medical_records(created_at);",
    "CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments(patient_id);",
    "CREATE INDEX IF NOT EXISTS idx_appointments_created_at ON appointments(created_at);",
    "CREATE INDEX IF NOT EXISTS idx_attachments_record ON attachments(record_id);",
    "CREATE INDEX IF NOT EXISTS idx_invoices_appointment ON invoices(appointment_id);",
    "CREATE INDEX IF NOT EXISTS idx_integration_logs_created_at ON integration_logs(created_at);",
]


@_register(1, "entity_tables")
async def _migration_001_entity_tables(db: aiosqlite.Connection) -> None:
    """Create the application entity tables the engine protects."""
    for ddl in (
        _CREATE_USERS,
        _CREATE_PATIENTS,
        _CREATE_MEDICAL_RECORDS,
        _CREATE_APPOINTMENTS,
        _CREATE_ATTACHMENTS,
        _CREATE_INVOICES,
        _CREATE_INTEGRATION_LOGS,
    ):
        await db.execute(ddl)

    for idx_sql in _INDEXES_001:
        await db.execute(idx_sql)


# =========================================================================
# Migration 002 -- Audit trail, alerts, subject requests, backup catalog
# =========================================================================

_CREATE_AUDIT_LOGS = """
CREATE TABLE IF NOT EXISTS audit_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    user_email TEXT,
    user_name TEXT,
    action TEXT NOT NULL,
    resource_type TEXT NOT NULL,
    resource_id TEXT,
    old_values TEXT,
    new_values TEXT,
    ip_address TEXT,
    user_agent TEXT,
    session_id TEXT,
    timestamp TEXT NOT NULL,
    success INTEGER NOT NULL DEFAULT 1,
    error_message TEXT,
    metadata TEXT
);
"""

_CREATE_SECURITY_ALERTS = """
CREATE TABLE IF NOT EXISTS security_alerts (
    id TEXT PRIMARY KEY,
    alert_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    user_id TEXT,
    ip_address TEXT,
    user_agent TEXT,
    subject_key TEXT NOT NULL DEFAULT '',
    metadata TEXT,
    status TEXT NOT NULL DEFAULT 'ACTIVE',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    resolved_at TEXT,
    resolved_by TEXT,
    resolution_notes TEXT
);
"""

_CREATE_DATA_SUBJECT_REQUESTS = """
CREATE TABLE IF NOT EXISTS data_subject_requests (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    request_type TEXT NOT NULL,
    status TEXT NOT NULL,
    requested_by TEXT NOT NULL,
    requested_at TEXT NOT NULL,
    completed_at TEXT,
    notes TEXT,
    data_provided TEXT,
    updated_at TEXT NOT NULL
);
"""

_CREATE_BACKUP_LOGS = """
CREATE TABLE IF NOT EXISTS backup_logs (
    id TEXT PRIMARY KEY,
    backup_type TEXT NOT NULL,
    status TEXT NOT NULL,
    file_path TEXT,
    file_size INTEGER,
    checksum TEXT,
    encryption_key_id TEXT,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    error_message TEXT,
    metadata TEXT
);
"""

_INDEXES_002 = [
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_timestamp ON audit_logs(timestamp);",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_action_ts ON audit_logs(action, timestamp);",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_user ON audit_logs(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_audit_logs_resource ON audit_logs(resource_type, resource_id);",
    (
        "CREATE INDEX IF NOT EXISTS idx_security_alerts_dedup "
        "ON security_alerts(alert_type, subject_key, status, created_at);"
    ),
    "CREATE INDEX IF NOT EXISTS idx_security_alerts_status ON security_alerts(status);",
    "CREATE INDEX IF NOT EXISTS idx_dsr_patient ON data_subject_requests(patient_id);",
    "CREATE INDEX IF NOT EXISTS idx_backup_logs_status ON backup_logs(status, completed_at);",
]


@_register(2, "compliance_tables")
async def _migration_002_compliance_tables(db: aiosqlite.Connection) -> None:
    """Create the tables owned by the compliance engine itself."""
    for ddl in (
        _CREATE_AUDIT_LOGS,
        _CREATE_SECURITY_ALERTS,
        _CREATE_DATA_SUBJECT_REQUESTS,
        _CREATE_BACKUP_LOGS,
    ):
        await db.execute(ddl)

    for idx_sql in _INDEXES_002:
        await db.execute(idx_sql)
