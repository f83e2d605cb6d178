# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Registry of entity collections known to the engine.

Each collection declares which columns hold JSON documents or booleans
(so the store can round-trip them), the column that tracks modification
time for incremental backups, and its foreign-key parents.  Append-only
collections are never emptied by a restore; their rows are only merged.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Collection:
    """Static description of one table."""

    name: str
    json_columns: frozenset[str] = frozenset()
    bool_columns: frozenset[str] = frozenset()
    change_column: str | None = "updated_at"
    append_only: bool = False
    parents: tuple[tuple[str, str], ...] = field(default=())


COLLECTIONS: dict[str, Collection] = {
    c.name: c
    for c in (
        Collection("users", bool_columns=frozenset({"active"})),
        Collection(
            "patients",
            json_columns=frozenset({"address", "insurance_info", "emergency_contact"}),
        ),
        Collection(
            "medical_records",
            json_columns=frozenset({"physical_exam", "vital_signs"}),
            parents=(("patients", "patient_id"),),
        ),
        Collection("appointments", parents=(("patients", "patient_id"),)),
        Collection("attachments", parents=(("medical_records", "record_id"),)),
        Collection("invoices", parents=(("appointments", "appointment_id"),)),
        Collection("integration_logs", json_columns=frozenset({"payload"})),
        Collection(
            "audit_logs",
            json_columns=frozenset({"old_values", "new_values", "metadata"}),
            bool_columns=frozenset({"success"}),
            change_column=None,
            append_only=True,
        ),
        Collection(
            "security_alerts",
            json_columns=frozenset({"metadata"}),
            change_column=None,
        ),
        Collection(
            "data_subject_requests",
            json_columns=frozenset({"data_provided"}),
        ),
        Collection(
            "backup_logs",
            json_columns=frozenset({"metadata"}),
            change_column=None,
        ),
    )
}

# Parents before children; restores insert in this order.
BACKUP_TABLES: tuple[str, ...] = (
    "users",
    "patients",
    "medical_records",
    "appointments",
    "attachments",
    "invoices",
    "integration_logs",
    "audit_logs",
    "security_alerts",
    "data_subject_requests",
)


def get_collection(name: str) -> Collection:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise KeyError(f"Unknown collection: {name!r}") from None


def is_append_only(name: str) -> bool:
    collection = COLLECTIONS.get(name)
    return collection is not None and collection.append_only


def dependents_of(name: str) -> list[tuple[str, str]]:
    """Return ``(child_collection, fk_column)`` pairs that reference *name*."""
    return [
        (child.name, fk_column)
        for child in COLLECTIONS.values()
        for parent, fk_column in child.parents
        if parent == name
    ]


def dependency_order(tables: list[str] | tuple[str, ...]) -> list[str]:
    """Order *tables* parents-first according to :data:`BACKUP_TABLES`."""
    rank = {name: i for i, name in enumerate(BACKUP_TABLES)}
    return sorted(tables, key=lambda t: rank.get(t, len(rank)))
