# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Entity-specific redaction transforms.

Each transform is a fixed column patch, so applying it twice leaves the
row exactly as applying it once.  ``anonymized_at`` is set alongside the
patch and lets retention sweeps skip rows that were already redacted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from vigil.core.constants import REDACTED_NAME, REDACTED_PATIENT_NAME, REDACTED_TEXT

_TRANSFORMS: dict[str, dict[str, Any]] = {
    "patients": {
        "name": REDACTED_NAME,
        "email": None,
        "phone": None,
        "address": None,
        "emergency_contact": None,
    },
    "medical_records": {
        "anamnesis": REDACTED_TEXT,
        "physical_exam": None,
        "diagnosis": REDACTED_TEXT,
        "prescription": REDACTED_TEXT,
        "vital_signs": None,
    },
    "appointments": {
        "notes": REDACTED_TEXT,
    },
}

# Erasure requests also strip the national identifier.
_ERASURE_PATIENT: dict[str, Any] = {
    "name": REDACTED_PATIENT_NAME,
    "cpf": REDACTED_NAME,
    "email": None,
    "phone": None,
    "address": None,
    "emergency_contact": None,
}


def has_anonymizer(collection: str) -> bool:
    return collection in _TRANSFORMS


def anonymization_patch(collection: str, now: datetime) -> dict[str, Any]:
    """Return the column patch that redacts one row of *collection*."""
    try:
        patch = dict(_TRANSFORMS[collection])
    except KeyError:
        raise KeyError(f"No anonymization transform for {collection!r}") from None
    patch["anonymized_at"] = now
    patch["updated_at"] = now
    return patch


def erasure_patch(now: datetime) -> dict[str, Any]:
    """Patch applied to a patient whose erasure was downgraded."""
    patch = dict(_ERASURE_PATIENT)
    patch["anonymized_at"] = now
    patch["updated_at"] = now
    return patch
