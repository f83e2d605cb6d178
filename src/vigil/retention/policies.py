# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Retention policy model, the built-in policy table, and the YAML loader.

A policies file looks like::

    policies:
      - table_name: appointments
        retention_days: 1825
        anonymize_after_days: 1095
        delete_after_days: 1825
      - table_name: integration_logs
        retention_days: 365
        delete_after_days: 365
        conditions:
          status: success
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from vigil.core.config import Settings
from vigil.core.exceptions import PolicyError
from vigil.retention.anonymizers import has_anonymizer
from vigil.storage.query import quote_identifier
from vigil.storage.schema import COLLECTIONS

logger = logging.getLogger("vigil.retention.policies")

# Tables whose lifecycle is owned elsewhere (backup catalog, request log).
_UNMANAGED = frozenset({"backup_logs", "data_subject_requests"})


class RetentionPolicy(BaseModel):
    """How long rows of one table live, and when they are redacted."""

    table_name: str
    retention_days: int = Field(gt=0)
    anonymize_after_days: int | None = Field(default=None, gt=0)
    delete_after_days: int = Field(gt=0)
    conditions: dict[str, Any] = Field(default_factory=dict)

    @field_validator("table_name")
    @classmethod
    def _known_table(cls, v: str) -> str:
        if v not in COLLECTIONS or v in _UNMANAGED:
            raise ValueError(f"Retention cannot be applied to table {v!r}")
        return v

    @field_validator("conditions")
    @classmethod
    def _condition_columns(cls, v: dict[str, Any]) -> dict[str, Any]:
        for key in v:
            quote_identifier(key.partition("__")[0])
        return v

    @model_validator(mode="after")
    def _ordered_windows(self) -> RetentionPolicy:
        if self.anonymize_after_days is not None:
            if not has_anonymizer(self.table_name):
                raise ValueError(f"No anonymization transform for {self.table_name!r}")
            if not (
                self.anonymize_after_days
                < self.delete_after_days
                <= self.retention_days
            ):
                raise ValueError(
                    "Expected anonymize_after_days < delete_after_days <= retention_days"
                )
        elif self.retention_days != self.delete_after_days:
            raise ValueError(
                "retention_days must equal delete_after_days without anonymization"
            )
        return self


def default_policies(audit_retention_days: int = 2555) -> list[RetentionPolicy]:
    """Built-in policy table: audit 7y, clinical 20y, scheduling and billing 5y."""
    return [
        RetentionPolicy(
            table_name="audit_logs",
            retention_days=audit_retention_days,
            delete_after_days=audit_retention_days,
        ),
        RetentionPolicy(
            table_name="medical_records",
            retention_days=7300,
            anonymize_after_days=5475,
            delete_after_days=7300,
        ),
        RetentionPolicy(
            table_name="appointments",
            retention_days=1825,
            anonymize_after_days=1095,
            delete_after_days=1825,
        ),
        RetentionPolicy(table_name="invoices", retention_days=1825, delete_after_days=1825),
        RetentionPolicy(
            table_name="integration_logs", retention_days=365, delete_after_days=365
        ),
    ]


def load_policies(path: str | Path) -> list[RetentionPolicy]:
    """Parse and validate a YAML policies file.

    Unlike rule loading, a bad policy is fatal for the whole file: applying
    a partial table could delete data a missing entry was meant to keep.
    """
    filepath = Path(path)
    try:
        data = yaml.safe_load(filepath.read_text(encoding="utf-8"))
    except OSError as exc:
        raise PolicyError(f"Cannot read retention policies from {filepath}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PolicyError(f"Invalid YAML syntax in {filepath.name}: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("policies"), list):
        raise PolicyError(f"Expected a top-level 'policies' list in {filepath.name}")

    policies: list[RetentionPolicy] = []
    for index, raw in enumerate(data["policies"]):
        if not isinstance(raw, dict):
            raise PolicyError(f"Policy #{index} in {filepath.name} is not a mapping")
        try:
            policies.append(RetentionPolicy(**raw))
        except ValidationError as exc:
            raise PolicyError(
                f"Schema validation failed for policy #{index} in {filepath.name}: {exc}"
            ) from exc

    tables = [p.table_name for p in policies]
    duplicates = sorted({t for t in tables if tables.count(t) > 1})
    if duplicates:
        raise PolicyError(f"Duplicate policies for: {', '.join(duplicates)}")

    logger.info("Loaded %d retention policies from %s", len(policies), filepath)
    return policies


def policies_from_settings(settings: Settings) -> list[RetentionPolicy]:
    """Policies for one run; the file is re-read every time."""
    if settings.retention_policies_file:
        return load_policies(settings.retention_policies_file)
    return default_policies(settings.audit_retention_days)
