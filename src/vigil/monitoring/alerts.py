# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Security alert model, metrics snapshot, and the ``security_alerts`` repository."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from vigil.core.clock import parse_iso, to_iso
from vigil.core.constants import AlertStatus, AlertType, Severity
from vigil.storage.backend import DataStore

COLLECTION = "security_alerts"


class SecurityAlert(BaseModel):
    """A deduplicated finding raised by the anomaly detector.

    ``subject_key`` identifies who or what the alert is about
    (``ip:<addr>``, ``user:<id>`` or ``email:<addr>``) and is the second
    half of the deduplication signature together with ``alert_type``.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    alert_type: AlertType
    severity: Severity
    title: str
    description: str
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    subject_key: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump()
        for column in ("created_at", "updated_at", "resolved_at"):
            value = row[column]
            row[column] = to_iso(value) if value is not None else None
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SecurityAlert:
        data = dict(row)
        for column in ("created_at", "updated_at", "resolved_at"):
            data[column] = parse_iso(data.get(column))
        data["metadata"] = data.get("metadata") or {}
        return cls.model_validate(data)


class SecurityMetrics(BaseModel):
    """Activity counters over a trailing window, folded into a 0-100 score."""

    window_hours: int = 24
    failed_logins: int = 0
    successful_logins: int = 0
    sensitive_data_access: int = 0
    api_calls: int = 0
    unique_users: int = 0
    active_alerts: int = 0
    data_exports: int = 0
    unusual_activity_score: int = 0


class AlertStore:
    """Repository for persisting and querying security alerts."""

    def __init__(self, store: DataStore) -> None:
        self._store = store

    async def insert_if_new(self, alert: SecurityAlert, *, since: datetime) -> bool:
        """Insert *alert* unless an ACTIVE twin was created at or after *since*.

        The existence check and the insert are one statement, so concurrent
        scans cannot both insert the same signature.
        """
        return await self._store.insert_unless_exists(
            COLLECTION,
            alert.to_row(),
            {
                "alert_type": alert.alert_type,
                "subject_key": alert.subject_key,
                "status": AlertStatus.ACTIVE,
                "created_at__gte": since,
            },
        )

    async def get(self, alert_id: str) -> SecurityAlert | None:
        rows = await self._store.fetch_all(COLLECTION, {"id": alert_id}, limit=1)
        return SecurityAlert.from_row(rows[0]) if rows else None

    async def list_alerts(
        self,
        *,
        status: AlertStatus | None = None,
        severity: Severity | None = None,
        alert_type: AlertType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[SecurityAlert], int]:
        filters: dict[str, Any] = {}
        if status is not None:
            filters["status"] = status
        if severity is not None:
            filters["severity"] = severity
        if alert_type is not None:
            filters["alert_type"] = alert_type
        rows, total = await self._store.query(
            COLLECTION,
            filters,
            order_by=["-created_at", "-id"],
            limit=limit,
            offset=offset,
        )
        return [SecurityAlert.from_row(r) for r in rows], total

    async def count_active(self) -> int:
        return await self._store.count(COLLECTION, {"status": AlertStatus.ACTIVE})

    async def transition(
        self,
        alert_id: str,
        from_statuses: list[AlertStatus],
        patch: dict[str, Any],
    ) -> bool:
        """Apply *patch* only if the alert is still in one of *from_statuses*."""
        affected = await self._store.update(
            COLLECTION,
            {"id": alert_id, "status__in": from_statuses},
            patch,
        )
        return affected > 0
