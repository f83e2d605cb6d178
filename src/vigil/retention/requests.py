# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Data subject request records and their repository."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from vigil.core.clock import parse_iso, to_iso
from vigil.core.constants import RequestStatus, RequestType
from vigil.storage.backend import DataStore

COLLECTION = "data_subject_requests"

_TIMESTAMPS = ("requested_at", "completed_at", "updated_at")


class DataSubjectRequest(BaseModel):
    """A fulfilled or pending request from the person a record is about."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    patient_id: str
    request_type: RequestType
    status: RequestStatus = RequestStatus.PENDING
    requested_by: str
    requested_at: datetime
    completed_at: datetime | None = None
    notes: str | None = None
    data_provided: dict[str, Any] | None = None
    updated_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump()
        for column in _TIMESTAMPS:
            value = row[column]
            row[column] = to_iso(value) if value is not None else None
        if row["updated_at"] is None:
            row["updated_at"] = row["completed_at"] or row["requested_at"]
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DataSubjectRequest:
        data = dict(row)
        for column in _TIMESTAMPS:
            data[column] = parse_iso(data.get(column))
        return cls.model_validate(data)


class RequestStore:
    """Repository for the ``data_subject_requests`` collection."""

    def __init__(self, store: DataStore) -> None:
        self._store = store

    async def insert(self, request: DataSubjectRequest) -> DataSubjectRequest:
        await self._store.insert(COLLECTION, [request.to_row()])
        return request

    async def get(self, request_id: str) -> DataSubjectRequest | None:
        rows = await self._store.fetch_all(COLLECTION, {"id": request_id}, limit=1)
        return DataSubjectRequest.from_row(rows[0]) if rows else None

    async def list_requests(
        self,
        *,
        patient_id: str | None = None,
        request_type: RequestType | None = None,
        status: RequestStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DataSubjectRequest], int]:
        filters: dict[str, Any] = {}
        if patient_id is not None:
            filters["patient_id"] = patient_id
        if request_type is not None:
            filters["request_type"] = request_type
        if status is not None:
            filters["status"] = status
        rows, total = await self._store.query(
            COLLECTION,
            filters,
            order_by=["-requested_at", "-id"],
            limit=limit,
            offset=offset,
        )
        return [DataSubjectRequest.from_row(r) for r in rows], total

    async def redact_disclosures(self, patient_id: str, at: datetime) -> int:
        """Drop the disclosure bundles kept on *patient_id*'s earlier requests.

        The request rows stay so the compliance history is intact; only the
        copied personal data is replaced by a marker.
        """
        return await self._store.update(
            COLLECTION,
            {"patient_id": patient_id, "data_provided__isnull": False},
            {
                "data_provided": {"redacted": True, "redacted_at": to_iso(at)},
                "updated_at": to_iso(at),
            },
        )
