# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Audit entry data model and query filter."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from vigil.core.clock import parse_iso, to_iso
from vigil.core.constants import SYSTEM_ACTOR_ID, AuditAction, ResourceType


class Actor(BaseModel):
    """Identity of whoever performed an audited action."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    email: str | None = None
    name: str | None = None

    @classmethod
    def system(cls) -> Actor:
        return cls(id=SYSTEM_ACTOR_ID, name="Sistema")

    @property
    def label(self) -> str:
        return self.email or self.id or "anonymous"


class AuditEntry(BaseModel):
    """A single immutable fact about a sensitive operation.

    Each entry gets a random hex id.  ``timestamp`` is left unset by
    callers and stamped by :class:`~vigil.audit.recorder.AuditRecorder`
    from its clock at write time.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str | None = None
    user_email: str | None = None
    user_name: str | None = None
    action: AuditAction
    resource_type: ResourceType
    resource_id: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    timestamp: datetime | None = None
    success: bool = True
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def by(cls, actor: Actor | None, **fields: Any) -> AuditEntry:
        """Build an entry attributed to *actor*."""
        if actor is not None:
            fields.setdefault("user_id", actor.id)
            fields.setdefault("user_email", actor.email)
            fields.setdefault("user_name", actor.name)
        return cls(**fields)

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump()
        row["timestamp"] = to_iso(self.timestamp) if self.timestamp else None
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AuditEntry:
        data = dict(row)
        data["timestamp"] = parse_iso(data.get("timestamp"))
        data["metadata"] = data.get("metadata") or {}
        return cls.model_validate(data)


class AuditFilter(BaseModel):
    """Optional predicates for :meth:`AuditRecorder.query`.

    ``start`` is inclusive and ``end`` is exclusive.
    """

    user_id: str | None = None
    action: AuditAction | None = None
    actions: list[AuditAction] | None = None
    resource_type: ResourceType | None = None
    resource_id: str | None = None
    ip_address: str | None = None
    success: bool | None = None
    start: datetime | None = None
    end: datetime | None = None

    def to_filters(self) -> dict[str, Any]:
        filters: dict[str, Any] = {}
        if self.user_id is not None:
            filters["user_id"] = self.user_id
        if self.action is not None:
            filters["action"] = self.action
        if self.actions is not None:
            filters["action__in"] = list(self.actions)
        if self.resource_type is not None:
            filters["resource_type"] = self.resource_type
        if self.resource_id is not None:
            filters["resource_id"] = self.resource_id
        if self.ip_address is not None:
            filters["ip_address"] = self.ip_address
        if self.success is not None:
            filters["success"] = self.success
        if self.start is not None:
            filters["timestamp__gte"] = self.start
        if self.end is not None:
            filters["timestamp__lt"] = self.end
        return filters
