# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Retention engine: policy sweeps and data subject request fulfillment.

Every write here is an independent statement.  A sweep or erasure that is
interrupted half-way leaves rows that the next run will pick up again, so
re-running is always safe.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field

from vigil.audit.events import Actor, AuditEntry
from vigil.audit.recorder import AuditRecorder
from vigil.core.clock import Clock, to_iso, utc_now
from vigil.core.constants import (
    AuditAction,
    RequestStatus,
    RequestType,
    ResourceType,
)
from vigil.core.exceptions import NotFoundError
from vigil.retention.anonymizers import anonymization_patch, erasure_patch
from vigil.retention.policies import RetentionPolicy
from vigil.retention.requests import DataSubjectRequest, RequestStore
from vigil.storage.backend import DataStore
from vigil.storage.schema import dependents_of

logger = logging.getLogger("vigil.retention")

# Keeps IN (...) lists well under SQLite's bound-parameter limit.
_ID_CHUNK = 500

_LEGAL_HOLD_NOTE = "Data anonymized due to legal retention requirements"
_ERASED_NOTE = "Complete data erasure performed"


class PolicyRun(BaseModel):
    table_name: str
    anonymized: int = 0
    deleted: int = 0
    cascaded: dict[str, int] = Field(default_factory=dict)
    error: str | None = None


class RetentionReport(BaseModel):
    processed: int = 0
    anonymized: int = 0
    deleted: int = 0
    runs: list[PolicyRun] = Field(default_factory=list)

    @property
    def failed_policies(self) -> list[str]:
        return [r.table_name for r in self.runs if r.error is not None]

    @property
    def partial(self) -> bool:
        return bool(self.failed_policies)


class ErasureResult(BaseModel):
    request: DataSubjectRequest
    mode: Literal["anonymized", "deleted"]
    affected: dict[str, int] = Field(default_factory=dict)


def _chunks(ids: list[str]) -> list[list[str]]:
    return [ids[i:i + _ID_CHUNK] for i in range(0, len(ids), _ID_CHUNK)]


class RetentionEngine:
    """Applies retention policies and handles access and erasure requests."""

    def __init__(
        self,
        store: DataStore,
        recorder: AuditRecorder,
        requests: RequestStore,
        *,
        legal_hold_days: int = 365,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._requests = requests
        self._legal_hold_days = legal_hold_days
        self._clock = clock

    # ------------------------------------------------------------------
    # Policy sweeps
    # ------------------------------------------------------------------

    async def apply(
        self, policies: list[RetentionPolicy], actor: Actor | None = None
    ) -> RetentionReport:
        """Run each policy in isolation; one failing policy does not stop the rest."""
        actor = actor or Actor.system()
        report = RetentionReport()

        for policy in policies:
            run = PolicyRun(table_name=policy.table_name)
            try:
                await self._apply_policy(policy, run)
            except Exception as exc:
                logger.exception("Retention policy for %s failed", policy.table_name)
                run.error = str(exc) or type(exc).__name__
            report.runs.append(run)
            report.anonymized += run.anonymized
            report.deleted += run.deleted

            if run.anonymized or run.deleted:
                await self._recorder.record(
                    AuditEntry.by(
                        actor,
                        action=AuditAction.SYSTEM,
                        resource_type=ResourceType.SYSTEM,
                        metadata={
                            "operation": "DATA_RETENTION_POLICY",
                            "table_name": policy.table_name,
                            "anonymized": run.anonymized,
                            "deleted": run.deleted,
                            "cascaded": run.cascaded,
                        },
                        success=run.error is None,
                        error_message=run.error,
                    )
                )

        report.processed = report.anonymized + report.deleted
        await self._recorder.record(
            AuditEntry.by(
                actor,
                action=AuditAction.SYSTEM,
                resource_type=ResourceType.SYSTEM,
                metadata={
                    "operation": "DATA_RETENTION_RUN",
                    "processed": report.processed,
                    "anonymized": report.anonymized,
                    "deleted": report.deleted,
                    "failed_policies": report.failed_policies,
                },
                success=not report.partial,
            )
        )
        logger.info(
            "Retention run processed=%d anonymized=%d deleted=%d failed=%s",
            report.processed,
            report.anonymized,
            report.deleted,
            report.failed_policies,
        )
        return report

    async def _apply_policy(self, policy: RetentionPolicy, run: PolicyRun) -> None:
        if policy.table_name == "audit_logs":
            run.deleted = await self._recorder.purge_older_than(policy.delete_after_days)
            return

        now = self._clock()
        delete_cutoff = now - timedelta(days=policy.delete_after_days)

        if policy.anonymize_after_days is not None:
            anonymize_cutoff = now - timedelta(days=policy.anonymize_after_days)
            run.anonymized = await self._store.update(
                policy.table_name,
                {
                    **policy.conditions,
                    "created_at__lt": anonymize_cutoff,
                    "created_at__gte": delete_cutoff,
                    "anonymized_at__isnull": True,
                },
                anonymization_patch(policy.table_name, now),
            )

        expired = await self._store.fetch_all(
            policy.table_name,
            {**policy.conditions, "created_at__lt": delete_cutoff},
        )
        counts = await self._delete_with_dependents(
            policy.table_name, [r["id"] for r in expired]
        )
        run.deleted = counts.pop(policy.table_name, 0)
        run.cascaded = counts

    async def _delete_with_dependents(
        self, collection: str, ids: list[str]
    ) -> dict[str, int]:
        """Delete rows and everything referencing them, leaves first."""
        counts: dict[str, int] = {}
        if not ids:
            return counts

        for child, fk_column in dependents_of(collection):
            child_ids: list[str] = []
            for chunk in _chunks(ids):
                rows = await self._store.fetch_all(child, {f"{fk_column}__in": chunk})
                child_ids.extend(r["id"] for r in rows)
            for table, n in (await self._delete_with_dependents(child, child_ids)).items():
                counts[table] = counts.get(table, 0) + n

        deleted = 0
        for chunk in _chunks(ids):
            deleted += await self._store.delete(collection, {"id__in": chunk})
        counts[collection] = counts.get(collection, 0) + deleted
        return counts

    # ------------------------------------------------------------------
    # Data subject requests
    # ------------------------------------------------------------------

    async def handle_access_request(
        self, subject_id: str, requester: Actor
    ) -> dict[str, Any]:
        """Gather everything held about *subject_id* into one disclosure bundle."""
        now = self._clock()
        patient = await self._require_patient(subject_id)

        records = await self._store.fetch_all(
            "medical_records", {"patient_id": subject_id}, order_by="consultation_date"
        )
        appointments = await self._store.fetch_all(
            "appointments", {"patient_id": subject_id}, order_by="scheduled_at"
        )
        invoices: list[dict[str, Any]] = []
        for chunk in _chunks([a["id"] for a in appointments]):
            invoices.extend(
                await self._store.fetch_all("invoices", {"appointment_id__in": chunk})
            )
        attachments: list[dict[str, Any]] = []
        for chunk in _chunks([r["id"] for r in records]):
            attachments.extend(
                await self._store.fetch_all("attachments", {"record_id__in": chunk})
            )

        bundle: dict[str, Any] = {
            "personal_data": patient,
            "medical_records": records,
            "appointments": appointments,
            "invoices": invoices,
            "attachments": attachments,
            "generated_at": to_iso(now),
        }

        await self._recorder.record(
            AuditEntry.by(
                requester,
                action=AuditAction.SENSITIVE_DATA_ACCESS,
                resource_type=ResourceType.PATIENT,
                resource_id=subject_id,
                metadata={
                    "request_type": RequestType.ACCESS,
                    "requested_by": requester.label,
                    "data_provided": True,
                },
            )
        )
        await self._requests.insert(
            DataSubjectRequest(
                patient_id=subject_id,
                request_type=RequestType.ACCESS,
                status=RequestStatus.COMPLETED,
                requested_by=requester.label,
                requested_at=now,
                completed_at=self._clock(),
                data_provided=bundle,
            )
        )
        return bundle

    async def handle_erasure_request(
        self,
        subject_id: str,
        requester: Actor,
        justification: str | None = None,
    ) -> ErasureResult:
        """Erase a subject, or anonymize them while a legal hold applies."""
        requested_at = self._clock()
        await self._require_patient(subject_id)

        hold_since = requested_at - timedelta(days=self._legal_hold_days)
        held = await self._store.count(
            "medical_records",
            {"patient_id": subject_id, "consultation_date__gte": hold_since},
        )
        redacted = await self._requests.redact_disclosures(subject_id, requested_at)

        if held:
            affected = await self._anonymize_subject(subject_id)
            mode: Literal["anonymized", "deleted"] = "anonymized"
            notes = _LEGAL_HOLD_NOTE
            if justification:
                notes = f"{notes}. Justification: {justification}"
            await self._recorder.record(
                AuditEntry.by(
                    requester,
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.PATIENT,
                    resource_id=subject_id,
                    metadata={
                        "operation": "ANONYMIZATION",
                        "reason": "LGPD_ERASURE_REQUEST",
                        "legal_hold_records": held,
                        "affected": affected,
                        "disclosures_redacted": redacted,
                    },
                )
            )
            logger.info(
                "Erasure of %s downgraded to anonymization (%d records under legal hold)",
                subject_id,
                held,
            )
        else:
            affected = await self._delete_with_dependents("patients", [subject_id])
            mode = "deleted"
            notes = justification or _ERASED_NOTE
            await self._recorder.record(
                AuditEntry.by(
                    requester,
                    action=AuditAction.DELETE,
                    resource_type=ResourceType.PATIENT,
                    resource_id=subject_id,
                    metadata={
                        "operation": "COMPLETE_ERASURE",
                        "reason": "LGPD_ERASURE_REQUEST",
                        "affected": affected,
                        "disclosures_redacted": redacted,
                    },
                )
            )
            logger.info("Erased subject %s: %s", subject_id, affected)

        request = await self._requests.insert(
            DataSubjectRequest(
                patient_id=subject_id,
                request_type=RequestType.ERASURE,
                status=RequestStatus.COMPLETED,
                requested_by=requester.label,
                requested_at=requested_at,
                completed_at=self._clock(),
                notes=notes,
            )
        )
        return ErasureResult(request=request, mode=mode, affected=affected)

    async def list_requests(
        self,
        *,
        patient_id: str | None = None,
        request_type: RequestType | None = None,
        status: RequestStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DataSubjectRequest], int]:
        return await self._requests.list_requests(
            patient_id=patient_id,
            request_type=request_type,
            status=status,
            limit=limit,
            offset=offset,
        )

    async def _anonymize_subject(self, subject_id: str) -> dict[str, int]:
        now = self._clock()
        return {
            "patients": await self._store.update(
                "patients", {"id": subject_id}, erasure_patch(now)
            ),
            "medical_records": await self._store.update(
                "medical_records",
                {"patient_id": subject_id},
                anonymization_patch("medical_records", now),
            ),
            "appointments": await self._store.update(
                "appointments",
                {"patient_id": subject_id},
                anonymization_patch("appointments", now),
            ),
        }

    async def _require_patient(self, subject_id: str) -> dict[str, Any]:
        rows = await self._store.fetch_all("patients", {"id": subject_id}, limit=1)
        if not rows:
            raise NotFoundError(f"Patient not found: {subject_id}")
        return rows[0]
