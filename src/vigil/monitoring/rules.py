# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Anomaly rules evaluated against a window of audit entries.

Each rule consumes the entries for one :class:`AuditAction` and returns
candidate alerts.  Rules are pure: persistence and deduplication belong
to :class:`~vigil.monitoring.detector.AnomalyDetector`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from vigil.audit.events import AuditEntry
from vigil.core.config import Settings
from vigil.core.constants import AlertType, AuditAction, Severity
from vigil.monitoring.alerts import SecurityAlert

_SAMPLE_SIZE = 5


class DetectionThresholds(BaseModel):
    failed_logins_per_ip: int = 5
    failed_logins_per_user: int = 3
    sensitive_access_per_user: int = 50
    api_calls_per_user: int = 1000
    data_exports_per_user: int = 5
    unusual_login_hours: list[int] = [22, 23, 0, 1, 2, 3, 4, 5]
    local_timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: Settings) -> DetectionThresholds:
        return cls(
            failed_logins_per_ip=settings.failed_logins_per_ip,
            failed_logins_per_user=settings.failed_logins_per_user,
            sensitive_access_per_user=settings.sensitive_access_per_user,
            api_calls_per_user=settings.api_calls_per_user,
            data_exports_per_user=settings.data_exports_per_user,
            unusual_login_hours=settings.unusual_login_hours,
            local_timezone=settings.local_timezone,
        )


@dataclass(frozen=True, slots=True)
class RuleContext:
    thresholds: DetectionThresholds
    window_hours: int


class BaseAnomalyRule(ABC):
    """All anomaly rules inherit from this class."""

    alert_type: AlertType
    severity: Severity
    title: str
    action: AuditAction

    @abstractmethod
    def evaluate(self, entries: list[AuditEntry], ctx: RuleContext) -> list[SecurityAlert]:
        """Return candidate alerts for *entries* (all of :attr:`action`)."""
        ...


def _sample(entries: list[AuditEntry]) -> list[dict[str, Any]]:
    return [
        {
            "id": e.id,
            "timestamp": e.timestamp.isoformat() if e.timestamp else None,
            "user_email": e.user_email,
            "ip_address": e.ip_address,
        }
        for e in entries[:_SAMPLE_SIZE]
    ]


class _VolumeRule(BaseAnomalyRule):
    """Counts entries per subject and alerts at or above a threshold."""

    count_field: str

    @abstractmethod
    def subject_of(self, entry: AuditEntry) -> str | None:
        """Return the grouping value for *entry*, or ``None`` to skip it."""

    @abstractmethod
    def threshold(self, ctx: RuleContext) -> int: ...

    @abstractmethod
    def build(
        self, subject: str, group: list[AuditEntry], ctx: RuleContext
    ) -> SecurityAlert: ...

    def evaluate(self, entries: list[AuditEntry], ctx: RuleContext) -> list[SecurityAlert]:
        groups: dict[str, list[AuditEntry]] = defaultdict(list)
        for entry in entries:
            subject = self.subject_of(entry)
            if subject:
                groups[subject].append(entry)

        limit = self.threshold(ctx)
        return [
            self.build(subject, group, ctx)
            for subject, group in sorted(groups.items())
            if len(group) >= limit
        ]

    def _metadata(self, group: list[AuditEntry], ctx: RuleContext) -> dict[str, Any]:
        return {
            self.count_field: len(group),
            "threshold": self.threshold(ctx),
            "window_hours": ctx.window_hours,
            "sample": _sample(group),
        }


class FailedLoginsPerOrigin(_VolumeRule):
    alert_type = AlertType.MULTIPLE_FAILED_LOGINS_IP
    severity = Severity.HIGH
    title = "Multiple Failed Login Attempts from IP"
    action = AuditAction.LOGIN_FAILED
    count_field = "failed_attempts"

    def subject_of(self, entry: AuditEntry) -> str | None:
        return entry.ip_address

    def threshold(self, ctx: RuleContext) -> int:
        return ctx.thresholds.failed_logins_per_ip

    def build(self, subject: str, group: list[AuditEntry], ctx: RuleContext) -> SecurityAlert:
        return SecurityAlert(
            alert_type=self.alert_type,
            severity=self.severity,
            title=self.title,
            description=(
                f"{len(group)} failed login attempts from IP {subject} "
                f"in the last {ctx.window_hours} hours"
            ),
            ip_address=subject,
            subject_key=f"ip:{subject}",
            metadata=self._metadata(group, ctx),
        )


class FailedLoginsPerIdentity(_VolumeRule):
    alert_type = AlertType.MULTIPLE_FAILED_LOGINS_USER
    severity = Severity.MEDIUM
    title = "Multiple Failed Login Attempts for User"
    action = AuditAction.LOGIN_FAILED
    count_field = "failed_attempts"

    def subject_of(self, entry: AuditEntry) -> str | None:
        return entry.user_email

    def threshold(self, ctx: RuleContext) -> int:
        return ctx.thresholds.failed_logins_per_user

    def build(self, subject: str, group: list[AuditEntry], ctx: RuleContext) -> SecurityAlert:
        user_ids = {e.user_id for e in group if e.user_id}
        metadata = self._metadata(group, ctx)
        metadata["user_email"] = subject
        return SecurityAlert(
            alert_type=self.alert_type,
            severity=self.severity,
            title=self.title,
            description=(
                f"{len(group)} failed login attempts for user {subject} "
                f"in the last {ctx.window_hours} hours"
            ),
            user_id=user_ids.pop() if len(user_ids) == 1 else None,
            subject_key=f"email:{subject}",
            metadata=metadata,
        )


class _PerUserVolumeRule(_VolumeRule):
    """Volume rule keyed by acting user id."""

    verb: str

    def subject_of(self, entry: AuditEntry) -> str | None:
        return entry.user_id

    def build(self, subject: str, group: list[AuditEntry], ctx: RuleContext) -> SecurityAlert:
        first = group[0]
        who = f"{first.user_name or subject} ({first.user_email or 'unknown'})"
        return SecurityAlert(
            alert_type=self.alert_type,
            severity=self.severity,
            title=self.title,
            description=(
                f"User {who} {self.verb} {len(group)} times "
                f"in the last {ctx.window_hours} hours"
            ),
            user_id=subject,
            subject_key=f"user:{subject}",
            metadata=self._metadata(group, ctx),
        )


class SensitiveAccessVolume(_PerUserVolumeRule):
    alert_type = AlertType.UNUSUAL_DATA_ACCESS
    severity = Severity.MEDIUM
    title = "Unusual Data Access Pattern"
    action = AuditAction.SENSITIVE_DATA_ACCESS
    count_field = "access_count"
    verb = "accessed sensitive data"

    def threshold(self, ctx: RuleContext) -> int:
        return ctx.thresholds.sensitive_access_per_user


class ApiCallVolume(_PerUserVolumeRule):
    alert_type = AlertType.EXCESSIVE_API_USAGE
    severity = Severity.MEDIUM
    title = "Excessive API Usage"
    action = AuditAction.API_ACCESS
    count_field = "api_calls"
    verb = "called the API"

    def threshold(self, ctx: RuleContext) -> int:
        return ctx.thresholds.api_calls_per_user


class ExportVolume(_PerUserVolumeRule):
    alert_type = AlertType.EXCESSIVE_DATA_EXPORTS
    severity = Severity.HIGH
    title = "Excessive Data Exports"
    action = AuditAction.EXPORT
    count_field = "export_count"
    verb = "exported data"

    def threshold(self, ctx: RuleContext) -> int:
        return ctx.thresholds.data_exports_per_user


class OffHoursLogin(BaseAnomalyRule):
    """Successful logins whose local hour falls inside the night window."""

    alert_type = AlertType.UNUSUAL_LOGIN_TIME
    severity = Severity.LOW
    title = "Login at Unusual Hours"
    action = AuditAction.LOGIN

    def evaluate(self, entries: list[AuditEntry], ctx: RuleContext) -> list[SecurityAlert]:
        tz = ZoneInfo(ctx.thresholds.local_timezone)
        night = set(ctx.thresholds.unusual_login_hours)

        groups: dict[str, list[AuditEntry]] = defaultdict(list)
        for entry in entries:
            if not entry.success or not entry.user_id or entry.timestamp is None:
                continue
            if entry.timestamp.astimezone(tz).hour in night:
                groups[entry.user_id].append(entry)

        alerts = []
        for user_id, group in sorted(groups.items()):
            first = group[0]
            who = f"{first.user_name or user_id} ({first.user_email or 'unknown'})"
            alerts.append(
                SecurityAlert(
                    alert_type=self.alert_type,
                    severity=self.severity,
                    title=self.title,
                    description=(
                        f"User {who} logged in {len(group)} times during unusual hours"
                    ),
                    user_id=user_id,
                    subject_key=f"user:{user_id}",
                    metadata={
                        "unusual_logins": [
                            {
                                "timestamp": e.timestamp.isoformat(),
                                "local_hour": e.timestamp.astimezone(tz).hour,
                                "ip_address": e.ip_address,
                            }
                            for e in group
                        ],
                        "timezone": ctx.thresholds.local_timezone,
                    },
                )
            )
        return alerts


def default_rules() -> list[BaseAnomalyRule]:
    """The fixed battery run by every scan."""
    return [
        FailedLoginsPerOrigin(),
        FailedLoginsPerIdentity(),
        SensitiveAccessVolume(),
        OffHoursLogin(),
        ApiCallVolume(),
        ExportVolume(),
    ]
