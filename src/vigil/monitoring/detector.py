# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Anomaly detector: scans the audit trail and manages alert lifecycles."""

from __future__ import annotations

import logging
import math
from datetime import timedelta

from vigil.audit.events import Actor, AuditEntry, AuditFilter
from vigil.audit.recorder import AuditRecorder
from vigil.core.clock import Clock, utc_now
from vigil.core.constants import (
    ACTIVE_ALERT_MAX_POINTS,
    ACTIVE_ALERT_POINTS,
    ACTIVITY_SCORE_CAPS,
    TERMINAL_ALERT_STATUSES,
    AlertStatus,
    AlertType,
    AuditAction,
    ResourceType,
    Severity,
)
from vigil.core.exceptions import InvalidTransitionError, NotFoundError
from vigil.monitoring.alerts import AlertStore, SecurityAlert, SecurityMetrics
from vigil.monitoring.rules import (
    BaseAnomalyRule,
    DetectionThresholds,
    RuleContext,
    default_rules,
)

logger = logging.getLogger("vigil.monitoring")


def unusual_activity_score(
    *,
    failed_logins: int,
    sensitive_data_access: int,
    api_calls: int,
    data_exports: int,
    active_alerts: int,
) -> int:
    """Fold activity counters into a bounded 0-100 score."""
    counts = {
        "failed_logins": failed_logins,
        "sensitive_data_access": sensitive_data_access,
        "api_calls": api_calls,
        "data_exports": data_exports,
    }
    score = 0.0
    for signal, (saturation, max_points) in ACTIVITY_SCORE_CAPS.items():
        score += min(max_points, counts[signal] / saturation * max_points)
    score += min(ACTIVE_ALERT_MAX_POINTS, active_alerts * ACTIVE_ALERT_POINTS)
    # Round half up.
    return int(math.floor(score + 0.5))


class AnomalyDetector:
    """Runs the rule battery and owns the alert state machine.

    ``ACTIVE -> INVESTIGATING -> {RESOLVED, FALSE_POSITIVE}``; an ACTIVE
    alert may also be closed directly.
    """

    def __init__(
        self,
        recorder: AuditRecorder,
        alerts: AlertStore,
        *,
        thresholds: DetectionThresholds | None = None,
        dedup_window: timedelta = timedelta(hours=1),
        scan_window: timedelta = timedelta(hours=24),
        rules: list[BaseAnomalyRule] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._recorder = recorder
        self._alerts = alerts
        self._thresholds = thresholds or DetectionThresholds()
        self._dedup_window = dedup_window
        self._scan_window = scan_window
        self._rules = rules if rules is not None else default_rules()
        self._clock = clock

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def scan(self, window: timedelta | None = None) -> list[SecurityAlert]:
        """Evaluate every rule over the trailing *window*.

        Returns only the alerts that were actually inserted; candidates
        suppressed by deduplication are dropped silently.
        """
        window = window or self._scan_window
        now = self._clock()
        since = now - window
        ctx = RuleContext(
            thresholds=self._thresholds,
            window_hours=max(1, round(window.total_seconds() / 3600)),
        )

        entries_by_action: dict[AuditAction, list[AuditEntry]] = {}
        candidates: list[SecurityAlert] = []
        for rule in self._rules:
            if rule.action not in entries_by_action:
                entries_by_action[rule.action] = await self._recorder.fetch_all(
                    AuditFilter(action=rule.action, start=since)
                )
            candidates.extend(rule.evaluate(entries_by_action[rule.action], ctx))

        dedup_since = now - self._dedup_window
        created: list[SecurityAlert] = []
        for candidate in candidates:
            alert = candidate.model_copy(update={"created_at": now, "updated_at": now})
            if await self._alerts.insert_if_new(alert, since=dedup_since):
                created.append(alert)
            else:
                logger.debug(
                    "Suppressed duplicate alert type=%s subject=%s",
                    alert.alert_type,
                    alert.subject_key,
                )

        if created:
            logger.warning(
                "Anomaly scan raised %d alert(s) from %d candidate(s)",
                len(created),
                len(candidates),
            )
            await self._recorder.record(
                AuditEntry.by(
                    Actor.system(),
                    action=AuditAction.SYSTEM,
                    resource_type=ResourceType.SECURITY_ALERT,
                    metadata={
                        "operation": "anomaly_scan",
                        "alerts_created": [a.id for a in created],
                        "candidates": len(candidates),
                    },
                )
            )
        return created

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def get_metrics(self, window: timedelta = timedelta(hours=24)) -> SecurityMetrics:
        now = self._clock()
        since = now - window

        async def _count(action: AuditAction) -> int:
            return await self._recorder.count(AuditFilter(action=action, start=since))

        failed = await _count(AuditAction.LOGIN_FAILED)
        logins = await _count(AuditAction.LOGIN)
        sensitive = await _count(AuditAction.SENSITIVE_DATA_ACCESS)
        api_calls = await _count(AuditAction.API_ACCESS)
        exports = await _count(AuditAction.EXPORT)
        unique_users = await self._recorder.distinct_actors(since)
        active = await self._alerts.count_active()

        return SecurityMetrics(
            window_hours=max(1, round(window.total_seconds() / 3600)),
            failed_logins=failed,
            successful_logins=logins,
            sensitive_data_access=sensitive,
            api_calls=api_calls,
            unique_users=unique_users,
            active_alerts=active,
            data_exports=exports,
            unusual_activity_score=unusual_activity_score(
                failed_logins=failed,
                sensitive_data_access=sensitive,
                api_calls=api_calls,
                data_exports=exports,
                active_alerts=active,
            ),
        )

    # ------------------------------------------------------------------
    # Alert lifecycle
    # ------------------------------------------------------------------

    async def list_alerts(
        self,
        *,
        status: AlertStatus | None = None,
        severity: Severity | None = None,
        alert_type: AlertType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[SecurityAlert], int]:
        return await self._alerts.list_alerts(
            status=status,
            severity=severity,
            alert_type=alert_type,
            limit=limit,
            offset=offset,
        )

    async def resolve_alert(
        self,
        alert_id: str,
        resolver: Actor,
        notes: str = "",
        status: AlertStatus = AlertStatus.RESOLVED,
    ) -> SecurityAlert:
        """Close an alert as RESOLVED or FALSE_POSITIVE.

        Resolving an alert that is already closed is a no-op that returns
        the alert unchanged.
        """
        if status not in TERMINAL_ALERT_STATUSES:
            raise InvalidTransitionError(
                f"Alerts can only be resolved to {sorted(TERMINAL_ALERT_STATUSES)}, "
                f"not {status}"
            )
        alert = await self._require(alert_id)
        if alert.status in TERMINAL_ALERT_STATUSES:
            return alert

        now = self._clock()
        changed = await self._alerts.transition(
            alert_id,
            [AlertStatus.ACTIVE, AlertStatus.INVESTIGATING],
            {
                "status": status,
                "resolved_at": now,
                "resolved_by": resolver.id,
                "resolution_notes": notes,
                "updated_at": now,
            },
        )
        updated = await self._require(alert_id)
        if changed:
            logger.info("Alert %s closed as %s by %s", alert_id, status, resolver.label)
            await self._recorder.record(
                AuditEntry.by(
                    resolver,
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.SECURITY_ALERT,
                    resource_id=alert_id,
                    old_values={"status": alert.status},
                    new_values={"status": status, "resolution_notes": notes},
                )
            )
        return updated

    async def investigate_alert(
        self, alert_id: str, investigator: Actor, notes: str | None = None
    ) -> SecurityAlert:
        """Move an ACTIVE alert to INVESTIGATING."""
        alert = await self._require(alert_id)
        if alert.status == AlertStatus.INVESTIGATING:
            return alert
        if alert.status in TERMINAL_ALERT_STATUSES:
            raise InvalidTransitionError(
                f"Alert {alert_id} is already {alert.status}"
            )

        patch: dict[str, object] = {
            "status": AlertStatus.INVESTIGATING,
            "updated_at": self._clock(),
        }
        if notes:
            patch["resolution_notes"] = notes
        changed = await self._alerts.transition(alert_id, [AlertStatus.ACTIVE], patch)
        updated = await self._require(alert_id)
        if changed:
            await self._recorder.record(
                AuditEntry.by(
                    investigator,
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.SECURITY_ALERT,
                    resource_id=alert_id,
                    old_values={"status": alert.status},
                    new_values={"status": AlertStatus.INVESTIGATING},
                )
            )
        return updated

    async def _require(self, alert_id: str) -> SecurityAlert:
        alert = await self._alerts.get(alert_id)
        if alert is None:
            raise NotFoundError(f"Security alert not found: {alert_id}")
        return alert

