# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for anomaly rules, alert deduplication, lifecycle and metrics."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from vigil.audit.events import Actor, AuditEntry, AuditFilter
from vigil.audit.recorder import AuditRecorder
from vigil.core.constants import AlertStatus, AlertType, AuditAction, ResourceType, Severity
from vigil.core.exceptions import InvalidTransitionError, NotFoundError
from vigil.monitoring.alerts import AlertStore
from vigil.monitoring.detector import AnomalyDetector, unusual_activity_score
from vigil.monitoring.rules import (
    DetectionThresholds,
    FailedLoginsPerOrigin,
    OffHoursLogin,
    RuleContext,
    default_rules,
)

ANALYST = Actor(id="u-analyst", email="analyst@clinic.example", name="Analyst")


@pytest.fixture
def alerts(store) -> AlertStore:
    return AlertStore(store)


@pytest.fixture
def detector(recorder: AuditRecorder, alerts: AlertStore, clock) -> AnomalyDetector:
    return AnomalyDetector(recorder, alerts, clock=clock)


async def _failed_logins(recorder: AuditRecorder, n: int, *, ip: str = "203.0.113.7", email=None):
    for _ in range(n):
        await recorder.log_auth(
            AuditAction.LOGIN_FAILED,
            actor=Actor(email=email) if email else None,
            ip_address=ip,
            success=False,
        )


async def _repeat(recorder: AuditRecorder, action: AuditAction, n: int, actor: Actor = ANALYST):
    for _ in range(n):
        await recorder.record(
            AuditEntry.by(actor, action=action, resource_type=ResourceType.PATIENT)
        )


# ---------------------------------------------------------------------------
# Pure rule tests
# ---------------------------------------------------------------------------


class TestRules:
    def test_default_battery(self):
        types = [rule.alert_type for rule in default_rules()]
        assert len(types) == 6
        assert set(types) == set(AlertType)

    def test_volume_rule_threshold_is_inclusive(self):
        ts = datetime(2026, 3, 10, 12, tzinfo=UTC)
        entries = [
            AuditEntry(
                action=AuditAction.LOGIN_FAILED,
                resource_type=ResourceType.AUTH,
                ip_address="10.0.0.1",
                timestamp=ts,
                success=False,
            )
            for _ in range(5)
        ]
        ctx = RuleContext(thresholds=DetectionThresholds(), window_hours=24)
        (alert,) = FailedLoginsPerOrigin().evaluate(entries, ctx)
        assert alert.subject_key == "ip:10.0.0.1"
        assert alert.metadata["failed_attempts"] == 5
        assert alert.metadata["threshold"] == 5
        assert len(alert.metadata["sample"]) == 5

        assert FailedLoginsPerOrigin().evaluate(entries[:4], ctx) == []

    def test_off_hours_uses_local_timezone(self):
        # 02:00 UTC is 23:00 in Sao Paulo (UTC-3)
        entries = [
            AuditEntry(
                user_id="u1",
                action=AuditAction.LOGIN,
                resource_type=ResourceType.AUTH,
                timestamp=datetime(2026, 3, 10, 2, tzinfo=UTC),
            ),
            AuditEntry(
                user_id="u2",
                action=AuditAction.LOGIN,
                resource_type=ResourceType.AUTH,
                timestamp=datetime(2026, 3, 10, 14, tzinfo=UTC),
            ),
        ]
        ctx = RuleContext(
            thresholds=DetectionThresholds(local_timezone="America/Sao_Paulo"),
            window_hours=24,
        )
        (alert,) = OffHoursLogin().evaluate(entries, ctx)
        assert alert.subject_key == "user:u1"
        assert alert.severity == Severity.LOW
        assert alert.metadata["unusual_logins"][0]["local_hour"] == 23

    def test_off_hours_ignores_failed_logins(self):
        entries = [
            AuditEntry(
                user_id="u1",
                action=AuditAction.LOGIN,
                resource_type=ResourceType.AUTH,
                timestamp=datetime(2026, 3, 10, 23, tzinfo=UTC),
                success=False,
            )
        ]
        ctx = RuleContext(thresholds=DetectionThresholds(), window_hours=24)
        assert OffHoursLogin().evaluate(entries, ctx) == []


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


class TestScan:
    async def test_failed_logins_per_ip(self, detector: AnomalyDetector, recorder):
        await _failed_logins(recorder, 5)
        created = await detector.scan()
        assert len(created) == 1
        alert = created[0]
        assert alert.alert_type == AlertType.MULTIPLE_FAILED_LOGINS_IP
        assert alert.severity == Severity.HIGH
        assert alert.ip_address == "203.0.113.7"
        assert alert.status == AlertStatus.ACTIVE

    async def test_below_threshold_raises_nothing(self, detector: AnomalyDetector, recorder):
        await _failed_logins(recorder, 4)
        assert await detector.scan() == []

    async def test_failed_logins_per_identity(self, detector: AnomalyDetector, recorder):
        await _failed_logins(recorder, 1, ip="10.0.0.1", email="target@clinic.example")
        await _failed_logins(recorder, 1, ip="10.0.0.2", email="target@clinic.example")
        await _failed_logins(recorder, 1, ip="10.0.0.3", email="target@clinic.example")
        (alert,) = await detector.scan()
        assert alert.alert_type == AlertType.MULTIPLE_FAILED_LOGINS_USER
        assert alert.subject_key == "email:target@clinic.example"
        assert alert.severity == Severity.MEDIUM

    async def test_export_volume(self, detector: AnomalyDetector, recorder):
        await _repeat(recorder, AuditAction.EXPORT, 5)
        (alert,) = await detector.scan()
        assert alert.alert_type == AlertType.EXCESSIVE_DATA_EXPORTS
        assert alert.subject_key == "user:u-analyst"
        assert alert.metadata["export_count"] == 5

    async def test_custom_thresholds(self, recorder, alerts, clock):
        detector = AnomalyDetector(
            recorder,
            alerts,
            thresholds=DetectionThresholds(sensitive_access_per_user=3),
            clock=clock,
        )
        await _repeat(recorder, AuditAction.SENSITIVE_DATA_ACCESS, 3)
        (alert,) = await detector.scan()
        assert alert.alert_type == AlertType.UNUSUAL_DATA_ACCESS

    async def test_entries_outside_window_are_ignored(self, detector, recorder, clock):
        await _failed_logins(recorder, 5)
        clock.advance(hours=25)
        assert await detector.scan() == []

    async def test_entries_stamped_at_scan_time_count(self, detector, recorder):
        # The clock does not move between recording and scanning
        await _failed_logins(recorder, 5)
        assert len(await detector.scan()) == 1

    async def test_scan_audits_itself(self, detector, recorder):
        await _failed_logins(recorder, 5)
        created = await detector.scan()
        entries, _ = await recorder.query(AuditFilter(action=AuditAction.SYSTEM))
        assert len(entries) == 1
        assert entries[0].metadata["alerts_created"] == [created[0].id]

    async def test_quiet_scan_writes_no_audit(self, detector, recorder):
        await detector.scan()
        assert await recorder.count(AuditFilter(action=AuditAction.SYSTEM)) == 0


class TestDeduplication:
    async def test_repeat_scan_suppressed(self, detector, recorder, alerts):
        await _failed_logins(recorder, 5)
        assert len(await detector.scan()) == 1
        assert await detector.scan() == []
        _, total = await alerts.list_alerts()
        assert total == 1

    async def test_new_alert_after_dedup_window(self, detector, recorder, alerts, clock):
        await _failed_logins(recorder, 5)
        await detector.scan()
        clock.advance(minutes=61)
        assert len(await detector.scan()) == 1
        _, total = await alerts.list_alerts()
        assert total == 2

    async def test_resolved_alert_does_not_suppress(self, detector, recorder, alerts):
        await _failed_logins(recorder, 5)
        (first,) = await detector.scan()
        await detector.resolve_alert(first.id, ANALYST)
        assert len(await detector.scan()) == 1

    async def test_different_subjects_are_distinct(self, detector, recorder):
        await _failed_logins(recorder, 5, ip="10.0.0.1")
        await _failed_logins(recorder, 5, ip="10.0.0.2")
        created = await detector.scan()
        assert sorted(a.subject_key for a in created) == ["ip:10.0.0.1", "ip:10.0.0.2"]

    async def test_concurrent_scans_insert_once(self, detector, recorder, alerts):
        await _failed_logins(recorder, 5)
        results = await asyncio.gather(detector.scan(), detector.scan(), detector.scan())
        assert sum(len(r) for r in results) == 1
        _, total = await alerts.list_alerts()
        assert total == 1


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.fixture
    async def alert(self, detector, recorder):
        await _failed_logins(recorder, 5)
        (created,) = await detector.scan()
        return created

    async def test_investigate_then_resolve(self, detector, alert, clock):
        investigating = await detector.investigate_alert(alert.id, ANALYST, "looking")
        assert investigating.status == AlertStatus.INVESTIGATING

        clock.advance(minutes=5)
        resolved = await detector.resolve_alert(alert.id, ANALYST, "blocked the IP")
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolved_by == "u-analyst"
        assert resolved.resolved_at == clock()
        assert resolved.resolution_notes == "blocked the IP"

    async def test_false_positive(self, detector, alert):
        closed = await detector.resolve_alert(
            alert.id, ANALYST, "pentest", status=AlertStatus.FALSE_POSITIVE
        )
        assert closed.status == AlertStatus.FALSE_POSITIVE

    async def test_resolve_is_idempotent(self, detector, alert, recorder):
        first = await detector.resolve_alert(alert.id, ANALYST, "done")
        again = await detector.resolve_alert(alert.id, Actor(id="someone-else"), "again")
        assert again.resolved_by == first.resolved_by
        assert again.resolution_notes == "done"
        updates = await recorder.count(AuditFilter(action=AuditAction.UPDATE))
        assert updates == 1

    async def test_cannot_resolve_to_non_terminal(self, detector, alert):
        with pytest.raises(InvalidTransitionError):
            await detector.resolve_alert(alert.id, ANALYST, status=AlertStatus.INVESTIGATING)

    async def test_cannot_investigate_closed_alert(self, detector, alert):
        await detector.resolve_alert(alert.id, ANALYST)
        with pytest.raises(InvalidTransitionError):
            await detector.investigate_alert(alert.id, ANALYST)

    async def test_unknown_alert(self, detector):
        with pytest.raises(NotFoundError):
            await detector.resolve_alert("missing", ANALYST)

    async def test_list_filters(self, detector, alert):
        active, total = await detector.list_alerts(status=AlertStatus.ACTIVE)
        assert total == 1
        assert active[0].id == alert.id
        _, none = await detector.list_alerts(severity=Severity.LOW)
        assert none == 0


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestMetrics:
    def test_zero_activity(self):
        assert unusual_activity_score(
            failed_logins=0, sensitive_data_access=0, api_calls=0, data_exports=0, active_alerts=0
        ) == 0

    def test_each_signal_is_capped(self):
        assert unusual_activity_score(
            failed_logins=10_000,
            sensitive_data_access=10_000,
            api_calls=1_000_000,
            data_exports=500,
            active_alerts=50,
        ) == 100

    def test_partial_weights(self):
        # 5 failed logins -> 15, 1 export -> 3, 1 active alert -> 2
        assert unusual_activity_score(
            failed_logins=5, sensitive_data_access=0, api_calls=0, data_exports=1, active_alerts=1
        ) == 20

    def test_rounds_half_up(self):
        # 2 sensitive accesses -> 0.5 points
        assert unusual_activity_score(
            failed_logins=0, sensitive_data_access=2, api_calls=0, data_exports=0, active_alerts=0
        ) == 1

    async def test_get_metrics(self, detector, recorder):
        await _failed_logins(recorder, 5)
        await recorder.log_auth(AuditAction.LOGIN, actor=ANALYST)
        await _repeat(recorder, AuditAction.EXPORT, 1)
        await detector.scan()

        metrics = await detector.get_metrics()
        assert metrics.window_hours == 24
        assert metrics.failed_logins == 5
        assert metrics.successful_logins == 1
        assert metrics.data_exports == 1
        assert metrics.unique_users == 2  # analyst and the system actor of the scan
        assert metrics.active_alerts == 1
        assert metrics.unusual_activity_score == 15 + 3 + 2
