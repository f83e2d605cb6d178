# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Anomaly detection over the audit trail."""

from vigil.monitoring.alerts import AlertStore, SecurityAlert, SecurityMetrics
from vigil.monitoring.detector import AnomalyDetector, unusual_activity_score
from vigil.monitoring.rules import BaseAnomalyRule, DetectionThresholds, default_rules

__all__ = [
    "AlertStore",
    "AnomalyDetector",
    "BaseAnomalyRule",
    "DetectionThresholds",
    "SecurityAlert",
    "SecurityMetrics",
    "default_rules",
    "unusual_activity_score",
]
