# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Data retention, anonymization, and data subject requests."""

from vigil.retention.engine import ErasureResult, RetentionEngine, RetentionReport
from vigil.retention.policies import (
    RetentionPolicy,
    default_policies,
    load_policies,
    policies_from_settings,
)
from vigil.retention.requests import DataSubjectRequest, RequestStore

__all__ = [
    "DataSubjectRequest",
    "ErasureResult",
    "RequestStore",
    "RetentionEngine",
    "RetentionPolicy",
    "RetentionReport",
    "default_policies",
    "load_policies",
    "policies_from_settings",
]
