# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Audit trail -- entries, filters, and the recorder."""

from vigil.audit.events import Actor, AuditEntry, AuditFilter
from vigil.audit.recorder import AuditRecorder

__all__ = ["Actor", "AuditEntry", "AuditFilter", "AuditRecorder"]
