# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Enumerations, score weights, and default threshold constants."""

from enum import StrEnum


class AuditAction(StrEnum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    BACKUP = "BACKUP"
    RESTORE = "RESTORE"
    PERMISSION_CHANGE = "PERMISSION_CHANGE"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    DATA_ACCESS = "DATA_ACCESS"
    SENSITIVE_DATA_ACCESS = "SENSITIVE_DATA_ACCESS"
    INTEGRATION_CALL = "INTEGRATION_CALL"
    API_ACCESS = "API_ACCESS"
    FILE_UPLOAD = "FILE_UPLOAD"
    FILE_DOWNLOAD = "FILE_DOWNLOAD"
    FILE_DELETE = "FILE_DELETE"
    SYSTEM = "SYSTEM"


class ResourceType(StrEnum):
    USER = "USER"
    PATIENT = "PATIENT"
    MEDICAL_RECORD = "MEDICAL_RECORD"
    APPOINTMENT = "APPOINTMENT"
    ATTACHMENT = "ATTACHMENT"
    INVOICE = "INVOICE"
    INTEGRATION_LOG = "INTEGRATION_LOG"
    SECURITY_ALERT = "SECURITY_ALERT"
    BACKUP = "BACKUP"
    SYSTEM = "SYSTEM"
    AUTH = "AUTH"
    API = "API"
    FILE = "FILE"


class Severity(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class AlertStatus(StrEnum):
    ACTIVE = "ACTIVE"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    FALSE_POSITIVE = "FALSE_POSITIVE"


class AlertType(StrEnum):
    MULTIPLE_FAILED_LOGINS_IP = "MULTIPLE_FAILED_LOGINS_IP"
    MULTIPLE_FAILED_LOGINS_USER = "MULTIPLE_FAILED_LOGINS_USER"
    UNUSUAL_DATA_ACCESS = "UNUSUAL_DATA_ACCESS"
    UNUSUAL_LOGIN_TIME = "UNUSUAL_LOGIN_TIME"
    EXCESSIVE_API_USAGE = "EXCESSIVE_API_USAGE"
    EXCESSIVE_DATA_EXPORTS = "EXCESSIVE_DATA_EXPORTS"


class BackupType(StrEnum):
    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"
    DIFFERENTIAL = "DIFFERENTIAL"


class BackupStatus(StrEnum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RequestType(StrEnum):
    ACCESS = "ACCESS"
    RECTIFICATION = "RECTIFICATION"
    ERASURE = "ERASURE"
    PORTABILITY = "PORTABILITY"
    RESTRICTION = "RESTRICTION"


class RequestStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


TERMINAL_ALERT_STATUSES = frozenset({AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE})

# Unusual-activity score: (signal, saturation count, max points)
ACTIVITY_SCORE_CAPS: dict[str, tuple[float, float]] = {
    "failed_logins": (10, 30),
    "sensitive_data_access": (100, 25),
    "api_calls": (1000, 20),
    "data_exports": (5, 15),
}
ACTIVE_ALERT_POINTS = 2
ACTIVE_ALERT_MAX_POINTS = 10

REDACTED_TEXT = "DADOS ANONIMIZADOS"
REDACTED_NAME = "ANONIMIZADO"
REDACTED_PATIENT_NAME = "PACIENTE ANONIMIZADO"

SYSTEM_ACTOR_ID = "system"
