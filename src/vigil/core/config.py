# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Application configuration via environment variables and .env files."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(v: object) -> list[str]:
    if isinstance(v, str):
        return [x.strip() for x in v.split(",") if x.strip()]
    return v if isinstance(v, list) else []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VIGIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    # Database
    db_path: Path = Path("vigil.db")
    auto_migrate: bool = True

    # Cipher
    encryption_secret: str = ""
    kdf_iterations: int = 390_000
    hash_iterations: int = 100_000

    # Anomaly detection thresholds
    failed_logins_per_ip: int = 5
    failed_logins_per_user: int = 3
    sensitive_access_per_user: int = 50
    api_calls_per_user: int = 1000
    data_exports_per_user: int = 5
    unusual_login_hours: list[int] = [22, 23, 0, 1, 2, 3, 4, 5]
    local_timezone: str = "UTC"
    alert_dedup_minutes: int = 60
    scan_window_hours: int = 24

    @field_validator("unusual_login_hours", mode="before")
    @classmethod
    def _parse_unusual_login_hours(cls, v: object) -> list[int]:
        if isinstance(v, str):
            return [int(h) for h in _split_csv(v)]
        return v if isinstance(v, list) else []

    # Retention
    audit_retention_days: int = 2555
    legal_hold_days: int = 365
    retention_policies_file: str = ""

    # Backups
    backup_storage_path: Path = Path("backups")
    backup_retention_days: int = 30
    backup_compress: bool = True
    backup_encrypt: bool = True
    backup_tables: list[str] = []
    backup_stale_minutes: int = 360

    @field_validator("backup_tables", mode="before")
    @classmethod
    def _parse_backup_tables(cls, v: object) -> list[str]:
        return _split_csv(v)

    # Scheduled maintenance (5-field cron; "off" disables the job)
    schedule_anomaly_scan: str = "*/15 * * * *"
    schedule_retention: str = "30 1 * * *"
    schedule_incremental_backup: str = "0 2 * * *"
    schedule_full_backup: str = "0 3 * * 0"
    schedule_backup_reconcile: str = "*/30 * * * *"
    scheduler_check_interval: float = 30.0

    # Audit trail mirror (JSON lines, one file per day)
    audit_log_dir: str = ""

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"


def get_settings() -> Settings:
    return Settings()
