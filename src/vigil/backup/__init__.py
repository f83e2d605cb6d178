# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Encrypted, integrity-checked backups of the data store."""

from vigil.backup.artifacts import ArtifactStore, LocalArtifactStore, checksum
from vigil.backup.catalog import BackupCatalog
from vigil.backup.compression import Compressor, GzipCompressor
from vigil.backup.models import BackupOptions, BackupRecord, RestoreReport
from vigil.backup.orchestrator import BackupOrchestrator, BackupProvider

__all__ = [
    "ArtifactStore",
    "BackupCatalog",
    "BackupOptions",
    "BackupOrchestrator",
    "BackupProvider",
    "BackupRecord",
    "Compressor",
    "GzipCompressor",
    "LocalArtifactStore",
    "RestoreReport",
    "checksum",
]
