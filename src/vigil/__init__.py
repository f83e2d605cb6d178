# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""vigil - security and compliance engine: audit, anomaly alerts, retention, backups."""

__version__ = "0.1.0"
