# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Typer CLI application root."""

from __future__ import annotations

import typer

from vigil.cli.commands import alerts, audit, backup, crypto, db, retention, scheduler

app = typer.Typer(
    name="vigil",
    help="Security and compliance engine: audit trail, anomaly alerts, retention, backups",
    no_args_is_help=True,
)

app.add_typer(db.app, name="db", help="Database management")
app.add_typer(audit.app, name="audit", help="Query and prune the audit trail")
app.add_typer(alerts.app, name="alerts", help="Anomaly scans and security alert triage")
app.add_typer(retention.app, name="retention", help="Retention policies and data subject requests")
app.add_typer(backup.app, name="backup", help="Create, list and restore backups")
app.add_typer(crypto.app, name="crypto", help="Encrypt, decrypt and hash with the configured secret")
app.add_typer(scheduler.app, name="scheduler", help="Run scheduled compliance maintenance")


@app.command()
def version() -> None:
    """Show version information."""
    from vigil import __version__

    typer.echo(f"vigil v{__version__}")
