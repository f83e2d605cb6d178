# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for retention policies and data subject requests."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer

app = typer.Typer()

ActorIdOption = Annotated[
    str, typer.Option("--actor-id", help="Id of the operator performing the action")
]
ActorEmailOption = Annotated[
    str | None, typer.Option("--actor-email", help="Email of the operator")
]


@app.command()
def apply(
    policies_file: Annotated[
        Path | None,
        typer.Option("--policies", "-p", help="YAML policies file (overrides configuration)"),
    ] = None,
) -> None:
    """Anonymize and delete rows that have outlived their retention windows."""
    asyncio.run(_async_apply(policies_file))


async def _async_apply(policies_file: Path | None) -> None:
    from rich.table import Table

    from vigil.cli.formatters.console import console, exit_for, format_operation_result
    from vigil.core.exceptions import PolicyError
    from vigil.engine import open_engine
    from vigil.retention.policies import load_policies

    policies = None
    if policies_file is not None:
        try:
            policies = load_policies(policies_file)
        except PolicyError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

    async with open_engine() as engine:
        result = await engine.apply_retention(policies=policies)

    runs = result.data.get("runs", [])
    if runs:
        table = Table(title="Retention Run")
        table.add_column("Table", style="cyan")
        table.add_column("Anonymized", justify="right")
        table.add_column("Deleted", justify="right")
        table.add_column("Error", style="red")
        for run in runs:
            table.add_row(
                run["table_name"],
                str(run["anonymized"]),
                str(run["deleted"]),
                run["error"] or "",
            )
        console.print(table)

    format_operation_result(result)
    exit_for(result)


@app.command()
def policies(
    policies_file: Annotated[
        Path | None,
        typer.Option("--policies", "-p", help="YAML policies file to validate"),
    ] = None,
) -> None:
    """Show (and validate) the retention policies that would be applied."""
    from rich.table import Table

    from vigil.cli.formatters.console import console
    from vigil.core.config import get_settings
    from vigil.core.exceptions import PolicyError
    from vigil.retention.policies import load_policies, policies_from_settings

    try:
        loaded = (
            load_policies(policies_file)
            if policies_file is not None
            else policies_from_settings(get_settings())
        )
    except PolicyError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    table = Table(title="Retention Policies")
    table.add_column("Table", style="cyan")
    table.add_column("Anonymize after", justify="right")
    table.add_column("Delete after", justify="right")
    table.add_column("Conditions", style="dim")
    for policy in loaded:
        table.add_row(
            policy.table_name,
            f"{policy.anonymize_after_days}d" if policy.anonymize_after_days else "-",
            f"{policy.delete_after_days}d",
            json.dumps(policy.conditions) if policy.conditions else "",
        )
    console.print(table)


@app.command()
def access(
    subject_id: Annotated[str, typer.Argument(help="Patient id")],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the disclosure bundle to this file"),
    ] = None,
    actor_id: ActorIdOption = "cli",
    actor_email: ActorEmailOption = None,
) -> None:
    """Export everything held about a data subject."""
    asyncio.run(_async_access(subject_id, output, actor_id, actor_email))


async def _async_access(
    subject_id: str, output: Path | None, actor_id: str, actor_email: str | None
) -> None:
    from vigil.audit.events import Actor
    from vigil.core.exceptions import NotFoundError
    from vigil.engine import open_engine

    async with open_engine() as engine:
        try:
            bundle = await engine.retention.handle_access_request(
                subject_id, Actor(id=actor_id, email=actor_email)
            )
        except NotFoundError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

    text = json.dumps(bundle, indent=2, ensure_ascii=False, default=str)
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Disclosure bundle written to {output}")


@app.command()
def erase(
    subject_id: Annotated[str, typer.Argument(help="Patient id")],
    justification: Annotated[
        str | None, typer.Option("--justification", "-j", help="Reason for the request")
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")] = False,
    actor_id: ActorIdOption = "cli",
    actor_email: ActorEmailOption = None,
) -> None:
    """Erase a data subject, or anonymize them while a legal hold applies."""
    if not yes:
        typer.confirm(f"Erase all personal data of {subject_id}?", abort=True)
    asyncio.run(_async_erase(subject_id, justification, actor_id, actor_email))


async def _async_erase(
    subject_id: str, justification: str | None, actor_id: str, actor_email: str | None
) -> None:
    from vigil.audit.events import Actor
    from vigil.core.exceptions import NotFoundError
    from vigil.engine import open_engine

    async with open_engine() as engine:
        try:
            result = await engine.retention.handle_erasure_request(
                subject_id, Actor(id=actor_id, email=actor_email), justification
            )
        except NotFoundError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc

    typer.echo(f"Subject {subject_id} {result.mode} (request {result.request.id})")
    for table, count in result.affected.items():
        typer.echo(f"  {table}: {count}")


@app.command()
def requests(
    subject_id: Annotated[
        str | None, typer.Option("--subject", "-s", help="Filter by patient id")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows")] = 50,
) -> None:
    """List recorded data subject requests."""
    asyncio.run(_async_requests(subject_id, limit))


async def _async_requests(subject_id: str | None, limit: int) -> None:
    from rich.table import Table

    from vigil.cli.formatters.console import console
    from vigil.core.clock import to_iso
    from vigil.engine import open_engine

    async with open_engine() as engine:
        rows, total = await engine.retention.list_requests(patient_id=subject_id, limit=limit)

    if not rows:
        console.print("[dim]No data subject requests found.[/dim]")
        return

    table = Table(title="Data Subject Requests")
    table.add_column("Requested", style="dim", no_wrap=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Subject", style="yellow")
    table.add_column("Type", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("By")
    for req in rows:
        table.add_row(
            to_iso(req.requested_at),
            req.id,
            req.patient_id,
            req.request_type,
            req.status,
            req.requested_by,
        )
    console.print(table)
    console.print(f"\n[dim]Showing {len(rows)} of {total} request(s)[/dim]")
