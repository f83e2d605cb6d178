# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for the maintenance scheduler."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

app = typer.Typer(help="Run scheduled compliance maintenance")


@app.command()
def jobs() -> None:
    """Show configured maintenance jobs and their next run times."""
    from rich.console import Console
    from rich.table import Table

    from vigil.core.config import get_settings
    from vigil.engine import run_maintenance_task
    from vigil.scheduler.cron import CronParseError
    from vigil.scheduler.engine import MaintenanceScheduler
    from vigil.scheduler.jobs import jobs_from_settings

    try:
        job_table = jobs_from_settings(get_settings())
    except CronParseError as exc:
        typer.echo(f"Invalid cron expression: {exc}", err=True)
        raise typer.Exit(1) from exc

    console = Console()
    if not job_table:
        console.print("[dim]No maintenance jobs enabled.[/dim]")
        return

    scheduler = MaintenanceScheduler(job_table, run_maintenance_task)
    table = Table(title="Maintenance Jobs")
    table.add_column("Task", style="cyan")
    table.add_column("Schedule")
    table.add_column("Next Run", style="dim")
    for job in scheduler.jobs:
        table.add_row(
            job.name,
            job.schedule.expression,
            job.next_run.isoformat() if job.next_run else "-",
        )
    console.print(table)


@app.command()
def run(
    once: Annotated[
        bool,
        typer.Option("--once", help="Run every enabled job once, then exit"),
    ] = False,
    task: Annotated[
        str | None,
        typer.Option("--task", help="Run a single task immediately and exit"),
    ] = None,
) -> None:
    """Start the maintenance loop (Ctrl-C to stop)."""
    from vigil.core.config import get_settings
    from vigil.core.logging import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    try:
        asyncio.run(_async_run(once, task))
    except KeyboardInterrupt:
        typer.echo("Scheduler stopped.")


async def _async_run(once: bool, task_name: str | None) -> None:
    from vigil.cli.formatters.console import exit_for, format_operation_result
    from vigil.core.config import get_settings
    from vigil.engine import run_maintenance_task
    from vigil.scheduler.cron import CronParseError
    from vigil.scheduler.engine import MaintenanceScheduler
    from vigil.scheduler.jobs import MaintenanceTask, jobs_from_settings

    if task_name is not None:
        try:
            task = MaintenanceTask(task_name)
        except ValueError as exc:
            choices = ", ".join(t.value for t in MaintenanceTask)
            typer.echo(f"Unknown task {task_name!r}; choose from {choices}", err=True)
            raise typer.Exit(1) from exc
        result = await run_maintenance_task(task)
        format_operation_result(result)
        exit_for(result)
        return

    settings = get_settings()
    try:
        job_table = jobs_from_settings(settings)
    except CronParseError as exc:
        typer.echo(f"Invalid cron expression: {exc}", err=True)
        raise typer.Exit(1) from exc

    scheduler = MaintenanceScheduler(
        job_table,
        run_maintenance_task,
        check_interval=settings.scheduler_check_interval,
    )

    if once:
        for job in scheduler.jobs:
            job_run = await scheduler.execute_job(job)
            typer.echo(f"{job_run.task}: {job_run.outcome} {job_run.message}")
        return

    await scheduler.start()
    try:
        await scheduler.wait()
    finally:
        await scheduler.stop()
