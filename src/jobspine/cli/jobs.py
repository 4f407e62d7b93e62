"""
CLI: ``jobspine jobs``: inspect and manage persisted jobs.
"""

from __future__ import annotations

import json

import typer

from jobspine.cli.utils import cli_errors, console, open_scheduler, output_dict, output_job, output_jobs
from jobspine.core.errors import ValidationError
from jobspine.core.models import JobQuery

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_jobs(
    status: str | None = typer.Option(None, "--status", "-s", help="Comma-separated statuses"),
    name: str | None = typer.Option(None, "--name", "-n"),
    limit: int = typer.Option(50, "--limit", "-l"),
    skip: int = typer.Option(0, "--skip"),
    sort: str = typer.Option("updated_at", "--sort"),
    order: str = typer.Option("desc", "--order"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs with filtering."""
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
    with cli_errors(), open_scheduler(database) as scheduler:
        query = JobQuery(status=statuses, name=name, sort=sort, order=order, limit=limit, skip=skip)
        jobs = scheduler.get_jobs(query)
        output_jobs(jobs, as_json=json_out, title="Jobs")


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show detailed information about a job."""
    with cli_errors(), open_scheduler(database) as scheduler:
        output_job(scheduler.get_job(job_id), as_json=json_out, title=f"Job: {job_id}")


@app.command()
def stats(
    name: str | None = typer.Option(None, "--name", "-n"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Count jobs per status."""
    with cli_errors(), open_scheduler(database) as scheduler:
        output_dict(scheduler.stats(name), as_json=json_out, title="Job stats")


@app.command()
def schedule(
    name: str = typer.Argument(..., help="Registered job name"),
    data: str | None = typer.Option(None, "--data", help="JSON payload"),
    priority: int = typer.Option(5, "--priority", "-p", help="0 is the most urgent"),
    cron: str | None = typer.Option(None, "--cron", help="Repeat on this 5-field cron expression"),
    timezone: str = typer.Option("UTC", "--timezone", "--tz"),
    dedupe_key: str | None = typer.Option(None, "--dedupe-key"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Persist a new job."""
    with cli_errors(), open_scheduler(database) as scheduler:
        try:
            payload = json.loads(data) if data else {}
        except json.JSONDecodeError as e:
            raise ValidationError(f"--data is not valid JSON: {e}", field="data") from e
        repeat = {"cron": cron, "timezone": timezone} if cron else None
        job = scheduler.schedule(name, payload, priority=priority, repeat=repeat, dedupe_key=dedupe_key)
        output_job(job, as_json=json_out, title="Scheduled")


@app.command()
def cancel(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Cancel a pending or running job."""
    with cli_errors(), open_scheduler(database) as scheduler:
        output_job(scheduler.cancel(job_id), as_json=json_out, title="Cancel")


@app.command()
def retry(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Make a finished job runnable again."""
    with cli_errors(), open_scheduler(database) as scheduler:
        output_job(scheduler.retry(job_id), as_json=json_out, title="Retry")


@app.command()
def delete(
    job_id: str = typer.Argument(..., help="Job ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete a job."""
    with cli_errors(), open_scheduler(database) as scheduler:
        scheduler.delete_job(job_id)
        console.print(f"[green]Deleted[/green] {job_id}")
