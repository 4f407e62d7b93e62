"""
CLI utility helpers: output formatting and scheduler construction.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from jobspine.core.errors import JobSpineError
from jobspine.core.models import Job
from jobspine.scheduling.service import Scheduler

console = Console()
err_console = Console(stderr=True)

JOB_COLUMNS = ("id", "name", "status", "priority", "attempts", "next_run_at", "updated_at")


# ── Scheduler helper ─────────────────────────────────────────────────────


@contextmanager
def open_scheduler(database: str | None = None, **options: Any) -> Iterator[Scheduler]:
    """Build a scheduler on *database* (settings default) with the demo jobs.

    Workers are not started; the caller decides.  The connection and the
    notifier are closed on exit.
    """
    from jobspine.api.app import build_scheduler
    from jobspine.api.deps import get_settings

    settings = get_settings()
    overrides: dict[str, Any] = {k: v for k, v in options.items() if v is not None}
    if database:
        overrides["database_url"] = database
    if overrides:
        settings = settings.model_copy(update=overrides)

    scheduler = build_scheduler(settings)
    try:
        yield scheduler
    finally:
        scheduler.close()
        scheduler.store.conn.close()


@contextmanager
def cli_errors() -> Iterator[None]:
    """Turn :class:`JobSpineError` into a red message and exit code 1."""
    try:
        yield
    except JobSpineError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.code}): {e.message}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def output_job(job: Job, *, as_json: bool = False, title: str = "") -> None:
    """Render a single job."""
    data = job.to_dict()
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    _print_dict(data, title=title)


def output_jobs(jobs: list[Job], *, as_json: bool = False, title: str = "", total: int | None = None) -> None:
    """Render a list of jobs as a Rich table."""
    if as_json:
        console.print_json(json.dumps([j.to_dict() for j in jobs], default=str))
        return
    if not jobs:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in JOB_COLUMNS:
        table.add_column(col, overflow="fold")
    for job in jobs:
        d = job.to_dict()
        table.add_row(*(str(d.get(col, "")) for col in JOB_COLUMNS))
    console.print(table)

    if total is not None:
        console.print(f"\n[dim]Showing {len(jobs)} of {total}[/dim]")


def output_dict(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    _print_dict(data, title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_dict(d: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as a key-value Rich table."""
    table = Table(title=title or None, show_header=False, pad_edge=False)
    table.add_column("Key", style="bold cyan")
    table.add_column("Value", overflow="fold")
    for k, v in d.items():
        if isinstance(v, dict | list):
            v = json.dumps(v, default=str)
        table.add_row(str(k), str(v))
    console.print(table)
