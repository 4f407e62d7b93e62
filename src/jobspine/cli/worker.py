"""
CLI: ``jobspine worker``: run the dispatch loops without the HTTP API.
"""

from __future__ import annotations

import signal
import threading

import typer

from jobspine.api.deps import get_settings
from jobspine.cli.utils import cli_errors, console, open_scheduler
from jobspine.core.logging import configure_logging

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    database: str | None = typer.Option(None, "--database", "-d", help="sqlite:///path or a file path"),
    workers: int | None = typer.Option(None, "--workers", "-w", help="Worker loops"),
    poll_interval_ms: int | None = typer.Option(None, "--poll-interval-ms", help="Idle poll interval"),
    once: bool = typer.Option(False, "--once", help="Run every due job, then exit"),
    max_jobs: int | None = typer.Option(None, "--max-jobs", help="With --once, stop after this many jobs"),
) -> None:
    """Claim and run jobs from the store until interrupted.

    Several worker processes may share one database file; the atomic
    claim guarantees each due job runs on exactly one of them.

    Example::

        jobspine worker start --workers 4
        jobspine worker start --database sqlite:///data/jobs.db --once
    """
    with cli_errors(), open_scheduler(
        database, workers=workers, poll_interval_ms=poll_interval_ms
    ) as scheduler:
        if once:
            ran = scheduler.run_pending(max_jobs=max_jobs)
            console.print(f"[bold green]Ran {ran} job(s)[/bold green]")
            return

        settings = get_settings()
        configure_logging(level=settings.log_level, json_format=settings.json_logs, service="jobspine-worker")
        stopping = threading.Event()

        def _on_signal(signum: int, _frame: object) -> None:
            console.print(f"\n[yellow]Received signal {signum}, draining...[/yellow]")
            stopping.set()

        signal.signal(signal.SIGINT, _on_signal)
        signal.signal(signal.SIGTERM, _on_signal)

        scheduler.start()
        console.print(
            f"[bold green]Started jobspine worker[/bold green] "
            f"(loops={scheduler.workers}, poll={scheduler.poll_interval_ms}ms, "
            f"handlers={', '.join(scheduler.registry.names())})"
        )
        while not stopping.wait(0.5):
            pass

        if scheduler.stop(graceful=True):
            console.print("[green]Worker stopped[/green]")
        else:
            console.print("[yellow]Drain timed out; unfinished jobs will be reclaimed after their lease expires[/yellow]")
