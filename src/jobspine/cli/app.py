"""
Root Typer application for the jobspine CLI.

Sub-commands import the FastAPI app only when they run.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

app = Typer(
    name="jobspine",
    help="jobspine: persistent job scheduling with leases, retries and cron.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("jobspine")
        except PackageNotFoundError:
            from jobspine import __version__ as v
        typer.echo(f"jobspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobspine CLI: run the service and workers, manage jobs."""


# ── Sub-command registration ─────────────────────────────────────────────

from jobspine.cli.jobs import app as jobs_app  # noqa: E402
from jobspine.cli.serve import app as serve_app  # noqa: E402
from jobspine.cli.worker import app as worker_app  # noqa: E402

app.add_typer(serve_app, name="serve", help="Start the API server.")
app.add_typer(worker_app, name="worker", help="Run worker loops without HTTP.")
app.add_typer(jobs_app, name="jobs", help="Inspect and manage jobs.")


if __name__ == "__main__":
    app()
