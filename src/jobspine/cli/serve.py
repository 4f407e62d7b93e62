"""
CLI: ``jobspine serve``: start the API server with its worker loops.
"""

from __future__ import annotations

import typer
import uvicorn

from jobspine.cli.utils import console

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (settings default)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (settings default)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the jobspine REST API server."""
    from jobspine.api.deps import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    console.print(f"[bold green]Starting jobspine API[/bold green] on {host}:{port}")
    uvicorn.run(
        "jobspine.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
