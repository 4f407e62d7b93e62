"""
CLI layer for jobspine.

Provides a Typer application with sub-commands for running the HTTP
service, running workers without HTTP, and inspecting jobs.

Entry point::

    jobspine --help
"""

from jobspine.cli.app import app

__all__ = ["app"]
