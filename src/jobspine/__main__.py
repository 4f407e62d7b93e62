"""Allow ``python -m jobspine``."""

from jobspine.cli.app import app

app()
