"""
jobspine - persistent job scheduling on SQLite.

Sub-packages:
- jobspine.core: models, errors, logging, clock, storage connection
- jobspine.scheduling: job store, leases, workers, cron, events
- jobspine.jobs: bundled job bodies
- jobspine.api: FastAPI service
- jobspine.cli: ``jobspine`` command line
"""

__version__ = "0.1.0"
