"""
REST API layer for jobspine.

Provides a FastAPI application factory whose routers delegate to the
:class:`~jobspine.scheduling.Scheduler` held by the app's
``SchedulerHandle``.  Scheduling rules live in ``jobspine.scheduling``;
this package handles only HTTP transport concerns: serialisation,
error mapping, and request validation.

Quick start::

    from jobspine.api import create_app

    app = create_app()  # ready for uvicorn

Tags:
    jobspine, api, REST, FastAPI, transport-layer

Doc-Types:
    api-reference
"""

from jobspine.api.app import create_app

__all__ = ["create_app"]
