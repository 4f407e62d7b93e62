"""Handler registry -- job name → handler lookup.

Manifesto:
    The worker loop needs to resolve ``"send-email"`` to the code that
    sends the email.  The registry decouples registration (at startup)
    from resolution (at dispatch time).  Unknown names resolve to an
    "unregistered" handler that fails the job deterministically instead
    of logging a warning and leaving the job stuck.

ARCHITECTURE
────────────
::

    HandlerRegistry
      ├── .register(name, handler, ...)  ─ store handler (+ default concurrency)
      ├── .handler(name)                 ─ decorator form of register
      ├── .resolve(name)                 ─ handler or the unregistered handler
      ├── .has(name) / .names()          ─ existence / listing
      └── .unregister(name)

    Handler contract: ``handler(job) -> result``.  Coroutine functions are
    accepted and run to completion on the worker thread.

Tags:
    jobspine, scheduling, registry, handler-registry, dispatch

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from jobspine.core.errors import UnregisteredJobError, ValidationError
from jobspine.core.models import Job

JobHandler = Callable[[Job], Any]


def _unregistered(job: Job) -> Any:
    raise UnregisteredJobError(f"No handler registered for job '{job.name}'").with_context(
        job_id=job.id, job_name=job.name
    )


class HandlerRegistry:
    """Injectable handler registry.

    Example:
        >>> registry = HandlerRegistry()
        >>>
        >>> @registry.handler("send-email")
        ... def send_email(job):
        ...     return {"sent": True, "to": job.data["to"]}
        >>>
        >>> registry.resolve("send-email") is send_email
        True
    """

    def __init__(self):
        self._handlers: dict[str, JobHandler] = {}
        self._metadata: dict[str, dict[str, Any]] = {}
        self._listeners: list[Callable[[str, int | None], None]] = []

    def register(
        self,
        name: str,
        handler: JobHandler,
        description: str | None = None,
        concurrency: int | None = None,
    ) -> None:
        """Register a handler.

        Args:
            name: Job name
            handler: Callable invoked with the claimed :class:`Job`
            description: Optional description for documentation
            concurrency: Default per-name running limit for this job type
        """
        if not name:
            raise ValidationError("Handler name is required", field="name")
        if not callable(handler):
            raise ValidationError(f"Handler for '{name}' is not callable", field="handler")
        self._handlers[name] = handler
        self._metadata[name] = {
            "name": name,
            "description": description or (inspect.getdoc(handler) or "").split("\n")[0] or None,
            "concurrency": concurrency,
            "is_async": inspect.iscoroutinefunction(handler),
        }
        for listener in self._listeners:
            listener(name, concurrency)

    def handler(
        self,
        name: str,
        description: str | None = None,
        concurrency: int | None = None,
    ) -> Callable[[JobHandler], JobHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(func: JobHandler) -> JobHandler:
            self.register(name, func, description=description, concurrency=concurrency)
            return func

        return decorator

    def resolve(self, name: str) -> JobHandler:
        """Handler for *name*; unknown names get a handler that always fails."""
        return self._handlers.get(name, _unregistered)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> list[str]:
        return sorted(self._handlers)

    def get_metadata(self, name: str) -> dict[str, Any] | None:
        return self._metadata.get(name)

    def list_with_metadata(self) -> list[dict[str, Any]]:
        return [self._metadata[name].copy() for name in self.names()]

    def unregister(self, name: str) -> bool:
        if name in self._handlers:
            del self._handlers[name]
            del self._metadata[name]
            return True
        return False

    def on_register(self, listener: Callable[[str, int | None], None]) -> None:
        """Call *listener(name, concurrency)* for existing and future handlers."""
        self._listeners.append(listener)
        for name, meta in self._metadata.items():
            listener(name, meta["concurrency"])


def invoke(handler: JobHandler, job: Job) -> Any:
    """Run *handler* for *job*, driving coroutines to completion."""
    result = handler(job)
    if inspect.isawaitable(result):
        return asyncio.run(_await(result))
    return result


async def _await(awaitable: Any) -> Any:
    return await awaitable


__all__ = ["HandlerRegistry", "JobHandler", "invoke"]
