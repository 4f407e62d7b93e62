"""
Structured logging for jobspine.

The API, the CLI and the demo job bodies log through structlog with
key/value events (``log.info("job_scheduled", job_id=...)``).  The engine
(store, leases, worker loops) logs through stdlib ``logging`` with
%-style messages.  :func:`configure_logging` routes both into one stdout
handler so a worker's output reads as a single stream.

Processor chain::

    merge_contextvars          job_id / job_name / worker_id from LogContext
    add_log_level
    add_logger_name
    TimeStamper(iso, utc)
    _stamp_service             service=<name>
    _nest_job_fields           JSON only: job_* keys -> {"job": {...}}
    JSONRenderer | ConsoleRenderer

Manifesto:
    A job's log lines must be findable by job id no matter which layer
    wrote them.  Handlers never pass the id around themselves; the worker
    binds it once around the handler call and every logger picks it up.

Tags:
    logging, structlog, observability, jobspine
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_HANDLER_NAME = "jobspine"

_service = "jobspine"


def _stamp_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", _service)
    return event_dict


def _nest_job_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Collect ``job_*`` keys into one ``job`` object for log indexing."""
    job = {key[4:]: event_dict.pop(key) for key in list(event_dict) if key.startswith("job_")}
    if job:
        event_dict["job"] = job
    return event_dict


def _chain(json_format: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _stamp_service,
    ]
    if json_format:
        chain.append(_nest_job_fields)
        chain.append(structlog.processors.format_exc_info)
    return chain


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "jobspine",
) -> None:
    """Configure structlog and stdlib logging for this process.

    Safe to call more than once; the last call wins.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_format: JSON lines when True, colored console when False,
            JSON whenever stdout is not a terminal when None.
        service: Value of the ``service`` field on every line.
    """
    global _service
    _service = service
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    if json_format is None:
        json_format = not sys.stdout.isatty()

    pre_chain = _chain(json_format)
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # Engine records (plain stdlib) go through the same chain before rendering
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric)


def get_logger(name: str | None = None) -> Any:
    """Return a structlog logger, normally ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every log line of the current thread or task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` block.

    Fields already bound by an outer block are restored on exit, so
    nested contexts (worker id outside, job id inside) compose.

    Example:
        with LogContext(worker_id=leases.worker_id):
            with LogContext(job_id=job.id, job_name=job.name):
                handler(job)
    """

    def __init__(self, **fields: Any) -> None:
        self._fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._fields)
        return self

    def __exit__(self, *exc_info: object) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
