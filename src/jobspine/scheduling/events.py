"""
In-process event notifier.

Manifesto:
    Observers (dashboards, metrics, tests) want to know when a job starts,
    completes, fails, retries or is cancelled, without the worker loop
    knowing who they are.  Events are emitted only after the state they
    describe is persisted, delivered on a dedicated thread, and a failing
    listener is logged and forgotten: notification never blocks or fails
    the job finalization it reports on.

Tags:
    jobspine, events, pub-sub, observers, fire-and-forget

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jobspine.core.logging import get_logger
from jobspine.core.timestamps import utc_now

log = get_logger(__name__)

# Emitted event types
JOB_START = "job:start"
JOB_COMPLETE = "job:complete"
JOB_FAIL = "job:fail"
JOB_RETRY = "job:retry"
JOB_CANCEL = "job:cancel"

EVENT_TYPES = (JOB_START, JOB_COMPLETE, JOB_FAIL, JOB_RETRY, JOB_CANCEL)


@dataclass(frozen=True)
class Event:
    """One lifecycle notification.

    ``payload`` always carries ``job`` (the job as persisted after the
    transition) plus type-specific keys: ``worker_id`` on ``job:start``,
    ``result`` on ``job:complete``, ``error`` and ``final`` on ``job:fail``,
    ``delay_seconds`` on ``job:retry``, ``reason`` on ``job:cancel``.
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def matches(self, pattern: str) -> bool:
        """``*`` matches all, ``job:*`` matches a prefix, anything else is exact."""
        if pattern == "*":
            return True
        prefix, star, _ = pattern.partition("*")
        if star:
            return self.event_type.startswith(prefix)
        return pattern == self.event_type


Listener = Callable[[Event], Any]


@dataclass
class _Listener:
    id: str
    pattern: str
    fn: Listener


class EventNotifier:
    """Fire-and-forget publisher with a single delivery thread.

    Listeners run in emission order on one background thread.  Plain
    callables and coroutine functions are both accepted.

    Example::

        notifier = EventNotifier()
        notifier.on("job:fail", lambda event: print(event.payload["error"]))
        notifier.emit("job:fail", job=job.to_dict(), error={"message": "boom"})
        notifier.drain()
    """

    def __init__(self, source: str = "jobspine.scheduler") -> None:
        self.source = source
        self._listeners: dict[str, _Listener] = {}
        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._closed = False

    def on(self, pattern: str, listener: Listener) -> str:
        """Subscribe *listener* to events matching *pattern*.

        Returns:
            Subscription ID (pass to :meth:`off`)
        """
        sub_id = uuid.uuid4().hex[:16]
        with self._lock:
            self._listeners[sub_id] = _Listener(sub_id, pattern, listener)
        return sub_id

    def off(self, subscription_id: str) -> bool:
        with self._lock:
            return self._listeners.pop(subscription_id, None) is not None

    def emit(self, event_type: str, **payload: Any) -> Event | None:
        """Queue *event_type* for delivery and return immediately."""
        event = Event(event_type=event_type, source=self.source, payload=payload)
        with self._lock:
            if self._closed:
                return None
            targets = [s for s in self._listeners.values() if event.matches(s.pattern)]
            if not targets:
                return event
            executor = self._ensure_executor()
        try:
            executor.submit(self._deliver, event, targets)
        except RuntimeError:
            # executor shut down between the check and the submit
            log.debug("event_dropped", event_type=event_type)
        return event

    def drain(self, timeout: float | None = 5.0) -> bool:
        """Wait until every event emitted so far has been delivered."""
        with self._lock:
            executor = self._executor
        if executor is None:
            return True
        future: Future[None] = executor.submit(lambda: None)
        try:
            future.result(timeout=timeout)
        except TimeoutError:
            return False
        return True

    def close(self, wait: bool = True) -> None:
        """Stop accepting events and release the delivery thread."""
        with self._lock:
            self._closed = True
            executor, self._executor = self._executor, None
            self._listeners.clear()
        if executor is not None:
            executor.shutdown(wait=wait)

    @property
    def subscription_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._listeners)

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="jobspine-events")
        return self._executor

    def _deliver(self, event: Event, targets: list[_Listener]) -> None:
        for sub in targets:
            try:
                result = sub.fn(event)
                if inspect.isawaitable(result):
                    asyncio.run(_await(result))
            except Exception as e:
                log.warning(
                    "event_listener_error",
                    subscription_id=sub.id,
                    event_type=event.event_type,
                    error=str(e),
                )


async def _await(awaitable: Any) -> Any:
    return await awaitable


__all__ = [
    "Event",
    "EventNotifier",
    "Listener",
    "EVENT_TYPES",
    "JOB_START",
    "JOB_COMPLETE",
    "JOB_FAIL",
    "JOB_RETRY",
    "JOB_CANCEL",
]
