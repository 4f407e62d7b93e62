"""Tests for EventNotifier."""

import threading

from jobspine.scheduling.events import JOB_COMPLETE, JOB_FAIL, JOB_START, Event, EventNotifier


class TestEventMatching:
    def test_patterns(self):
        event = Event(event_type="job:fail", source="test")
        assert event.matches("*")
        assert event.matches("job:*")
        assert event.matches("job:fail")
        assert not event.matches("job:complete")


class TestEventNotifier:
    def test_delivers_matching_events(self, notifier):
        received = []
        notifier.on("job:fail", received.append)
        notifier.emit(JOB_COMPLETE, job={"id": "1"})
        notifier.emit(JOB_FAIL, job={"id": "2"}, error={"message": "boom"})
        assert notifier.drain()
        assert [e.event_type for e in received] == [JOB_FAIL]
        assert received[0].payload["error"] == {"message": "boom"}

    def test_delivery_off_the_caller_thread(self, notifier):
        threads = []
        notifier.on("*", lambda e: threads.append(threading.current_thread().name))
        notifier.emit(JOB_START)
        notifier.drain()
        assert threads and threads[0] != threading.current_thread().name

    def test_order_preserved(self, notifier):
        received = []
        notifier.on("job:*", lambda e: received.append(e.payload["n"]))
        for n in range(20):
            notifier.emit(JOB_START, n=n)
        notifier.drain()
        assert received == list(range(20))

    def test_failing_listener_is_isolated(self, notifier):
        """A raising listener neither breaks emit nor other listeners."""
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        notifier.on("*", broken)
        notifier.on("*", received.append)
        assert notifier.emit(JOB_COMPLETE) is not None
        notifier.drain()
        assert len(received) == 1

    def test_async_listener(self, notifier):
        received = []

        async def listener(event):
            received.append(event.event_type)

        notifier.on("*", listener)
        notifier.emit(JOB_START)
        notifier.drain()
        assert received == [JOB_START]

    def test_off(self, notifier):
        received = []
        sub_id = notifier.on("*", received.append)
        assert notifier.subscription_count == 1
        assert notifier.off(sub_id) is True
        assert notifier.off(sub_id) is False
        notifier.emit(JOB_START)
        notifier.drain()
        assert received == []

    def test_closed_notifier_drops_events(self):
        notifier = EventNotifier()
        notifier.on("*", lambda e: None)
        notifier.close()
        assert notifier.emit(JOB_START) is None
        assert notifier.drain() is True
