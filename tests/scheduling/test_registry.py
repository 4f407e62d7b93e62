"""Tests for HandlerRegistry."""

import pytest

from jobspine.core.errors import UnregisteredJobError, ValidationError
from jobspine.scheduling.registry import HandlerRegistry, invoke


class TestHandlerRegistry:
    def test_register_and_resolve(self, registry):
        def handler(job):
            return "ok"

        registry.register("x", handler)
        assert registry.resolve("x") is handler
        assert registry.has("x")

    def test_decorator(self, registry):
        @registry.handler("send-email", concurrency=2)
        def send_email(job):
            """Send an email."""

        meta = registry.get_metadata("send-email")
        assert meta["description"] == "Send an email."
        assert meta["concurrency"] == 2
        assert meta["is_async"] is False

    def test_unknown_name_resolves_to_failing_handler(self, registry, store):
        from jobspine.core.models import JobCreate

        job = store.insert(JobCreate(name="ghost"))
        with pytest.raises(UnregisteredJobError, match="ghost"):
            registry.resolve("ghost")(job)

    def test_names_sorted(self, registry):
        registry.register("b", lambda job: None)
        registry.register("a", lambda job: None)
        assert registry.names() == ["a", "b"]
        assert [m["name"] for m in registry.list_with_metadata()] == ["a", "b"]

    def test_unregister(self, registry):
        registry.register("x", lambda job: None)
        assert registry.unregister("x") is True
        assert registry.unregister("x") is False
        assert not registry.has("x")

    def test_invalid_registration(self, registry):
        with pytest.raises(ValidationError):
            registry.register("", lambda job: None)
        with pytest.raises(ValidationError):
            registry.register("x", "not callable")

    def test_on_register_replays_existing(self):
        registry = HandlerRegistry()
        registry.register("early", lambda job: None, concurrency=1)
        seen = []
        registry.on_register(lambda name, limit: seen.append((name, limit)))
        registry.register("late", lambda job: None)
        assert seen == [("early", 1), ("late", None)]


class TestInvoke:
    def test_sync(self, store):
        from jobspine.core.models import JobCreate

        job = store.insert(JobCreate(name="x", data={"n": 2}))
        assert invoke(lambda j: j.data["n"] * 2, job) == 4

    def test_coroutine_handler(self, store):
        from jobspine.core.models import JobCreate

        async def handler(job):
            return {"async": True}

        job = store.insert(JobCreate(name="x"))
        assert invoke(handler, job) == {"async": True}
