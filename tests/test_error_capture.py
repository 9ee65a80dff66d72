"""Tests for ErrorCaptureCoordinator — host error handling and fatal flushing."""

from __future__ import annotations

import asyncio
import logging

import pytest

from crashtrace.core.client import Client
from crashtrace.core.hub import Hub
from crashtrace.core.models import Level
from crashtrace.core.options import ClientOptions
from crashtrace.hosts.interface import HostErrorEvent, HostEventKind
from crashtrace.integrations.error_handlers import ErrorCaptureCoordinator, FatalLatch
from crashtrace.transport.memory import InMemoryTransport


@pytest.fixture
def coordinator(host, hub):
    integration = ErrorCaptureCoordinator(host)
    integration.setup_once(lambda: hub)
    return integration


def _track_flush_concurrency(monkeypatch, client, delay=0.02):
    """Wrap ``client.flush`` to record how many flushes overlap."""
    state = {"active": 0, "max": 0, "calls": 0}
    original = client.flush

    async def flush(timeout_ms=None):
        state["calls"] += 1
        state["active"] += 1
        state["max"] = max(state["max"], state["active"])
        try:
            await asyncio.sleep(delay)
            return await original(timeout_ms)
        finally:
            state["active"] -= 1

    monkeypatch.setattr(client, "flush", flush)
    return state


class TestFatalLatch:
    def test_engage_once(self):
        latch = FatalLatch()
        assert latch.try_engage() is True
        assert latch.try_engage() is False
        latch.release()
        assert latch.try_engage() is True

    def test_followup_consumed_once(self):
        latch = FatalLatch()
        latch.request_followup()
        latch.request_followup()
        assert latch.consume_followup() is True
        assert latch.consume_followup() is False


class TestRegistration:
    def test_subscribes_to_both_kinds(self, coordinator, host):
        assert len(host.handlers(HostEventKind.UNCAUGHT_ERROR)) == 1
        assert len(host.handlers(HostEventKind.DISCARDED_ERROR)) == 1
        assert host.error_handler is not None

    def test_start_is_idempotent(self, coordinator, host):
        coordinator.start()
        assert len(host.handlers(HostEventKind.UNCAUGHT_ERROR)) == 1

    def test_flags_disable_subscriptions(self, host, hub):
        integration = ErrorCaptureCoordinator(host, on_error=False, on_unhandled_rejection=False)
        integration.setup_once(lambda: hub)
        assert host.handlers(HostEventKind.UNCAUGHT_ERROR) == []
        assert host.handlers(HostEventKind.DISCARDED_ERROR) == []
        assert host.error_handler is None


class TestHandle:
    async def test_non_fatal_is_captured_and_flushed(self, coordinator, host, transport):
        host.emit(HostEventKind.DISCARDED_ERROR, HostErrorEvent(error=ValueError("lost task")))
        await asyncio.gather(*coordinator._tasks)

        assert len(transport.errors) == 1
        event = transport.errors[0]
        assert event.level == Level.ERROR
        assert event.is_fatal is False
        assert event.exception[-1].mechanism.type == "onerror"
        assert event.exception[-1].mechanism.handled is False
        assert host.default_calls == []

    async def test_fatal_is_flagged_and_host_handler_runs(self, coordinator, host, transport):
        error = RuntimeError("crash")
        task = coordinator.handle(error, is_fatal=True)
        await task

        event = transport.errors[0]
        assert event.level == Level.FATAL
        assert event.is_fatal is True
        assert host.default_calls == [(error, True)]
        assert not coordinator.latch.engaged

    async def test_fatal_level_does_not_leak_into_scope(self, coordinator, hub):
        await coordinator.handle(RuntimeError("crash"), is_fatal=True)
        assert hub.scope.level is None

    async def test_trace_error_handler_routes_to_handle(self, coordinator, host, transport):
        host.report_trace_error(KeyError("swallowed"))
        await asyncio.gather(*coordinator._tasks)
        assert transport.errors[0].exception[-1].type == "KeyError"

    async def test_two_fatals_same_tick_one_flush_at_a_time(self, coordinator, host, client, transport, monkeypatch):
        state = _track_flush_concurrency(monkeypatch, client)
        first, second = RuntimeError("first"), RuntimeError("second")

        host.emit(HostEventKind.UNCAUGHT_ERROR, HostErrorEvent(error=first, is_fatal=True))
        host.emit(HostEventKind.UNCAUGHT_ERROR, HostErrorEvent(error=second, is_fatal=True))
        await asyncio.gather(*coordinator._tasks)

        assert state["max"] == 1
        assert state["calls"] == 2  # initial flush plus one follow-up
        assert [e.exception[-1].value for e in transport.errors] == ["first", "second"]
        assert host.default_calls == [(first, True)]

    async def test_fatal_storm_logs_warning(self, coordinator, caplog):
        coordinator.handle(RuntimeError("a"), is_fatal=True)
        with caplog.at_level(logging.WARNING, logger="crashtrace"):
            coordinator.handle(RuntimeError("b"), is_fatal=True)
        assert "multiple fatals in a row" in caplog.text
        await asyncio.gather(*coordinator._tasks)

    async def test_fatal_after_release_starts_new_sequence(self, coordinator, host):
        await coordinator.handle(RuntimeError("a"), is_fatal=True)
        await coordinator.handle(RuntimeError("b"), is_fatal=True)
        assert len(host.default_calls) == 2

    async def test_no_client_warns_once_and_hands_fatal_to_host(self, host, caplog):
        integration = ErrorCaptureCoordinator(host)
        integration.setup_once(lambda: Hub())

        with caplog.at_level(logging.WARNING, logger="crashtrace"):
            result = integration.handle(RuntimeError("orphan"), is_fatal=True)

        assert result is None
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "No client attached" in warnings[0].getMessage()
        assert [(type(e), fatal) for e, fatal in host.default_calls] == [(RuntimeError, True)]

    async def test_no_client_non_fatal_leaves_host_alone(self, host):
        integration = ErrorCaptureCoordinator(host)
        integration.setup_once(lambda: Hub())
        assert integration.handle(ValueError("orphan")) is None
        assert host.default_calls == []

    async def test_flush_timeout_still_runs_host_handler(self, host, caplog):
        slow = InMemoryTransport(delay=0.2)
        hub = Hub(Client(ClientOptions(shutdown_timeout=50), transport=slow))
        integration = ErrorCaptureCoordinator(host)
        integration.setup_once(lambda: hub)

        error = RuntimeError("slow crash")
        assert await integration.handle(error, is_fatal=True) is False
        assert host.default_calls == [(error, True)]
        assert "Flush did not deliver" in caplog.text
        await asyncio.sleep(0.25)

    async def test_flush_exception_is_logged(self, coordinator, client, host, monkeypatch, caplog):
        async def broken(timeout_ms=None):
            raise OSError("disk full")

        monkeypatch.setattr(client, "flush", broken)
        error = RuntimeError("crash")

        assert await coordinator.handle(error, is_fatal=True) is False
        assert "Flush failed" in caplog.text
        assert host.default_calls == [(error, True)]


class TestWithoutLoop:
    def test_fatal_flushes_synchronously(self, host, hub, transport):
        integration = ErrorCaptureCoordinator(host)
        integration.setup_once(lambda: hub)

        error = RuntimeError("at exit")
        assert integration.handle(error, is_fatal=True) is None
        assert len(transport.errors) == 1
        assert host.default_calls == [(error, True)]


class UnprintableError(Exception):
    def __str__(self):
        raise RuntimeError("cannot render")


class TestFailedCapture:
    async def test_unprintable_error_is_reported(self, coordinator, host, transport):
        error = UnprintableError()
        await coordinator.handle(error, is_fatal=True)

        assert transport.errors[0].exception[-1].value == "<exception str() failed>"
        assert host.default_calls == [(error, True)]
        assert not coordinator.latch.engaged

    async def test_capture_failure_releases_latch(self, coordinator, host, hub, transport, monkeypatch, caplog):
        original = hub.capture_exception
        seen = []

        def flaky(error, **kwargs):
            seen.append(error)
            if len(seen) == 1:
                raise RuntimeError("capture broke")
            return original(error, **kwargs)

        monkeypatch.setattr(hub, "capture_exception", flaky)
        first, later = RuntimeError("first"), RuntimeError("later")

        await coordinator.handle(first, is_fatal=True)
        assert "Failed to capture" in caplog.text
        assert not coordinator.latch.engaged

        task = coordinator.handle(later, is_fatal=True)
        assert task is not None
        await task

        assert [e.exception[-1].value for e in transport.errors] == ["later"]
        assert host.default_calls == [(first, True), (later, True)]
