"""Tests for IdleTransaction — idle countdown, activity tracking, trimming."""

from __future__ import annotations

import asyncio

from crashtrace.core.models import TransactionContext
from crashtrace.tracing.idle import (
    FINISH_REASON_TAG,
    HEARTBEAT_FAILED,
    IDLE_TIMEOUT,
    IdleTransaction,
    start_idle_transaction,
)
from crashtrace.tracing.span import SpanStatus


def _ctx(**kwargs) -> TransactionContext:
    return TransactionContext(name="route", op="navigation", trim_end=True, **kwargs)


class TestIdleCountdown:
    async def test_no_spans_finishes_at_start(self, hub):
        """No activity: after the idle timeout, end == start."""
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=50)
        assert not tx.is_finished

        await asyncio.sleep(0.15)

        assert tx.is_finished
        assert tx.end_timestamp == tx.start_timestamp
        assert tx.tags[FINISH_REASON_TAG] == IDLE_TIMEOUT

    async def test_end_is_last_span_end_not_timer_fire(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=50)
        span = tx.start_child(op="ui.load", start_timestamp=tx.start_timestamp)
        span.finish(end_timestamp=tx.start_timestamp + 0.2)

        await asyncio.sleep(0.15)

        assert tx.is_finished
        assert tx.end_timestamp == tx.start_timestamp + 0.2

    async def test_open_span_pauses_countdown(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=30)
        span = tx.start_child(op="http.client")
        await asyncio.sleep(0.1)
        assert not tx.is_finished
        assert tx.open_activities == 1

        span.finish()
        await asyncio.sleep(0.1)
        assert tx.is_finished
        assert tx.tags[FINISH_REASON_TAG] == IDLE_TIMEOUT

    async def test_hung_span_ends_on_heartbeat(self, hub, client, transport):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=30, heartbeat_interval=20)
        hung = tx.start_child(op="hung")

        await asyncio.sleep(0.3)

        assert tx.is_finished
        assert tx.status == SpanStatus.DEADLINE_EXCEEDED
        assert tx.tags[FINISH_REASON_TAG] == HEARTBEAT_FAILED
        assert hung.status == SpanStatus.CANCELLED
        assert hub.scope.transaction is None
        await client.flush(500)
        assert len(transport.transactions) == 1

    async def test_changing_spans_keep_heartbeat_alive(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=1000, heartbeat_interval=30)
        tx.start_child(op="long")
        for _ in range(5):
            await asyncio.sleep(0.02)
            tx.start_child(op="step")
        assert not tx.is_finished
        tx.finish()

    async def test_activity_resets_countdown(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=80)
        for _ in range(3):
            await asyncio.sleep(0.05)
            tx.start_child(op="step").finish()
        assert not tx.is_finished

        await asyncio.sleep(0.15)
        assert tx.is_finished

    async def test_wait_for_activity_false_does_not_arm(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=30, wait_for_activity=False)
        await asyncio.sleep(0.1)
        assert not tx.is_finished

        tx.start_child().finish()
        await asyncio.sleep(0.1)
        assert tx.is_finished

    def test_without_loop_no_countdown(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=10)
        assert not tx.is_finished
        tx.finish()
        assert tx.is_finished


class TestIdleFinish:
    async def test_open_spans_are_cancelled(self, hub, client, transport):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=1000)
        span = tx.start_child(op="db")
        tx.finish()

        assert span.status == SpanStatus.CANCELLED
        assert span.end_timestamp is not None
        assert span.end_timestamp <= tx.end_timestamp

    async def test_callbacks_run_in_order(self, hub):
        calls = []
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=1000)
        tx.register_before_finish_callback(lambda t, end: calls.append("first"))
        tx.register_before_finish_callback(lambda t, end: calls.append("second"))
        tx.finish()
        assert calls == ["first", "second"]

    async def test_failing_callback_does_not_block_others(self, hub):
        calls = []

        def broken(t, end):
            raise ValueError("nope")

        tx = start_idle_transaction(hub, _ctx(), idle_timeout=1000)
        tx.register_before_finish_callback(broken)
        tx.register_before_finish_callback(lambda t, end: calls.append(end))
        tx.finish(end_timestamp=tx.start_timestamp + 1)
        assert calls == [tx.start_timestamp + 1]

    async def test_unbinds_from_scope(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=1000)
        assert hub.scope.transaction is tx
        tx.finish()
        assert hub.scope.transaction is None

    async def test_delivered_once(self, hub, client, transport):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=30)
        tx.start_child().finish()
        await asyncio.sleep(0.1)
        tx.finish()

        await client.flush(500)
        assert len(transport.transactions) == 1

    async def test_direct_construction(self, hub):
        tx = IdleTransaction(_ctx(sampled=True), hub=hub, idle_timeout=20)
        tx.start_idle_timer()
        await asyncio.sleep(0.08)
        assert tx.is_finished

    async def test_unbinds_from_pushed_scopes(self, hub):
        tx = start_idle_transaction(hub, _ctx(), idle_timeout=1000)
        with hub.push_scope() as inner:
            assert inner.transaction is tx
            tx.finish()
            assert inner.transaction is None
        assert hub.scope.transaction is None
