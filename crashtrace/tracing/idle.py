"""IdleTransaction — finishes itself after a quiet period with no span activity."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable

from crashtrace.core.models import TransactionContext
from crashtrace.tracing.span import Span, SpanStatus
from crashtrace.tracing.transaction import Transaction, sample_transaction

if TYPE_CHECKING:
    from crashtrace.core.hub import Hub

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 1000  # ms
DEFAULT_HEARTBEAT_INTERVAL = 5000  # ms
FINAL_HEARTBEAT_COUNT = 3

FINISH_REASON_TAG = "finishReason"
IDLE_TIMEOUT = "idleTimeout"
EXTERNAL_FINISH = "externalFinish"
NEW_TRANSACTION = "newTransaction"
HEARTBEAT_FAILED = "heartbeatFailed"

BeforeFinishCallback = Callable[["IdleTransaction", float], None]


class IdleTransaction(Transaction):
    """Transaction whose end is decided by child-span activity.

    Every span start pauses the countdown; when the last open span finishes
    the countdown restarts. If it elapses, the transaction finishes and,
    with ``trim_end``, takes the end of its last finished span as its own.

    While spans are open a heartbeat runs every ``heartbeat_interval`` ms.
    After ``FINAL_HEARTBEAT_COUNT`` beats with the same open spans the
    transaction finishes as ``deadline_exceeded``.
    """

    def __init__(
        self,
        context: TransactionContext,
        hub: Hub | None = None,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        on_scope: bool = False,
        wait_for_activity: bool = True,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ) -> None:
        super().__init__(context, hub)
        self.idle_timeout = idle_timeout
        self.heartbeat_interval = heartbeat_interval
        self._on_scope = on_scope
        self._wait_for_activity = wait_for_activity
        self._activities: set[str] = set()
        self._before_finish_callbacks: list[BeforeFinishCallback] = []
        self._idle_handle: asyncio.TimerHandle | None = None
        self._heartbeat_handle: asyncio.TimerHandle | None = None
        self._heartbeat_counter = 0
        self._prev_heartbeat: frozenset[str] = frozenset()
        self._finished = False

    @property
    def open_activities(self) -> int:
        return len(self._activities)

    def register_before_finish_callback(self, callback: BeforeFinishCallback) -> None:
        self._before_finish_callbacks.append(callback)

    # -- activity tracking ----------------------------------------------------

    def _on_child_started(self, span: Span) -> None:
        super()._on_child_started(span)
        if self._finished:
            return
        self._cancel_idle_timeout()
        self._activities.add(span.span_id)
        logger.debug("[Tracing] pushActivity %s (open=%d)", span.span_id, len(self._activities))
        if self._heartbeat_handle is None:
            self._ping_heartbeat()

    def _on_child_finished(self, span: Span) -> None:
        if self._finished:
            return
        self._activities.discard(span.span_id)
        logger.debug("[Tracing] popActivity %s (open=%d)", span.span_id, len(self._activities))
        if not self._activities:
            self._cancel_heartbeat()
            self.restart_idle_timeout()

    def start_idle_timer(self) -> None:
        """Arm the first countdown when the transaction waits for activity."""
        if self._wait_for_activity:
            self.restart_idle_timeout()

    def restart_idle_timeout(self) -> None:
        self._cancel_idle_timeout()
        if self._finished:
            return
        loop = _running_loop()
        if loop is None:
            logger.debug("[Tracing] No running event loop; %r will not auto-finish", self.name)
            return
        self._idle_handle = loop.call_later(self.idle_timeout / 1000, self._on_idle_timeout)

    def _cancel_idle_timeout(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle_timeout(self) -> None:
        self._idle_handle = None
        if not self._finished:
            self.finish(reason=IDLE_TIMEOUT)

    # -- heartbeat ------------------------------------------------------------

    def _ping_heartbeat(self) -> None:
        loop = _running_loop()
        if loop is None:
            return
        self._heartbeat_handle = loop.call_later(self.heartbeat_interval / 1000, self._beat)

    def _cancel_heartbeat(self) -> None:
        if self._heartbeat_handle is not None:
            self._heartbeat_handle.cancel()
            self._heartbeat_handle = None
        self._heartbeat_counter = 0
        self._prev_heartbeat = frozenset()

    def _beat(self) -> None:
        self._heartbeat_handle = None
        if self._finished or not self._activities:
            return
        current = frozenset(self._activities)
        if current == self._prev_heartbeat:
            self._heartbeat_counter += 1
        else:
            self._heartbeat_counter = 1
        self._prev_heartbeat = current

        if self._heartbeat_counter >= FINAL_HEARTBEAT_COUNT:
            logger.debug("[Tracing] Heartbeat failed for %r with %d open span(s)", self.name, len(current))
            self.set_status(SpanStatus.DEADLINE_EXCEEDED)
            self.finish(reason=HEARTBEAT_FAILED)
            return
        self._ping_heartbeat()

    # -- lifecycle ------------------------------------------------------------

    def finish(self, end_timestamp: float | None = None, reason: str = EXTERNAL_FINISH) -> str | None:
        if self._finished:
            return None
        self._finished = True
        self._cancel_idle_timeout()
        self._cancel_heartbeat()

        end = end_timestamp if end_timestamp is not None else time.time()
        self.set_tag(FINISH_REASON_TAG, reason)
        logger.debug("[Tracing] Finishing idle transaction %r (%s)", self.name, reason)

        # callbacks only see spans that belong to the transaction
        if self.span_recorder is not None:
            self.span_recorder.discard_started_after(end)

        for callback in self._before_finish_callbacks:
            try:
                callback(self, end)
            except Exception:
                logger.exception("[Tracing] before-finish callback failed for %r", self.name)

        if self.span_recorder is not None:
            for span in self.span_recorder.spans:
                if not span.is_finished:
                    span.set_status(SpanStatus.CANCELLED)
                    span.finish(end)
        self._activities.clear()

        if self._on_scope and self._hub is not None:
            self._hub.unbind_transaction(self)

        return super().finish(end)


def start_idle_transaction(
    hub: Hub,
    context: TransactionContext,
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
    on_scope: bool = True,
    wait_for_activity: bool = True,
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
) -> IdleTransaction:
    """Create, sample and (optionally) bind an idle transaction to *hub*'s scope."""
    client = hub.client
    options = client.options if client is not None else None

    transaction = IdleTransaction(
        context,
        hub=hub,
        idle_timeout=idle_timeout,
        on_scope=on_scope,
        wait_for_activity=wait_for_activity,
        heartbeat_interval=heartbeat_interval,
    )
    sample_transaction(transaction, options.traces_sample_rate if options else None)
    if transaction.sampled:
        transaction.init_span_recorder(options.max_spans if options else 1000)

    if on_scope:
        hub.scope.transaction = transaction
    transaction.start_idle_timer()
    return transaction


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
