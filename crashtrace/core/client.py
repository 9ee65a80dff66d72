"""Client — event pipeline from capture to the flush queue."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Any, Callable

from crashtrace.core.flush import FlushCoordinator
from crashtrace.core.models import Event, EventType
from crashtrace.core.options import DEFAULT_SHUTDOWN_TIMEOUT, ClientOptions
from crashtrace.core.scope import Scope
from crashtrace.transport.interface import Transport
from crashtrace.transport.jsonl import JSONLTransport

if TYPE_CHECKING:
    from crashtrace.tracing.transaction import Transaction

logger = logging.getLogger(__name__)

EventProcessor = Callable[[Event, dict[str, Any]], "Event | None"]


class Client:
    """Prepares events and queues them for delivery.

    Capture is synchronous and never touches the network; delivery happens
    on ``flush()``.
    """

    def __init__(self, options: ClientOptions | None = None, transport: Transport | None = None) -> None:
        self.options = options or ClientOptions()
        self._transport = transport or JSONLTransport(self.options.outbox_dir)
        self.flush_coordinator = FlushCoordinator(self._transport)
        self._event_processors: list[EventProcessor] = []

    @property
    def transport(self) -> Transport:
        return self._transport

    def get_options(self) -> ClientOptions:
        return self.options

    def add_event_processor(self, processor: EventProcessor) -> None:
        self._event_processors.append(processor)

    # -- capture --------------------------------------------------------------

    def capture_event(
        self,
        event: Event,
        scope: Scope | None = None,
        hint: dict[str, Any] | None = None,
    ) -> str | None:
        if event.type == EventType.ERROR and self.options.sample_rate < 1.0:
            if random.random() >= self.options.sample_rate:
                logger.info("Discarded event %s due to sample_rate", event.event_id)
                return None

        prepared = self._prepare_event(event, scope, hint or {})
        if prepared is None:
            return None

        self.flush_coordinator.enqueue(prepared)
        return prepared.event_id

    def capture_transaction(self, transaction: Transaction, scope: Scope | None = None) -> str | None:
        event = Event(type=EventType.TRANSACTION, **transaction.to_event_fields())
        return self.capture_event(event, scope=scope)

    def _prepare_event(self, event: Event, scope: Scope | None, hint: dict[str, Any]) -> Event | None:
        defaults = {
            name: getattr(self.options, name)
            for name in ("environment", "release", "dist")
            if getattr(event, name) is None and getattr(self.options, name) is not None
        }
        if defaults:
            event = event.model_copy(update=defaults)

        if scope is not None:
            event = scope.apply_to_event(event)

        for processor in self._event_processors:
            try:
                result = processor(event, hint)
            except Exception:
                logger.exception("Event processor %r failed", processor)
                continue
            if result is None:
                logger.info("Event processor %r dropped event %s", processor, event.event_id)
                return None
            event = result

        before_send = self.options.before_send
        if before_send is not None and event.type == EventType.ERROR:
            try:
                result = before_send(event)
            except Exception:
                logger.exception("before_send failed; sending the event unchanged")
                result = event
            if result is None:
                logger.info("before_send dropped event %s", event.event_id)
                return None
            event = result

        return event

    # -- delivery -------------------------------------------------------------

    async def flush(self, timeout_ms: float | None = None) -> bool:
        timeout = timeout_ms if timeout_ms is not None else (
            self.options.shutdown_timeout or DEFAULT_SHUTDOWN_TIMEOUT
        )
        return await self.flush_coordinator.flush(timeout)

    async def close(self, timeout_ms: float | None = None) -> bool:
        delivered = await self.flush(timeout_ms)
        try:
            await self._transport.close()
        except Exception:
            logger.exception("Failed to close transport")
        return delivered
