"""TransactionLifecycleManager — idle navigation transactions with finish policy."""

from __future__ import annotations

import logging
from typing import Callable

import httpx
from pydantic import BaseModel, ConfigDict, Field

from crashtrace.core.models import TransactionContext
from crashtrace.integrations.interface import HubGetter, Integration
from crashtrace.tracing.idle import (
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_IDLE_TIMEOUT,
    NEW_TRANSACTION,
    IdleTransaction,
    start_idle_transaction,
)
from crashtrace.tracing.requests import DEFAULT_TRACING_ORIGINS, instrument_httpx_client
from crashtrace.tracing.routing import ROUTE_HAS_BEEN_SEEN, RoutingInstrumentation
from crashtrace.tracing.span import SpanStatus
from crashtrace.tracing.transaction import Transaction

logger = logging.getLogger(__name__)

MAX_DURATION_TAG = "maxTransactionDurationExceeded"


class TracingOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Time without span activity (ms) before the transaction finishes. The
    # end timestamp of the last finished span becomes the transaction's end.
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    # Interval (ms) of the heartbeat that ends transactions stuck on open spans.
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    # Seconds; longer transactions are marked deadline_exceeded. 0 disables.
    max_transaction_duration: float = 600
    # Drop transactions for revisited routes that recorded no spans.
    ignore_empty_back_navigation_transactions: bool = True
    # May rewrite the context; ``sampled=False`` drops the transaction.
    before_navigate: Callable[[TransactionContext], TransactionContext] | None = None
    # Request instrumentation
    trace_requests: bool = True
    tracing_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_TRACING_ORIGINS))
    should_create_span_for_request: Callable[[str], bool] | None = None


def adjust_transaction_duration(
    max_duration: float,
    transaction: Transaction,
    end_timestamp: float,
) -> None:
    """Flag (not drop) transactions longer than *max_duration* seconds."""
    if max_duration <= 0:
        return
    diff = end_timestamp - transaction.start_timestamp
    if diff > max_duration or diff < 0:
        transaction.set_status(SpanStatus.DEADLINE_EXCEEDED)
        transaction.set_tag(MAX_DURATION_TAG, "true")


def drop_empty_back_navigation(transaction: Transaction, end_timestamp: float) -> None:
    if transaction.data.get(ROUTE_HAS_BEEN_SEEN) and not transaction.child_spans():
        # revisited route with no instrumented work
        transaction.sampled = False


class TransactionLifecycleManager(Integration):
    """Starts one idle transaction per navigation and applies finish policy."""

    identifier = "TransactionLifecycleManager"

    def __init__(
        self,
        options: TracingOptions | None = None,
        routing: RoutingInstrumentation | None = None,
        **overrides,
    ) -> None:
        base = options or TracingOptions()
        self.options = base.model_copy(update=overrides) if overrides else base
        self.routing = routing
        self._get_hub: HubGetter | None = None
        self._active: IdleTransaction | None = None

    def setup_once(self, get_hub: HubGetter) -> None:
        self._get_hub = get_hub
        if self.routing is not None:
            self.routing.register(self.on_route_will_change)
        else:
            logger.info("[Tracing] Not instrumenting route changes as no routing instrumentation was set")

    @property
    def active_transaction(self) -> IdleTransaction | None:
        if self._active is not None and self._active.is_finished:
            self._active = None
        return self._active

    # -- navigation -----------------------------------------------------------

    def on_route_will_change(self, context: TransactionContext) -> IdleTransaction | None:
        """To be called when the route changes, before the new route's work starts."""
        return self.start_transaction(context)

    def start_transaction(
        self,
        context: TransactionContext,
        idle_timeout: float | None = None,
        wait_for_activity: bool = True,
    ) -> IdleTransaction | None:
        if self._get_hub is None:
            logger.warning(
                "[Tracing] Did not create %s transaction because the hub getter is not set",
                context.op,
            )
            return None

        expanded = context.model_copy(update={"trim_end": True})
        modified = self._before_navigate(expanded)
        if modified.sampled is False:
            logger.info("[Tracing] Will not send %s transaction %r", modified.op, modified.name)

        previous = self.active_transaction
        if previous is not None:
            logger.debug("[Tracing] Finishing %r before starting %r", previous.name, modified.name)
            previous.finish(reason=NEW_TRANSACTION)

        hub = self._get_hub()
        transaction = start_idle_transaction(
            hub,
            modified,
            idle_timeout=self.options.idle_timeout if idle_timeout is None else idle_timeout,
            on_scope=True,
            wait_for_activity=wait_for_activity,
            heartbeat_interval=self.options.heartbeat_interval,
        )
        logger.debug("[Tracing] Starting %s transaction %r on scope", modified.op, modified.name)

        max_duration = self.options.max_transaction_duration
        transaction.register_before_finish_callback(
            lambda tx, end: adjust_transaction_duration(max_duration, tx, end)
        )
        if self.options.ignore_empty_back_navigation_transactions:
            transaction.register_before_finish_callback(drop_empty_back_navigation)

        self._active = transaction
        return transaction

    def _before_navigate(self, context: TransactionContext) -> TransactionContext:
        hook = self.options.before_navigate
        if hook is None:
            return context
        try:
            modified = hook(context)
        except Exception:
            logger.exception("[Tracing] before_navigate failed; using the original context")
            return context
        return modified if modified is not None else context

    # -- requests -------------------------------------------------------------

    def instrument_client(self, client: httpx.AsyncClient) -> httpx.AsyncClient:
        if not self.options.trace_requests:
            return client
        if self._get_hub is None:
            logger.warning("[Tracing] Cannot instrument %r before setup_once", client)
            return client
        return instrument_httpx_client(
            client,
            self._get_hub,
            tracing_origins=self.options.tracing_origins,
            should_create_span_for_request=self.options.should_create_span_for_request,
        )
