"""Hub — binds a client to a stack of scopes; process-wide registry."""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, TypeVar

from crashtrace.core.models import (
    Breadcrumb,
    Event,
    Level,
    Mechanism,
    TransactionContext,
    event_from_exception,
)
from crashtrace.core.scope import Scope

if TYPE_CHECKING:
    from crashtrace.core.client import Client
    from crashtrace.tracing.transaction import Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Hub:
    """Capture API: routes events through the active scope to the client."""

    def __init__(self, client: Client | None = None, scope: Scope | None = None) -> None:
        self._client = client
        self._stack: list[Scope] = [scope or Scope()]
        self._last_event_id: str | None = None

    # -- client ---------------------------------------------------------------

    @property
    def client(self) -> Client | None:
        return self._client

    def get_client(self) -> Client | None:
        return self._client

    def bind_client(self, client: Client | None) -> None:
        self._client = client
        if client is not None:
            self._stack[0].breadcrumbs = _resize(self._stack[0].breadcrumbs, client.options.max_breadcrumbs)

    # -- scopes ---------------------------------------------------------------

    @property
    def scope(self) -> Scope:
        return self._stack[-1]

    @contextmanager
    def push_scope(self) -> Iterator[Scope]:
        """Work on a copy of the current scope; the parent is restored on exit."""
        scope = self.scope.copy()
        self._stack.append(scope)
        try:
            yield scope
        finally:
            # an inner block may have left its own scope pushed
            while self._stack[-1] is not scope:
                self._stack.pop()
            self._stack.pop()

    def with_scope(self, callback: Callable[[Scope], T]) -> T:
        with self.push_scope() as scope:
            return callback(scope)

    def unbind_transaction(self, transaction: Transaction) -> None:
        """Clear *transaction* from every scope on the stack that still holds it."""
        for scope in self._stack:
            if scope.transaction is transaction:
                scope.transaction = None

    def set_tag(self, key: str, value: Any) -> None:
        self.scope.set_tag(key, value)

    def set_extra(self, key: str, value: Any) -> None:
        self.scope.set_extra(key, value)

    def add_breadcrumb(self, crumb: Breadcrumb | None = None, **kwargs: Any) -> None:
        if self._client is None:
            logger.debug("Dropped breadcrumb because no client is bound")
            return
        self.scope.add_breadcrumb(crumb or Breadcrumb(**kwargs))

    # -- capture --------------------------------------------------------------

    def capture_event(self, event: Event, hint: dict[str, Any] | None = None) -> str | None:
        if self._client is None:
            logger.debug("Dropped event %s because no client is bound", event.event_id)
            return None
        event_id = self._client.capture_event(event, scope=self.scope, hint=hint)
        if event_id is not None:
            self._last_event_id = event_id
        return event_id

    def capture_exception(
        self,
        error: BaseException,
        hint: dict[str, Any] | None = None,
        mechanism: Mechanism | None = None,
    ) -> str | None:
        if self._client is None:
            logger.debug("Dropped %r because no client is bound", error)
            return None
        event = event_from_exception(error, mechanism=mechanism)
        return self.capture_event(event, hint={"original_exception": error, **(hint or {})})

    def capture_message(self, message: str, level: Level = Level.INFO) -> str | None:
        return self.capture_event(Event(message=message, level=level))

    def last_event_id(self) -> str | None:
        return self._last_event_id

    # -- tracing --------------------------------------------------------------

    def start_transaction(self, context: TransactionContext) -> Transaction:
        """Start a plain (manually finished) transaction with client sampling."""
        from crashtrace.tracing.transaction import Transaction, sample_transaction

        transaction = Transaction(context, hub=self)
        options = self._client.options if self._client is not None else None
        sample_transaction(transaction, options.traces_sample_rate if options else None)
        if transaction.sampled:
            transaction.init_span_recorder(options.max_spans if options else 1000)
        return transaction

    def capture_transaction(self, transaction: Transaction) -> str | None:
        if self._client is None:
            logger.debug("Dropped transaction %r because no client is bound", transaction.name)
            return None
        return self._client.capture_transaction(transaction, scope=self.scope)


def _resize(breadcrumbs: deque[Breadcrumb], maxlen: int) -> deque[Breadcrumb]:
    return deque(breadcrumbs, maxlen=maxlen)


# ---------------------------------------------------------------------------
# Process-wide registry
# ---------------------------------------------------------------------------

_main_hub = Hub()


def get_current_hub() -> Hub:
    return _main_hub
