"""Transaction — root span of a unit of work, plus the sampling decision."""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Any

from crashtrace.core.models import TransactionContext
from crashtrace.tracing.span import Span, SpanRecorder

if TYPE_CHECKING:
    from crashtrace.core.hub import Hub

logger = logging.getLogger(__name__)


class Transaction(Span):
    """A named, timed unit of work; owns the recorder of its child spans."""

    def __init__(self, context: TransactionContext, hub: Hub | None = None) -> None:
        super().__init__(
            op=context.op,
            description=context.description,
            trace_id=context.trace_id,
            parent_span_id=context.parent_span_id,
            sampled=context.sampled,
            start_timestamp=context.start_timestamp,
        )
        self._containing_transaction = self
        self.name = context.name
        self.tags.update(context.tags)
        self.data.update(context.data)
        self.trim_end = context.trim_end
        self.span_recorder: SpanRecorder | None = None
        self._hub = hub

    # -- sampling -------------------------------------------------------------

    @property
    def sampled(self) -> bool | None:
        return self._sampled

    @sampled.setter
    def sampled(self, value: bool | None) -> None:
        if self._sampled is False and value is not False:
            logger.debug("Transaction %r is already unsampled; ignoring %r", self.name, value)
            return
        self._sampled = value

    # -- spans ----------------------------------------------------------------

    def init_span_recorder(self, max_spans: int = 1000) -> None:
        if self.span_recorder is None:
            self.span_recorder = SpanRecorder(max_spans)

    def _on_child_started(self, span: Span) -> None:
        if self.span_recorder is not None:
            self.span_recorder.add(span)

    def _on_child_finished(self, span: Span) -> None:
        return None

    def child_spans(self) -> list[Span]:
        return list(self.span_recorder.spans) if self.span_recorder else []

    # -- lifecycle ------------------------------------------------------------

    def finish(self, end_timestamp: float | None = None) -> str | None:
        """Seal the transaction and hand it to the hub if it is sampled.

        Returns the id of the captured transaction event, or ``None``.
        """
        if self.is_finished:
            logger.debug("Transaction %r already finished", self.name)
            return None

        super().finish(end_timestamp)

        if not self.name:
            logger.warning("Transaction has no name, falling back to <unlabeled transaction>")
            self.name = "<unlabeled transaction>"

        if self.trim_end:
            finished = self.span_recorder.finished_spans() if self.span_recorder else []
            if finished:
                self.end_timestamp = max(s.end_timestamp for s in finished)
            else:
                self.end_timestamp = self.start_timestamp

        if self.sampled is not True:
            logger.debug("[Tracing] Discarding transaction %r because sampled = False", self.name)
            return None

        if self._hub is None:
            logger.warning("[Tracing] Transaction %r finished without a hub", self.name)
            return None
        return self._hub.capture_transaction(self)

    def to_event_fields(self) -> dict[str, Any]:
        """Fields of the transaction ``Event`` built by the client."""
        spans = [s.to_payload() for s in self.child_spans() if s.is_finished]
        return {
            "transaction": self.name,
            "start_timestamp": self.start_timestamp,
            "timestamp": self.end_timestamp,
            "tags": dict(self.tags),
            "extra": dict(self.data),
            "contexts": {"trace": self.trace_context()},
            "spans": spans,
        }


def sample_transaction(transaction: Transaction, traces_sample_rate: float | None) -> None:
    """Decide ``sampled`` unless the context already did."""
    if transaction.sampled is not None:
        return
    if not traces_sample_rate:
        transaction.sampled = False
        return
    transaction.sampled = random.random() < traces_sample_rate
    if not transaction.sampled:
        logger.debug(
            "[Tracing] Transaction %r not sampled (traces_sample_rate=%s)",
            transaction.name, traces_sample_rate,
        )
