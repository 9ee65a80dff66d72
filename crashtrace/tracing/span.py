"""Span and SpanRecorder — child timing records of a transaction."""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any

from crashtrace.core.models import SpanPayload

if TYPE_CHECKING:
    from crashtrace.tracing.transaction import Transaction

logger = logging.getLogger(__name__)


class SpanStatus(str, Enum):
    OK = "ok"
    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    INTERNAL_ERROR = "internal_error"
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    INVALID_ARGUMENT = "invalid_argument"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"

    @classmethod
    def from_http_status(cls, status_code: int) -> "SpanStatus":
        if status_code < 400:
            return cls.OK
        mapping = {
            400: cls.INVALID_ARGUMENT,
            401: cls.UNAUTHENTICATED,
            403: cls.PERMISSION_DENIED,
            404: cls.NOT_FOUND,
            429: cls.RESOURCE_EXHAUSTED,
            503: cls.UNAVAILABLE,
            504: cls.DEADLINE_EXCEEDED,
        }
        if status_code in mapping:
            return mapping[status_code]
        return cls.INTERNAL_ERROR if status_code >= 500 else cls.UNKNOWN


def _new_id() -> str:
    return uuid.uuid4().hex[16:]


class SpanRecorder:
    """Bounded list of the child spans that belong to one transaction."""

    def __init__(self, max_spans: int = 1000) -> None:
        self.max_spans = max_spans
        self.spans: list[Span] = []

    def add(self, span: Span) -> None:
        if len(self.spans) >= self.max_spans:
            logger.debug("Span recorder full (%d), dropping span %s", self.max_spans, span.span_id)
            span.recorded = False
            return
        self.spans.append(span)
        span.recorded = True

    def finished_spans(self) -> list[Span]:
        return [s for s in self.spans if s.end_timestamp is not None]

    def discard_started_after(self, timestamp: float) -> None:
        self.spans = [s for s in self.spans if s.start_timestamp <= timestamp]

    def __len__(self) -> int:
        return len(self.spans)


class Span:
    """A timed operation; spans nest under the transaction that contains them."""

    def __init__(
        self,
        op: str | None = None,
        description: str | None = None,
        trace_id: str | None = None,
        parent_span_id: str | None = None,
        span_id: str | None = None,
        sampled: bool | None = None,
        start_timestamp: float | None = None,
        containing_transaction: Transaction | None = None,
    ) -> None:
        self.span_id = span_id or _new_id()
        self.trace_id = trace_id or uuid.uuid4().hex
        self.parent_span_id = parent_span_id
        self.op = op
        self.description = description
        self.status: SpanStatus | None = None
        self.tags: dict[str, str] = {}
        self.data: dict[str, Any] = {}
        self._sampled = sampled
        self.start_timestamp = start_timestamp if start_timestamp is not None else time.time()
        self.end_timestamp: float | None = None
        self.recorded = False
        self._containing_transaction = containing_transaction

    @property
    def sampled(self) -> bool | None:
        return self._sampled

    @property
    def is_finished(self) -> bool:
        return self.end_timestamp is not None

    @property
    def containing_transaction(self) -> Transaction | None:
        return self._containing_transaction

    # -- children -------------------------------------------------------------

    def start_child(
        self,
        op: str | None = None,
        description: str | None = None,
        start_timestamp: float | None = None,
    ) -> Span:
        transaction = self._containing_transaction
        child = Span(
            op=op,
            description=description,
            trace_id=self.trace_id,
            parent_span_id=self.span_id,
            sampled=self.sampled,
            start_timestamp=start_timestamp,
            containing_transaction=transaction,
        )
        if transaction is not None:
            transaction._on_child_started(child)
        return child

    # -- metadata -------------------------------------------------------------

    def set_tag(self, key: str, value: Any) -> None:
        self.tags[key] = str(value)

    def set_data(self, key: str, value: Any) -> None:
        self.data[key] = value

    def set_status(self, status: SpanStatus) -> None:
        self.status = status

    def set_http_status(self, status_code: int) -> None:
        self.set_tag("http.status_code", status_code)
        self.set_data("http.response.status_code", status_code)
        self.set_status(SpanStatus.from_http_status(status_code))

    # -- lifecycle ------------------------------------------------------------

    def finish(self, end_timestamp: float | None = None) -> None:
        if self.end_timestamp is not None:
            return
        end = end_timestamp if end_timestamp is not None else time.time()
        self.end_timestamp = max(end, self.start_timestamp)

        transaction = self._containing_transaction
        if transaction is not None and transaction is not self:
            transaction._on_child_finished(self)

    # -- serialization --------------------------------------------------------

    def to_traceparent(self) -> str:
        sampled = {True: "-1", False: "-0"}.get(self.sampled, "")
        return f"{self.trace_id}-{self.span_id}{sampled}"

    def trace_context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {"trace_id": self.trace_id, "span_id": self.span_id}
        if self.parent_span_id:
            ctx["parent_span_id"] = self.parent_span_id
        if self.op:
            ctx["op"] = self.op
        if self.status:
            ctx["status"] = self.status.value
        return ctx

    def to_payload(self) -> SpanPayload:
        return SpanPayload(
            span_id=self.span_id,
            trace_id=self.trace_id,
            parent_span_id=self.parent_span_id,
            op=self.op,
            description=self.description,
            status=self.status.value if self.status else None,
            start_timestamp=self.start_timestamp,
            timestamp=self.end_timestamp,
            tags=dict(self.tags),
            data=dict(self.data),
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}(op={self.op!r}, span_id={self.span_id!r}, "
            f"finished={self.is_finished})>"
        )
