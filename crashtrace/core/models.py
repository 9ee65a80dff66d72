"""Event, breadcrumb and transaction-context models shared by every layer."""

from __future__ import annotations

import time
import traceback
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Level(str, Enum):
    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"


class EventType(str, Enum):
    ERROR = "error"
    TRANSACTION = "transaction"


# ---------------------------------------------------------------------------
# Exception payload
# ---------------------------------------------------------------------------

class StackFrame(BaseModel):
    filename: str
    lineno: int | None = None
    colno: int | None = None
    function: str = "<unknown>"
    module: str | None = None


class Mechanism(BaseModel):
    """How the error reached us (``onerror``, ``onunhandledrejection``...)."""
    type: str = "generic"
    handled: bool = True


class ExceptionValue(BaseModel):
    type: str
    value: str = ""
    module: str | None = None
    stacktrace: list[StackFrame] = Field(default_factory=list)
    mechanism: Mechanism | None = None


class Breadcrumb(BaseModel):
    timestamp: float = Field(default_factory=time.time)
    category: str | None = None
    message: str | None = None
    level: Level = Level.INFO
    data: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Outbound event (client → transport)
# ---------------------------------------------------------------------------

class SpanPayload(BaseModel):
    span_id: str
    trace_id: str
    parent_span_id: str | None = None
    op: str | None = None
    description: str | None = None
    status: str | None = None
    start_timestamp: float
    timestamp: float | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    data: dict[str, Any] = Field(default_factory=dict)


class Event(BaseModel):
    """Snapshot of an error, message or finished transaction.

    Frozen: every pipeline step returns a copy via ``model_copy``.
    """
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: EventType = EventType.ERROR
    timestamp: float = Field(default_factory=time.time)
    level: Level | None = None
    is_fatal: bool = False
    message: str | None = None
    exception: list[ExceptionValue] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)
    breadcrumbs: list[Breadcrumb] = Field(default_factory=list)
    contexts: dict[str, dict[str, Any]] = Field(default_factory=dict)
    release: str | None = None
    dist: str | None = None
    environment: str | None = None
    transaction: str | None = None
    start_timestamp: float | None = None
    spans: list[SpanPayload] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Transaction context (navigation → lifecycle manager)
# ---------------------------------------------------------------------------

class TransactionContext(BaseModel):
    name: str = ""
    op: str | None = None
    description: str | None = None
    trace_id: str | None = None
    parent_span_id: str | None = None
    sampled: bool | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    data: dict[str, Any] = Field(default_factory=dict)
    trim_end: bool = False
    start_timestamp: float | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _exception_chain(error: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(current)
        current = current.__cause__ or (
            None if current.__suppress_context__ else current.__context__
        )
    chain.reverse()  # oldest first, the raised error last
    return chain


def _safe_str(error: BaseException) -> str:
    try:
        return str(error)
    except Exception:
        return "<exception str() failed>"


def _frames(error: BaseException) -> list[StackFrame]:
    return [
        StackFrame(
            filename=frame.filename,
            lineno=frame.lineno,
            colno=getattr(frame, "colno", None),
            function=frame.name,
        )
        for frame in traceback.extract_tb(error.__traceback__)
    ]


def event_from_exception(
    error: BaseException,
    level: Level | None = Level.ERROR,
    mechanism: Mechanism | None = None,
) -> Event:
    """Build an error ``Event`` from an exception and its cause chain."""
    chain = _exception_chain(error)
    values = [
        ExceptionValue(
            type=type(exc).__name__,
            value=_safe_str(exc),
            module=type(exc).__module__,
            stacktrace=_frames(exc),
            mechanism=mechanism if exc is error else None,
        )
        for exc in chain
    ]
    return Event(level=level, exception=values)
