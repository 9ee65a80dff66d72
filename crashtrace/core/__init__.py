from crashtrace.core.models import (
    Breadcrumb,
    Event,
    EventType,
    ExceptionValue,
    Level,
    Mechanism,
    SpanPayload,
    StackFrame,
    TransactionContext,
    event_from_exception,
)
from crashtrace.core.options import ClientOptions
from crashtrace.core.scope import Scope

__all__ = [
    "Breadcrumb",
    "ClientOptions",
    "Event",
    "EventType",
    "ExceptionValue",
    "Level",
    "Mechanism",
    "Scope",
    "SpanPayload",
    "StackFrame",
    "TransactionContext",
    "event_from_exception",
]
