from crashtrace.tracing.span import Span, SpanRecorder, SpanStatus
from crashtrace.tracing.transaction import Transaction, sample_transaction
from crashtrace.tracing.idle import IdleTransaction, start_idle_transaction
from crashtrace.tracing.routing import RoutingInstrumentation
from crashtrace.tracing.requests import instrument_httpx_client, should_trace_origin
from crashtrace.tracing.lifecycle import (
    TracingOptions,
    TransactionLifecycleManager,
    adjust_transaction_duration,
)

__all__ = [
    "IdleTransaction",
    "RoutingInstrumentation",
    "Span",
    "SpanRecorder",
    "SpanStatus",
    "TracingOptions",
    "Transaction",
    "TransactionLifecycleManager",
    "adjust_transaction_duration",
    "instrument_httpx_client",
    "sample_transaction",
    "should_trace_origin",
    "start_idle_transaction",
]
