from crashtrace.hosts.interface import (
    HostErrorEvent,
    HostEventKind,
    Subscribable,
    TraceErrorHandler,
)
from crashtrace.hosts.asyncio_host import AsyncioHost

__all__ = [
    "AsyncioHost",
    "HostErrorEvent",
    "HostEventKind",
    "Subscribable",
    "TraceErrorHandler",
]
