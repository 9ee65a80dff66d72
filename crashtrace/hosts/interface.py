"""Subscribable — the host framework's error events, as an injected capability."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class HostEventKind(str, Enum):
    UNCAUGHT_ERROR = "uncaught_error"
    DISCARDED_ERROR = "discarded_error"


@dataclass
class HostErrorEvent:
    """Payload of an error event raised by the host."""

    error: BaseException
    is_fatal: bool = False


@dataclass
class TraceErrorHandler:
    """Low-level handler for errors the host intercepts before its own handling."""

    handle_error: Callable[[BaseException], object]


HostEventHandler = Callable[[HostErrorEvent], object]


class Subscribable(ABC):
    """Source of raw error events.

    Implementations decide where errors come from (interpreter hooks, a web
    framework, a test double) and call ``emit`` / the trace handler.
    """

    def __init__(self) -> None:
        self._handlers: dict[HostEventKind, list[HostEventHandler]] = {
            kind: [] for kind in HostEventKind
        }
        self._error_handler: TraceErrorHandler | None = None

    @abstractmethod
    def on(self, kind: HostEventKind, handler: HostEventHandler) -> None: ...

    @abstractmethod
    def set_error_handler(self, handler: TraceErrorHandler) -> None: ...

    def default_error_handler(self, error: BaseException, is_fatal: bool) -> None:
        """The host's own handling, run once a fatal report has been flushed."""
        return None

    @property
    def error_handler(self) -> TraceErrorHandler | None:
        return self._error_handler

    def handlers(self, kind: HostEventKind) -> list[HostEventHandler]:
        return list(self._handlers[kind])

    def emit(self, kind: HostEventKind, event: HostErrorEvent) -> None:
        for handler in self._handlers[kind]:
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed for %s", handler, kind.value)

    def report_trace_error(self, error: BaseException) -> None:
        if self._error_handler is None:
            return
        try:
            self._error_handler.handle_error(error)
        except Exception:
            logger.exception("Trace error handler failed for %r", error)
