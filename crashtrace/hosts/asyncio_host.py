"""AsyncioHost — interpreter and event-loop error hooks as host events."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

from crashtrace.hosts.interface import (
    HostErrorEvent,
    HostEventHandler,
    HostEventKind,
    Subscribable,
    TraceErrorHandler,
)

logger = logging.getLogger(__name__)


class AsyncioHost(Subscribable):
    """Hooks a plain asyncio process.

    - ``sys.excepthook``: the process is going down → fatal ``uncaught_error``
    - loop exception handler: task exceptions nobody retrieved →
      ``discarded_error`` (after the loop's own handler logged them)
    - ``sys.unraisablehook``: errors the interpreter swallows → trace handler
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__()
        self._loop = loop
        self._installed = False
        self._previous_excepthook: Any = None
        self._previous_unraisablehook: Any = None

    def on(self, kind: HostEventKind, handler: HostEventHandler) -> None:
        self._handlers[kind].append(handler)

    def set_error_handler(self, handler: TraceErrorHandler) -> None:
        self._error_handler = handler

    @property
    def installed(self) -> bool:
        return self._installed

    # -- installation ---------------------------------------------------------

    def install(self) -> None:
        if self._installed:
            return
        self._previous_excepthook = sys.excepthook
        self._previous_unraisablehook = sys.unraisablehook
        sys.excepthook = self._excepthook
        sys.unraisablehook = self._unraisablehook

        loop = self._loop or _running_loop()
        if loop is not None:
            self._loop = loop
            loop.set_exception_handler(self._loop_exception_handler)
        else:
            logger.debug("No event loop yet; call attach_loop() to catch task errors")
        self._installed = True

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        loop.set_exception_handler(self._loop_exception_handler)

    def uninstall(self) -> None:
        if not self._installed:
            return
        if sys.excepthook == self._excepthook:
            sys.excepthook = self._previous_excepthook
        if sys.unraisablehook == self._unraisablehook:
            sys.unraisablehook = self._previous_unraisablehook
        if self._loop is not None and not self._loop.is_closed():
            self._loop.set_exception_handler(None)
        self._installed = False

    # -- hooks ----------------------------------------------------------------

    def _excepthook(self, exc_type, exc, tb) -> None:
        if exc is None or isinstance(exc, KeyboardInterrupt):
            self._call_previous_excepthook(exc_type, exc, tb)
            return
        if not self._handlers[HostEventKind.UNCAUGHT_ERROR]:
            # nobody takes over the crash report
            self._call_previous_excepthook(exc_type, exc, tb)
            return
        self.emit(HostEventKind.UNCAUGHT_ERROR, HostErrorEvent(error=exc, is_fatal=True))

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        loop.default_exception_handler(context)
        error = context.get("exception")
        if isinstance(error, Exception):
            self.emit(HostEventKind.DISCARDED_ERROR, HostErrorEvent(error=error))

    def _unraisablehook(self, unraisable) -> None:
        if self._previous_unraisablehook is not None:
            self._previous_unraisablehook(unraisable)
        if unraisable.exc_value is not None:
            self.report_trace_error(unraisable.exc_value)

    def default_error_handler(self, error: BaseException, is_fatal: bool) -> None:
        if is_fatal:
            self._call_previous_excepthook(type(error), error, error.__traceback__)

    def _call_previous_excepthook(self, exc_type, exc, tb) -> None:
        hook = self._previous_excepthook or sys.__excepthook__
        hook(exc_type, exc, tb)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
