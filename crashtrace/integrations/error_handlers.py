"""ErrorCaptureCoordinator — reports host errors and flushes before fatal exit."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

from crashtrace.core.client import Client
from crashtrace.core.hub import Hub
from crashtrace.core.models import Level, Mechanism
from crashtrace.core.options import DEFAULT_SHUTDOWN_TIMEOUT
from crashtrace.hosts.interface import (
    HostErrorEvent,
    HostEventKind,
    Subscribable,
    TraceErrorHandler,
)
from crashtrace.integrations.interface import HubGetter, Integration

logger = logging.getLogger(__name__)


class FatalLatch:
    """Guards the fatal path: one fatal flush sequence at a time.

    A fatal that arrives while the latch is engaged asks for a single
    follow-up flush instead of starting its own sequence.
    """

    def __init__(self) -> None:
        self._engaged = False
        self._followup = False

    @property
    def engaged(self) -> bool:
        return self._engaged

    def try_engage(self) -> bool:
        if self._engaged:
            return False
        self._engaged = True
        return True

    def request_followup(self) -> None:
        self._followup = True

    def consume_followup(self) -> bool:
        followup, self._followup = self._followup, False
        return followup

    def release(self) -> None:
        self._engaged = False
        self._followup = False


class ErrorCaptureCoordinator(Integration):
    """Subscribes to host error events and funnels them into ``handle``."""

    identifier = "ErrorHandlers"

    def __init__(
        self,
        host: Subscribable,
        on_error: bool = True,
        on_unhandled_rejection: bool = True,
    ) -> None:
        self._host = host
        self.on_error = on_error
        self.on_unhandled_rejection = on_unhandled_rejection
        self.latch = FatalLatch()
        self._get_hub: HubGetter | None = None
        self._started = False
        self._fatal_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    def setup_once(self, get_hub: HubGetter) -> None:
        self._get_hub = get_hub
        self.start()

    def start(self) -> None:
        if self._started:
            return
        if self.on_unhandled_rejection:
            logger.debug("[ErrorHandlers] registering for %s", HostEventKind.UNCAUGHT_ERROR.value)
            self._host.on(HostEventKind.UNCAUGHT_ERROR, self._on_host_event)
        if self.on_error:
            logger.debug("[ErrorHandlers] registering for %s", HostEventKind.DISCARDED_ERROR.value)
            self._host.on(HostEventKind.DISCARDED_ERROR, self._on_host_event)
            self._host.set_error_handler(TraceErrorHandler(handle_error=self.handle))
        self._started = True

    def _on_host_event(self, event: HostErrorEvent) -> asyncio.Task | None:
        return self.handle(event.error, event.is_fatal)

    # ------------------------------------------------------------------
    # Handling
    # ------------------------------------------------------------------

    def handle(self, error: BaseException, is_fatal: bool = False) -> asyncio.Task | None:
        """Capture *error* and start a bounded flush.

        Returns the flush task when an event loop is running, ``None``
        otherwise (the flush then ran to completion before returning).
        Never raises.
        """
        try:
            return self._handle(error, is_fatal)
        except Exception:
            logger.exception("[ErrorHandlers] Failed to handle %r", error)
            return None

    def _handle(self, error: BaseException, is_fatal: bool) -> asyncio.Task | None:
        logger.debug("[ErrorHandlers] caught %r (fatal=%s)", error, is_fatal)
        hub = self._get_hub() if self._get_hub is not None else None
        client = hub.client if hub is not None else None
        if hub is None or client is None:
            logger.warning("[ErrorHandlers] No client attached; %r will not be reported", error)
            if is_fatal:
                self._run_default_handler(error)
            return None

        timeout = client.get_options().shutdown_timeout or DEFAULT_SHUTDOWN_TIMEOUT

        if is_fatal and not self.latch.try_engage():
            logger.warning("[ErrorHandlers] Encountered multiple fatals in a row. The latest: %r", error)
            self._capture(hub, error, is_fatal)
            self.latch.request_followup()
            return self._fatal_task

        self._capture(hub, error, is_fatal)
        if not is_fatal:
            return self._schedule(self._flush(client, timeout))

        try:
            task = self._schedule(self._drive_fatal(client, timeout, error))
        except Exception:
            self.latch.release()
            self._fatal_task = None
            self._run_default_handler(error)
            raise
        self._fatal_task = task
        return task

    @staticmethod
    def _capture(hub: Hub, error: BaseException, is_fatal: bool) -> None:
        mechanism = Mechanism(type="onerror", handled=False)
        try:
            with hub.push_scope() as scope:
                if is_fatal:
                    scope.set_level(Level.FATAL)
                hub.capture_exception(error, mechanism=mechanism)
        except Exception:
            logger.exception("[ErrorHandlers] Failed to capture %r", error)

    def _run_default_handler(self, error: BaseException) -> None:
        try:
            self._host.default_error_handler(error, True)
        except Exception:
            logger.exception("[ErrorHandlers] Host default handler failed")

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def _flush(self, client: Client, timeout: float) -> bool:
        try:
            delivered = await client.flush(timeout)
        except Exception as exc:
            logger.error("[ErrorHandlers] Flush failed: %s", exc)
            return False
        if not delivered:
            logger.warning("[ErrorHandlers] Flush did not deliver every event within %sms", timeout)
        return delivered

    async def _drive_fatal(self, client: Client, timeout: float, error: BaseException) -> bool:
        delivered = False
        try:
            while True:
                delivered = await self._flush(client, timeout)
                if not self.latch.consume_followup():
                    break
        finally:
            self.latch.release()
            self._fatal_task = None
            self._run_default_handler(error)
        return delivered

    def _schedule(self, coro: Coroutine[Any, Any, bool]) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop (interpreter hook at exit): flush synchronously, bounded by its timeout
            asyncio.run(coro)
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
