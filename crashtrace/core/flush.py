"""FlushCoordinator — pending-event queue with bounded-time delivery."""

from __future__ import annotations

import asyncio
import logging
from collections import deque

from crashtrace.core.models import Event
from crashtrace.transport.interface import Transport

logger = logging.getLogger(__name__)


class FlushCoordinator:
    """Buffers captured events until ``flush()`` drains them to the transport.

    ``enqueue`` is synchronous so capture never waits on I/O. Each event is
    tagged with a sequence number; a flush only drains what was queued before
    it was called; later events wait for the next flush.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._queue: deque[tuple[int, Event]] = deque()
        self._seq = 0
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None
        self._in_flight: set[asyncio.Future] = set()

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def pending(self) -> int:
        return len(self._queue)

    def pending_events(self) -> list[Event]:
        return [event for _, event in self._queue]

    def enqueue(self, event: Event) -> None:
        self._seq += 1
        self._queue.append((self._seq, event))

    async def flush(self, timeout_ms: float) -> bool:
        """Deliver everything queued so far within *timeout_ms*.

        Returns ``True`` when every event of the batch was handed to the
        transport before the deadline. Never raises.
        """
        cutoff = self._seq
        try:
            return await asyncio.wait_for(self._drain(cutoff), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning(
                "Flush did not complete within %sms; %d event(s) still pending",
                timeout_ms, self.pending,
            )
            return False

    async def _drain(self, cutoff: int) -> bool:
        delivered = True
        async with self._get_lock():
            while self._queue and self._queue[0][0] <= cutoff:
                _, event = self._queue.popleft()
                send = asyncio.ensure_future(self._transport.send(event))
                try:
                    await asyncio.shield(send)
                except asyncio.CancelledError:
                    # the send keeps running; the event counts as attempted
                    self._in_flight.add(send)
                    send.add_done_callback(self._finish_late_send)
                    raise
                except Exception as exc:
                    # one attempt per flush; the event is dropped
                    delivered = False
                    logger.error("Failed to send event %s: %s", event.event_id, exc)
        return delivered

    def _finish_late_send(self, send: asyncio.Future) -> None:
        self._in_flight.discard(send)
        if send.cancelled():
            return
        exc = send.exception()
        if exc is not None:
            logger.error("Failed to send event after flush timed out: %s", exc)

    def _get_lock(self) -> asyncio.Lock:
        # a flush may also run from asyncio.run() on a fatal path with no loop
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock
