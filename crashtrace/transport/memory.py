"""In-memory transport — used by the demo CLI and in unit tests."""

from __future__ import annotations

import asyncio

from crashtrace.core.models import Event, EventType
from crashtrace.transport.interface import Transport


class InMemoryTransport(Transport):
    """Keeps every delivered event in ``events``.

    ``delay`` (seconds) simulates a slow network; ``fail`` makes every send
    raise ``ConnectionError``.
    """

    def __init__(self, delay: float = 0.0, fail: bool = False) -> None:
        self.events: list[Event] = []
        self.delay = delay
        self.fail = fail
        self.closed = False

    async def send(self, event: Event) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("transport unavailable")
        self.events.append(event)

    async def close(self) -> None:
        self.closed = True

    @property
    def errors(self) -> list[Event]:
        return [e for e in self.events if e.type == EventType.ERROR]

    @property
    def transactions(self) -> list[Event]:
        return [e for e in self.events if e.type == EventType.TRANSACTION]
