"""Transport ABC — no internal deps beyond the event model."""

from __future__ import annotations

from abc import ABC, abstractmethod

from crashtrace.core.models import Event


class Transport(ABC):
    """Delivers prepared events. Wire format is up to the implementation."""

    @abstractmethod
    async def send(self, event: Event) -> None: ...

    async def close(self) -> None:
        return None
