"""Integration ABC — the hook every integration implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from crashtrace.core.hub import Hub

HubGetter = Callable[[], Hub]


class Integration(ABC):
    """Set up once per process, after the client is bound to the hub."""

    identifier: str = ""

    @property
    def name(self) -> str:
        return self.identifier or type(self).__name__

    @abstractmethod
    def setup_once(self, get_hub: HubGetter) -> None: ...
