"""Shared fixtures for crashtrace tests."""

from __future__ import annotations

import pytest

from crashtrace.core.client import Client
from crashtrace.core.hub import Hub
from crashtrace.core.options import ClientOptions
from crashtrace.hosts.interface import (
    HostEventHandler,
    HostEventKind,
    Subscribable,
    TraceErrorHandler,
)
from crashtrace.transport.memory import InMemoryTransport


class FakeHost(Subscribable):
    """Deterministic stand-in for the host framework."""

    def __init__(self) -> None:
        super().__init__()
        self.default_calls: list[tuple[BaseException, bool]] = []

    def on(self, kind: HostEventKind, handler: HostEventHandler) -> None:
        self._handlers[kind].append(handler)

    def set_error_handler(self, handler: TraceErrorHandler) -> None:
        self._error_handler = handler

    def default_error_handler(self, error: BaseException, is_fatal: bool) -> None:
        self.default_calls.append((error, is_fatal))


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def options():
    return ClientOptions(shutdown_timeout=500)


@pytest.fixture
def client(options, transport):
    return Client(options, transport=transport)


@pytest.fixture
def hub(client):
    return Hub(client)


@pytest.fixture
def host():
    return FakeHost()
