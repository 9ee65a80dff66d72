"""Tests for the JSONL and in-memory transports."""

from __future__ import annotations

import json

import pytest

from crashtrace.core.models import Event, EventType
from crashtrace.transport.jsonl import JSONLTransport
from crashtrace.transport.memory import InMemoryTransport


class TestJSONLTransport:
    async def test_events_split_by_type(self, tmp_path):
        transport = JSONLTransport(str(tmp_path / "outbox"))
        await transport.send(Event(message="boom"))
        await transport.send(Event(type=EventType.TRANSACTION, transaction="home"))
        await transport.send(Event(message="again"))

        errors = (tmp_path / "outbox" / "error.jsonl").read_text().splitlines()
        transactions = (tmp_path / "outbox" / "transaction.jsonl").read_text().splitlines()

        assert [json.loads(line)["message"] for line in errors] == ["boom", "again"]
        assert json.loads(transactions[0])["transaction"] == "home"

    async def test_close_is_noop(self, tmp_path):
        transport = JSONLTransport(str(tmp_path))
        await transport.close()


class TestInMemoryTransport:
    async def test_failure_mode(self):
        transport = InMemoryTransport(fail=True)
        with pytest.raises(ConnectionError):
            await transport.send(Event())
        assert transport.events == []
