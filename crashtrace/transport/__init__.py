from crashtrace.transport.interface import Transport
from crashtrace.transport.jsonl import JSONLTransport
from crashtrace.transport.memory import InMemoryTransport

__all__ = ["InMemoryTransport", "JSONLTransport", "Transport"]
