"""JSONL file-based transport."""

from __future__ import annotations

import json
from pathlib import Path

from crashtrace.core.models import Event
from crashtrace.transport.interface import Transport


class JSONLTransport(Transport):
    """Appends events to ``./outbox/{event.type}.jsonl``.

    Errors and transactions land in separate files (``error.jsonl``,
    ``transaction.jsonl``). The outbox is write-only: nothing reads it back.
    """

    def __init__(self, outbox_dir: str = "./outbox") -> None:
        self._dir = Path(outbox_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def outbox_dir(self) -> Path:
        return self._dir

    async def send(self, event: Event) -> None:
        path = self._dir / f"{event.type.value}.jsonl"
        with open(path, "a") as f:
            f.write(json.dumps(event.model_dump(mode="json"), default=str) + "\n")
