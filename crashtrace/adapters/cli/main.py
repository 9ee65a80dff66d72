"""CLI demo — captures a message and one navigation, prints delivered events as JSON lines."""

from __future__ import annotations

import asyncio
import json
import sys

import crashtrace
from crashtrace.core.hub import Hub
from crashtrace.tracing.lifecycle import TransactionLifecycleManager
from crashtrace.tracing.routing import RoutingInstrumentation
from crashtrace.transport.memory import InMemoryTransport


async def run_cli(text: str, route: str = "cli/demo", idle_timeout: float = 100) -> None:
    transport = InMemoryTransport()
    routing = RoutingInstrumentation()
    manager = TransactionLifecycleManager(routing=routing, idle_timeout=idle_timeout)
    hub = crashtrace.init(
        transport=transport,
        integrations=[manager],
        hub=Hub(),
        default_integrations=False,
    )

    transaction = routing.navigate(route)
    if transaction is not None:
        span = transaction.start_child(op="cli.message", description=text)
        hub.capture_message(text)
        span.finish()
        # let the idle countdown finish the transaction
        await asyncio.sleep(idle_timeout / 1000 * 2)
        transaction.finish()

    await hub.client.close()
    for event in transport.events:
        print(json.dumps(event.model_dump(mode="json"), default=str), flush=True)


def main() -> None:
    if len(sys.argv) > 1:
        text = " ".join(sys.argv[1:])
    else:
        text = sys.stdin.read().strip()
        if not text:
            print("Usage: crashtrace-demo <message>  OR  echo 'message' | crashtrace-demo", file=sys.stderr)
            sys.exit(1)

    asyncio.run(run_cli(text))


if __name__ == "__main__":
    main()
