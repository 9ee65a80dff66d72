"""crashtrace — in-process error capture and idle-transaction tracing.

Usage::

    import crashtrace

    crashtrace.init(release="app@1.0.0")
    try:
        risky()
    except Exception as exc:
        crashtrace.capture_exception(exc)
    await crashtrace.flush()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

from crashtrace.core.client import Client
from crashtrace.core.hub import Hub, get_current_hub
from crashtrace.core.models import Breadcrumb, Event, Level, TransactionContext
from crashtrace.core.options import ClientOptions
from crashtrace.core.scope import Scope
from crashtrace.hosts.asyncio_host import AsyncioHost
from crashtrace.integrations.error_handlers import ErrorCaptureCoordinator
from crashtrace.integrations.interface import Integration
from crashtrace.integrations.release import DIST_EXTRA, RELEASE_EXTRA, Release
from crashtrace.tracing.lifecycle import TracingOptions, TransactionLifecycleManager
from crashtrace.tracing.routing import RoutingInstrumentation
from crashtrace.transport.interface import Transport

__all__ = [
    "Client",
    "ClientOptions",
    "ErrorCaptureCoordinator",
    "Event",
    "Hub",
    "Level",
    "RoutingInstrumentation",
    "Scope",
    "TracingOptions",
    "TransactionContext",
    "TransactionLifecycleManager",
    "add_breadcrumb",
    "capture_exception",
    "capture_message",
    "flush",
    "get_current_hub",
    "init",
    "push_scope",
    "set_dist",
    "set_extra",
    "set_release",
    "set_tag",
]

_debug_handler: logging.Handler | None = None


def init(
    options: ClientOptions | None = None,
    *,
    transport: Transport | None = None,
    integrations: list[Integration] | None = None,
    hub: Hub | None = None,
    **overrides: Any,
) -> Hub:
    """Wire client, transport and integrations into *hub* (the process hub by default).

    Environment variables (all optional), overridden by keyword arguments:
      CRASHTRACE_ENVIRONMENT, CRASHTRACE_RELEASE, CRASHTRACE_DIST
      CRASHTRACE_SHUTDOWN_TIMEOUT   — ms, default ``2000``
      CRASHTRACE_SAMPLE_RATE / CRASHTRACE_TRACES_SAMPLE_RATE
      CRASHTRACE_OUTBOX_DIR         — JSONL transport directory
      CRASHTRACE_DEBUG              — ``1`` for debug logging
    """
    if options is None:
        options = ClientOptions.from_env(**overrides)
    elif overrides:
        options = options.model_copy(update=overrides)

    if options.debug:
        _enable_debug_logging()

    hub = hub or get_current_hub()
    hub.bind_client(Client(options, transport=transport))
    hub.set_tag("event.origin", "python")

    # -- integrations --
    installed: list[Integration] = []
    if options.default_integrations:
        host = AsyncioHost()
        host.install()
        installed += [Release(), ErrorCaptureCoordinator(host)]
    installed += integrations or []

    def get_hub() -> Hub:
        return hub

    for integration in installed:
        integration.setup_once(get_hub)
        logging.getLogger(__name__).debug("Integration installed: %s", integration.name)
    return hub


def _enable_debug_logging() -> None:
    global _debug_handler
    if _debug_handler is not None:
        return
    logger = logging.getLogger("crashtrace")
    _debug_handler = logging.StreamHandler()
    _debug_handler.setFormatter(logging.Formatter("%(asctime)s - crashtrace - %(levelname)s - %(message)s"))
    logger.addHandler(_debug_handler)
    logger.setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Helpers bound to the current hub
# ---------------------------------------------------------------------------

def capture_exception(error: BaseException) -> str | None:
    return get_current_hub().capture_exception(error)


def capture_message(message: str, level: Level = Level.INFO) -> str | None:
    return get_current_hub().capture_message(message, level)


def add_breadcrumb(crumb: Breadcrumb | None = None, **kwargs: Any) -> None:
    get_current_hub().add_breadcrumb(crumb, **kwargs)


def set_tag(key: str, value: Any) -> None:
    get_current_hub().set_tag(key, value)


def set_extra(key: str, value: Any) -> None:
    get_current_hub().set_extra(key, value)


def set_release(release: str) -> None:
    """Sets the release on every following event."""
    set_extra(RELEASE_EXTRA, release)


def set_dist(dist: str) -> None:
    """Sets the dist on every following event."""
    set_extra(DIST_EXTRA, dist)


@contextmanager
def push_scope() -> Iterator[Scope]:
    with get_current_hub().push_scope() as scope:
        yield scope


async def flush(timeout_ms: float | None = None) -> bool:
    client = get_current_hub().client
    if client is None:
        return True
    return await client.flush(timeout_ms)
