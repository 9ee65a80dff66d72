"""Outgoing request instrumentation for ``httpx.AsyncClient``."""

from __future__ import annotations

import logging
import re
from typing import Callable

import httpx

from crashtrace.integrations.interface import HubGetter
from crashtrace.tracing.span import Span

logger = logging.getLogger(__name__)

TRACE_HEADER = "crashtrace-trace"
DEFAULT_TRACING_ORIGINS = ["localhost", r"^/"]

_SPAN_EXTENSION = "crashtrace_span"


def should_trace_origin(url: str, tracing_origins: list[str]) -> bool:
    """True when *url* contains, or matches as a regex, any origin."""
    for origin in tracing_origins:
        if origin in url:
            return True
        try:
            if re.search(origin, url):
                return True
        except re.error:
            continue
    return False


def instrument_httpx_client(
    client: httpx.AsyncClient,
    get_hub: HubGetter,
    tracing_origins: list[str] | None = None,
    should_create_span_for_request: Callable[[str], bool] | None = None,
) -> httpx.AsyncClient:
    """Open an ``http.client`` span per request on the scope's active transaction."""
    origins = DEFAULT_TRACING_ORIGINS if tracing_origins is None else tracing_origins

    async def on_request(request: httpx.Request) -> None:
        transaction = get_hub().scope.transaction
        if transaction is None or transaction.is_finished:
            return
        url = str(request.url)
        if should_create_span_for_request is not None and not should_create_span_for_request(url):
            return

        span = transaction.start_child(op="http.client", description=f"{request.method} {url}")
        span.set_data("http.method", request.method)
        span.set_data("url", url)
        request.extensions[_SPAN_EXTENSION] = span
        if should_trace_origin(url, origins):
            request.headers[TRACE_HEADER] = span.to_traceparent()

    async def on_response(response: httpx.Response) -> None:
        span: Span | None = response.request.extensions.get(_SPAN_EXTENSION)
        if span is None:
            return
        span.set_http_status(response.status_code)
        span.finish()

    client.event_hooks["request"].append(on_request)
    client.event_hooks["response"].append(on_response)
    logger.debug("[Tracing] Instrumented httpx client %r", client)
    return client
