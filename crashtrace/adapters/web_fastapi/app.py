"""FastAPI host adapter — route exceptions become host error events."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import crashtrace
from crashtrace.hosts.interface import (
    HostErrorEvent,
    HostEventHandler,
    HostEventKind,
    Subscribable,
    TraceErrorHandler,
)
from crashtrace.integrations.error_handlers import ErrorCaptureCoordinator

logger = logging.getLogger(__name__)


class FastAPIHost(Subscribable):
    """Emits ``uncaught_error`` for exceptions escaping a route.

    The exception is re-raised afterwards, so FastAPI's own 500 handling
    is unchanged.
    """

    def __init__(self, app: FastAPI) -> None:
        super().__init__()
        self._app = app

        @app.middleware("http")
        async def report_errors(request: Request, call_next):
            try:
                return await call_next(request)
            except Exception as exc:
                logger.debug("Unhandled error on %s %s", request.method, request.url.path)
                self.emit(HostEventKind.UNCAUGHT_ERROR, HostErrorEvent(error=exc))
                raise

    def on(self, kind: HostEventKind, handler: HostEventHandler) -> None:
        self._handlers[kind].append(handler)

    def set_error_handler(self, handler: TraceErrorHandler) -> None:
        self._error_handler = handler


def create_app(**init_options) -> FastAPI:
    """Demo app; *init_options* go to ``crashtrace.init``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        client = hub.client
        if client is not None:
            await client.close()

    app = FastAPI(title="crashtrace demo", version="0.1.0", lifespan=lifespan)
    host = FastAPIHost(app)
    hub = crashtrace.init(integrations=[ErrorCaptureCoordinator(host)], **init_options)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    @app.get("/boom")
    async def boom() -> JSONResponse:
        raise RuntimeError("boom")

    return app


def serve() -> None:
    """Entry-point for ``crashtrace-web`` console script."""
    import uvicorn

    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
